"""REST API for TaskFlow."""

from taskflow.api.app import create_app

__all__ = ["create_app"]
