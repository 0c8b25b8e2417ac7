#!/usr/bin/env python3
"""
TaskFlow - CLI Interface
========================
Command-line tool for serving the API and managing a workspace directly.

Usage:
    taskflow serve --port 8000
    taskflow register ada@example.com ada "Ada Lovelace" --password s3cretpass
    taskflow create "Website relaunch" --owner <user_id> --template software
    taskflow projects
    taskflow status <project_id>
    taskflow board <project_id>
    taskflow add-task <project_id> "Write copy" --priority high
    taskflow move <task_id> in_progress
"""

import argparse
import json
import sys

from taskflow.config import Settings
from taskflow.errors import TaskFlowError
from taskflow.logging_setup import setup_logging
from taskflow.manager import WorkspaceManager
from taskflow.schema import PROJECT_TEMPLATES, TaskPriority, TaskStatus


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--dir", default=settings.data_dir, help="Workspace directory")
    common.add_argument("--log-level", default=settings.log_level, help="Logging level")

    parser = argparse.ArgumentParser(
        prog="taskflow",
        description="TaskFlow - project & kanban task manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  taskflow serve --port 8000                  Run the REST API
  taskflow register a@b.io ada "Ada" --password s3cretpass
  taskflow users                              List registered users
  taskflow create Launch --owner <user_id>    Create a project
  taskflow projects                           List projects
  taskflow status <project_id>                Show project status report
  taskflow board <project_id>                 Show the kanban board
  taskflow add-task <project_id> "Write docs" Add a task
  taskflow move <task_id> done                Move a task to another column
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # SERVE command
    serve_parser = subparsers.add_parser("serve", parents=[common], help="Run the REST API")
    serve_parser.add_argument("--host", default=settings.host, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=settings.port, help="Port")

    # REGISTER command
    register_parser = subparsers.add_parser("register", parents=[common], help="Register a user")
    register_parser.add_argument("email", help="Email address")
    register_parser.add_argument("username", help="Handle used for @mentions")
    register_parser.add_argument("name", help="Display name")
    register_parser.add_argument("--password", required=True, help="Password")

    # USERS command
    users_parser = subparsers.add_parser("users", parents=[common], help="List users")
    users_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # CREATE command
    create_parser = subparsers.add_parser("create", parents=[common], help="Create a project")
    create_parser.add_argument("name", help="Project name")
    create_parser.add_argument("--owner", required=True, help="Owner user ID")
    create_parser.add_argument("--description", help="Project description")
    create_parser.add_argument(
        "-t", "--template", default="blank", choices=sorted(PROJECT_TEMPLATES),
        help="Starter tasks"
    )

    # PROJECTS command
    projects_parser = subparsers.add_parser("projects", parents=[common], help="List projects")
    projects_parser.add_argument("--all", action="store_true", help="Include archived projects")
    projects_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # STATUS command
    status_parser = subparsers.add_parser("status", parents=[common], help="Show project status")
    status_parser.add_argument("project_id", help="Project ID")
    status_parser.add_argument("--json", action="store_true", help="Output board as JSON")

    # BOARD command
    board_parser = subparsers.add_parser("board", parents=[common], help="Show the kanban board")
    board_parser.add_argument("project_id", help="Project ID")

    # ADD-TASK command
    add_parser = subparsers.add_parser("add-task", parents=[common], help="Add a task")
    add_parser.add_argument("project_id", help="Project ID")
    add_parser.add_argument("title", help="Task title")
    add_parser.add_argument("--description", help="Task description")
    add_parser.add_argument(
        "-p", "--priority", default="medium", choices=[p.value for p in TaskPriority]
    )
    add_parser.add_argument("--assignee", help="Assignee user ID")

    # MOVE command
    move_parser = subparsers.add_parser("move", parents=[common], help="Move a task")
    move_parser.add_argument("task_id", help="Task ID")
    move_parser.add_argument("status", choices=[s.value for s in TaskStatus])
    move_parser.add_argument("--position", type=int, help="Slot in the target column")

    return parser


def main(argv=None):
    try:
        settings = Settings.from_env()
    except TaskFlowError as e:
        print(f"❌ {e.message}")
        return 1

    parser = build_parser(settings)
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_level)

    try:
        return run(args, settings)
    except TaskFlowError as e:
        print(f"❌ {e.message}")
        return 1


def run(args, settings: Settings) -> int:
    settings = settings.model_copy(update={"data_dir": args.dir})

    if args.command == "serve":
        import uvicorn

        from taskflow.api.app import create_app

        app = create_app(settings)
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
        return 0

    manager = WorkspaceManager(settings=settings)

    if args.command == "register":
        user = manager.register_user(args.email, args.username, args.name, args.password)
        print(f"✅ Registered: {user.username}")
        print(f"   ID: {user.id}")

    elif args.command == "users":
        users = manager.list_users()
        if args.json:
            print(json.dumps(
                [u.model_dump(mode="json", exclude={"password_hash"}) for u in users], indent=2
            ))
        elif not users:
            print("No users found")
        else:
            print("👤 Users:")
            for user in users:
                print(f"  [{user.id}] {user.username} <{user.email}> {user.name}")

    elif args.command == "create":
        project = manager.create_project(
            args.owner, args.name, description=args.description, template=args.template
        )
        tasks = manager.list_tasks(None, project_id=project.id)
        print(f"✅ Created: {project.id}")
        print(f"   Name: {project.name}")
        print(f"   Tasks: {len(tasks)}")
        print(f"   File: {manager.store_path}")

    elif args.command == "projects":
        projects = manager.list_projects(None, include_archived=args.all)
        rows = [
            {
                "id": p.id,
                "name": p.name,
                "status": p.status.value,
                "progress": f"{manager.project_progress(p.id)}%",
                "members": len(p.member_ids()),
                "updated_at": p.updated_at.isoformat(),
            }
            for p in projects
        ]

        if args.json:
            print(json.dumps(rows, indent=2))
        elif not rows:
            print("No projects found")
        else:
            print("📋 Projects:")
            print("-" * 60)
            for row in rows:
                print(f"  [{row['id']}] {row['name']}")
                print(f"      Progress: {row['progress']} | Status: {row['status']} "
                      f"| Members: {row['members']}")
                print(f"      Updated: {row['updated_at']}")
            print("-" * 60)

    elif args.command == "status":
        if args.json:
            print(json.dumps(manager.get_board(None, args.project_id), indent=2))
        else:
            print(manager.get_status_report(args.project_id))

    elif args.command == "board":
        board = manager.get_board(None, args.project_id)
        print(f"📋 {board['project']['name']} ({board['progress_pct']}%)")
        for column in board["columns"]:
            print("")
            print(f"== {column['status'].upper()} ({len(column['tasks'])})")
            for card in column["tasks"]:
                flag = " ⛔" if card["blocked_by"] else ""
                print(f"  {card['position']}. [{card['id']}] {card['title']} "
                      f"({card['priority']}){flag}")

    elif args.command == "add-task":
        task = manager.create_task(
            None, args.project_id, args.title,
            description=args.description,
            priority=args.priority,
            assignee_id=args.assignee,
        )
        print(f"📝 Created task: {task.title} ({task.id})")

    elif args.command == "move":
        task = manager.move_task(None, args.task_id, args.status, position=args.position)
        print(f"▶️ Moved: {task.title} -> {task.status.value}[{task.position}]")

    return 0


if __name__ == "__main__":
    sys.exit(main())
