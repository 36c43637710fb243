"""
Bedtime story generator - command line interface.

Commands:
  create    Create a story and (by default) drive it to completion
  daily     Create the public daily story, avoiding recent daily themes
  run       Drive an existing, unfinished story to completion
  status    Show a story's state
  related   Show the stories most similar to a story
  reindex   Re-embed every story into the vector index
  serve     Start the HTTP API
"""

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from bedtime.infra.config import get_log_level, get_logs_dir
from bedtime.infra.logging_config import setup_logging
from bedtime.pipeline.errors import InvalidOperationError, StoryNotFoundError

logger = logging.getLogger("bedtime_story_generator")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bedtime story generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create "A sleepy dragon who is afraid of the dark"
  python main.py create "Same dragon, now at the seaside" --parent <story_id>
  python main.py status <story_id>
  python main.py related <story_id>
  python main.py serve --port 8000
        """,
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Story model. Format: 'gpt-4o', 'ollama:llama3', or a Claude model name",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    create_parser = subparsers.add_parser("create", help="Create a story")
    create_parser.add_argument("prompt", type=str, help="What the story should be about")
    create_parser.add_argument("--user", type=str, default=None, help="Owner user id")
    create_parser.add_argument("--parent", type=str, default=None, help="Story id to remix")
    create_parser.add_argument(
        "--public",
        action="store_true",
        default=False,
        help="Make the story visible to other users",
    )
    create_parser.add_argument(
        "--no-wait",
        action="store_true",
        default=False,
        help="Only create the record; finish it later with 'run'",
    )

    run_parser = subparsers.add_parser("run", help="Drive a story to a terminal state")
    run_parser.add_argument("story_id", type=str)

    status_parser = subparsers.add_parser("status", help="Show a story")
    status_parser.add_argument("story_id", type=str)
    status_parser.add_argument(
        "--full",
        action="store_true",
        default=False,
        help="Print the whole record as JSON",
    )

    related_parser = subparsers.add_parser("related", help="Show related stories")
    related_parser.add_argument("story_id", type=str)

    daily_parser = subparsers.add_parser("daily", help="Create today's public daily story")
    daily_parser.add_argument("--user", type=str, default=None, help="Owner user id (default: DAILY_STORY_USER_ID)")

    subparsers.add_parser("reindex", help="Re-embed all stories")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def print_story(story, full: bool = False) -> None:
    if full:
        print(json.dumps(story.to_dict(), ensure_ascii=False, indent=2))
        return

    print("=" * 80)
    print(f"Story ID: {story.id}")
    print(f"State: {story.state.value} (attempt {story.attempt})")
    print(f"Title: {story.title or 'N/A'}")
    if story.parent_story_id:
        print(f"Remix of: {story.parent_story_id}")
    if story.summary:
        print(f"Summary: {story.summary}")
    if story.audio:
        print(f"Audio: {story.audio}")
    if story.completed_at:
        print(f"Completed: {story.completed_at.isoformat()}Z")
    print("=" * 80)


async def cmd_create(service, args) -> int:
    story = service.create_story(
        args.prompt,
        user_id=args.user,
        parent_story_id=args.parent,
        is_public=args.public,
    )
    logger.info(f"[CLI] Created story {story.id}")

    await service.drain()
    story = service.get_story(story.id)

    print_story(story)
    return 0 if story.state.value != "failed" else 1


async def cmd_daily(service, args) -> int:
    story = service.create_daily_story(user_id=args.user)
    logger.info(f"[CLI] Created daily story {story.id}")

    await service.drain()
    story = service.get_story(story.id)

    print_story(story)
    return 0 if story.state.value == "ready" else 1


async def cmd_run(service, args) -> int:
    story = await service.run_story(args.story_id)
    await service.drain()
    print_story(story)
    return 0 if story.state.value == "ready" else 1


async def cmd_related(service, args) -> int:
    story, related = await service.related(args.story_id)
    print(f"Related to {story.id} ({story.title or 'untitled'}):")
    for rank, other in enumerate(related, start=1):
        if other is None:
            print(f"  {rank}. (no longer available)")
        else:
            print(f"  {rank}. {other.id}  {other.title or 'untitled'}")
    if not related:
        print("  (none)")
    return 0


async def cmd_reindex(service, args) -> int:
    count = await service.reindex()
    print(f"Indexed {count} stories into {service.index.namespace}")
    return 0


def main(argv=None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(get_log_level(), log_dir=get_logs_dir())

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "serve":
        import uvicorn
        from bedtime.api.main import app
        uvicorn.run(app, host=args.host, port=args.port)
        return 0

    from bedtime.pipeline.service import StoryService
    service = StoryService.from_environment(model_spec=args.model)

    try:
        if args.command == "status":
            print_story(service.get_story(args.story_id), full=args.full)
            return 0

        if args.command == "create" and args.no_wait:
            # Outside an event loop the hooks only advance the state
            print_story(service.create_story(
                args.prompt,
                user_id=args.user,
                parent_story_id=args.parent,
                is_public=args.public,
            ))
            return 0

        handlers = {
            "create": cmd_create,
            "daily": cmd_daily,
            "run": cmd_run,
            "related": cmd_related,
            "reindex": cmd_reindex,
        }
        return asyncio.run(handlers[args.command](service, args))

    except StoryNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except InvalidOperationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
