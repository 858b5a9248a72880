import argparse
import json
from typing import Any

from .interactions.config import load_config
from .interactions.cursor_store import CursorStore
from .interactions.driver import build_loop, run_loop
from .interactions.logging_utils import setup_logging
from .platform_client import PlatformAuthError, PlatformClient


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def cmd_run(_: argparse.Namespace) -> None:
    """Poll mentions forever (or MENTIONLOOP_MAX_TICKS times)."""
    run_loop()


def cmd_tick(_: argparse.Namespace) -> None:
    """Run a single polling pass and print the resulting cursor."""
    cfg = load_config()
    setup_logging(cfg)
    loop = build_loop(cfg)
    cursor = loop.tick(loop.cursor_store.load())
    print_json({"cursor": cursor})


def cmd_cursor(args: argparse.Namespace) -> None:
    """Show the stored cursor, or delete it with --reset.

    Examples:

        python -m mentionloop.cli cursor
        python -m mentionloop.cli cursor --reset
    """
    cfg = load_config()
    store = CursorStore(cfg.cursor_path)
    if args.reset:
        if not store.reset():
            raise SystemExit(f"Could not remove cursor file {cfg.cursor_path}")
        print_json({"cursor": None, "path": str(cfg.cursor_path), "reset": True})
        return
    print_json({"cursor": store.load(), "path": str(cfg.cursor_path)})


def cmd_me(_: argparse.Namespace) -> None:
    """Show the platform profile of the configured agent."""
    print_json(PlatformClient().get_me())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Answer platform mentions with an autonomous agent.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_run = subparsers.add_parser("run", help="Run the mention polling loop")
    p_run.set_defaults(func=cmd_run)

    p_tick = subparsers.add_parser("tick", help="Run one polling pass")
    p_tick.set_defaults(func=cmd_tick)

    p_cursor = subparsers.add_parser("cursor", help="Show or reset the processed-mention cursor")
    p_cursor.add_argument("--reset", action="store_true", help="Delete the stored cursor")
    p_cursor.set_defaults(func=cmd_cursor)

    p_me = subparsers.add_parser("me", help="Show the agent's platform profile")
    p_me.set_defaults(func=cmd_me)

    return parser


def main() -> None:
    try:
        parser = build_parser()
        args = parser.parse_args()
        args.func(args)
    except PlatformAuthError as e:
        raise SystemExit(str(e))
    except KeyboardInterrupt:
        raise SystemExit("Interrupted.")
    except Exception as e:
        # Keep common runtime failures to one line on the console.
        raise SystemExit(f"Error: {e}")


if __name__ == "__main__":
    main()
