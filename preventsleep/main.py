"""Command line entry point.

    preventsleep serve
    preventsleep add mon 09:00-17:00 --display
    preventsleep list
    preventsleep delete 0          (by position)
    preventsleep delete --id 7     (by durable id)
    preventsleep status
    preventsleep prevent --for 00:30:00 --display
    preventsleep prevent --until 17:00
"""
import argparse
import asyncio
import sys
from typing import Optional, Sequence

from loguru import logger

from .client import ControlClient
from .config import Settings, settings
from .errors import PreventSleepError
from .log import setup_logging
from .oneshot import prevent_sleep_for, resolve_duration
from .power import create_driver
from .services import PreventSleepService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="preventsleep",
        description="Keep this machine awake on a schedule or for a while.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the schedule service in the foreground")

    add = sub.add_parser("add", help="Add a schedule to the running service")
    add.add_argument("day_or_date", help="Weekday (mon, tuesday, ...) or date (YYYY-MM-DD)")
    add.add_argument("time_range", help="Time range, e.g. 09:00-17:00")
    add.add_argument("--display", action="store_true", help="Also keep the display on")

    sub.add_parser("list", help="List schedules")

    delete = sub.add_parser("delete", help="Delete a schedule")
    target = delete.add_mutually_exclusive_group(required=True)
    target.add_argument("index", nargs="?", type=int, help="Position shown by 'list'")
    target.add_argument("--id", dest="entry_id", type=int, help="Durable schedule id")

    sub.add_parser("status", help="Show service status")

    prevent = sub.add_parser("prevent", help="Prevent sleep now, for a duration or until a time")
    when = prevent.add_mutually_exclusive_group(required=True)
    when.add_argument("--for", dest="duration", help="Duration, e.g. 00:30:00")
    when.add_argument("--until", help="Datetime (2026-09-20T10:30:00) or time (17:00)")
    prevent.add_argument("--display", action="store_true", help="Also keep the display on")

    return parser


async def _run_client(args: argparse.Namespace, config: Settings) -> None:
    async with ControlClient(config.control_socket, config.host, config.port) as client:
        if args.command == "add":
            print(await client.add_schedule(args.day_or_date, args.time_range, args.display))
        elif args.command == "list":
            for line in await client.list_schedules():
                print(line)
        elif args.command == "delete":
            if args.entry_id is not None:
                print(await client.delete_schedule_by_id(args.entry_id))
            else:
                print(await client.delete_schedule(args.index))
        elif args.command == "status":
            status = await client.get_status()
            applied = status.get("last_applied") or {}
            print(f"Running:    {status['running']}")
            print(f"Driver:     {status['driver']}")
            print(f"Schedules:  {status['schedules_total']}")
            print(f"Keep awake: {applied.get('keep_awake', False)}")
            print(f"Display on: {applied.get('keep_display_on', False)}")
            print(f"Last check: {status.get('last_tick_at') or '-'}")


async def _run_prevent(args: argparse.Namespace, config: Settings) -> None:
    duration = resolve_duration(args.duration, args.until)
    print("Display will also be kept on." if args.display else "Display can turn off.")
    print("Press CTRL+C to cancel.")
    driver = create_driver(config.driver)
    await prevent_sleep_for(driver, duration, args.display)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = settings
    setup_logging(config.log_level if args.command in ("serve", "prevent") else "WARNING", config.log_file)

    try:
        if args.command == "serve":
            asyncio.run(PreventSleepService(config).run_forever())
        elif args.command == "prevent":
            asyncio.run(_run_prevent(args, config))
        else:
            asyncio.run(_run_client(args, config))
    except PreventSleepError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
