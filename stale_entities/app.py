import argparse
from pathlib import Path

from . import __version__
from .config import load_settings
from .errors import StaleEntitiesError
from .queue_store import QueueStore


def open_store(args: argparse.Namespace) -> QueueStore:
    settings = load_settings()
    db_path = Path(args.db) if args.db else settings.db_path
    return QueueStore(
        db_path,
        max_retries=settings.store_max_retries,
        retry_delay=settings.store_retry_delay,
    )


def cmd_status(args: argparse.Namespace) -> None:
    store = open_store(args)
    jobs = store.job_ids()
    if not jobs:
        print("No stale entities queued.")
        return
    print(f"Found {len(jobs)} jobs with queued stale entities:\n")
    for job_id, count in jobs.items():
        print(f"  {job_id}: {count}")


def cmd_peek(args: argparse.Namespace) -> None:
    store = open_store(args)
    entity_ids = store.peek_batch(args.job, args.limit)
    if not entity_ids:
        print(f"Queue for {args.job} is empty.")
        return
    attempts = store.attempts(args.job, entity_ids)
    print(f"Next {len(entity_ids)} of {store.size(args.job)} queued for {args.job}:")
    for entity_id in entity_ids:
        tries = attempts.get(entity_id, 0)
        suffix = f" (failed {tries}x)" if tries else ""
        print(f" - {entity_id}{suffix}")


def cmd_clear(args: argparse.Namespace) -> None:
    store = open_store(args)
    removed = store.clear(args.job)
    print(f"Cleared {removed} queued entities for {args.job}.")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="stale-entities", description="Inspect stale entity queues")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Path to SQLite database (default: STALE_ENTITIES_DB_PATH or data/stale_entities.db)")

    subparsers = parser.add_subparsers(dest="command")
    sts = subparsers.add_parser("status", help="Show queued entity counts per job")
    sts.set_defaults(func=cmd_status)

    pk = subparsers.add_parser("peek", help="Show the next batch of a job's queue without removing it")
    pk.add_argument("--job", required=True, help="Import job id")
    pk.add_argument("--limit", type=int, default=20, help="Number of entries to show (default: 20)")
    pk.set_defaults(func=cmd_peek)

    clr = subparsers.add_parser("clear", help="Drop every queued entity of a job")
    clr.add_argument("--job", required=True, help="Import job id")
    clr.set_defaults(func=cmd_clear)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        try:
            args.func(args)
        except (StaleEntitiesError, ValueError) as e:
            raise SystemExit(str(e))
        return

    parser.print_help()


if __name__ == "__main__":
    main()
