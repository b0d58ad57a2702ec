"""Command line interface for DinnerTableMatch."""
from __future__ import annotations

import argparse
import random
from pathlib import Path
from typing import Sequence

import structlog

from .config import Config, get_config
from .csv_loader import load_users, write_assignments
from .exceptions import DinnerTableError
from .logging_utils import configure_logging
from .models import ROLE_ADMIN, User
from .protocol import TableService
from .store import USERS, InMemoryStore

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dinner table assignment")
    parser.add_argument("--users", required=True, help="Path to users.csv")
    parser.add_argument("--max-per-table", type=int, default=None,
                        help="Maximum people per table (at least 2).")
    parser.add_argument("--consider-location", action="store_true",
                        help="Seat people at the same location together.")
    parser.add_argument("--shuffle", action="store_true",
                        help="Shuffle everyone after the initial assignment.")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for --shuffle.")
    parser.add_argument("--out-assignments", type=Path,
                        help="Write assignments CSV: user_id,user,table_id,table.")
    return parser


def main(argv: Sequence[str] | None = None, config: Config | None = None) -> int:
    """Entry point used by ``python -m dinner_table_match.cli``."""
    parser = build_parser()
    args = parser.parse_args(argv)
    config = config or get_config()
    configure_logging(config)

    users = load_users(args.users)
    store = InMemoryStore()
    for user in users:
        if user.id:
            store.set(USERS, user.id, user.to_dict())

    service = TableService(store, config=config, rng=random.Random(args.seed))
    operator = User(id="cli", name="cli", role=ROLE_ADMIN)
    try:
        service.update_settings(
            operator,
            max_people_per_table=args.max_per_table,
            consider_location=args.consider_location,
        )
        tables = service.reassign_all(operator)
        if args.shuffle:
            tables = service.shuffle_tables(operator)
    except DinnerTableError as e:
        logger.error("assignment_failed", error=e.message)
        parser.exit(2, f"error: {e.message}\n")

    for table in tables:
        for member in table.members:
            print(f"{member.name or member.id},{table.name}")

    stats = service.distribution_stats()
    print(f"[STATS] tables={len(tables)} optimal={stats.total_tables} "
          f"average={stats.average_per_table} with_extra={stats.tables_with_extra_person}")

    if args.out_assignments:
        write_assignments(tables, args.out_assignments)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
