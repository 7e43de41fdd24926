"""
Operator commands for the message queue.

Usage:
    claimant-queue-admin init-db
    claimant-queue-admin status [--type SEND_EMAIL]
    claimant-queue-admin failures [--limit 20] [--type MAKE_PAYMENT]

The database URL comes from ``--database-url``, then ``DATABASE_URL``,
then the ``database.url`` key of the YAML named by ``--config`` or
``CLAIMANT_QUEUE_CONFIG``.
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from sqlalchemy import func, select

from claimant_config.loader import load_settings
from claimant_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from claimant_kernel.exceptions import ClaimantServiceError

from claimant_messaging.domain.types import MessageStatus, MessageType
from claimant_messaging.models.message import MessageModel
from claimant_messaging.services.failure_reporter import FailureReporter


def _message_type(value: str) -> MessageType:
    try:
        return MessageType(value.upper())
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"unknown message type '{value}'; choose from {', '.join(MessageType.values())}"
        ) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claimant-queue-admin",
        description="Inspect and bootstrap the claimant message queue",
    )
    parser.add_argument("--config", help="Path to the message processor YAML file")
    parser.add_argument("--database-url", help="Override the database URL")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("init-db", help="Create the message queue tables")

    status = commands.add_parser("status", help="Message counts per type and status")
    status.add_argument("--type", type=_message_type, dest="message_type")

    failures = commands.add_parser("failures", help="Most recent failure reports")
    failures.add_argument("--limit", type=int, default=20)
    failures.add_argument("--type", type=_message_type, dest="message_type")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except (ClaimantServiceError, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    database_url = args.database_url or settings.database_url
    if not database_url:
        print(
            "ERROR: no database URL; pass --database-url or set DATABASE_URL",
            file=sys.stderr,
        )
        return 2

    init_engine_from_url(database_url)
    try:
        if args.command == "init-db":
            create_tables()
            print("Message queue tables created.")
            return 0
        if args.command == "status":
            return _print_status(args.message_type)
        return _print_failures(args.limit, args.message_type)
    finally:
        reset_engine()


def _print_status(message_type: MessageType | None) -> int:
    stmt = (
        select(MessageModel.message_type, MessageModel.status, func.count())
        .group_by(MessageModel.message_type, MessageModel.status)
        .order_by(MessageModel.message_type)
    )
    if message_type is not None:
        stmt = stmt.where(MessageModel.message_type == message_type.value)

    session = get_session_factory()()
    try:
        rows = session.execute(stmt).all()
    finally:
        session.close()

    counts: dict[str, dict[str, int]] = {}
    for type_name, status, count in rows:
        counts.setdefault(type_name, {})[status] = count

    if not counts:
        print("No messages.")
        return 0

    statuses = [s.value for s in MessageStatus]
    print(f"{'TYPE':<30}" + "".join(f"{s:>12}" for s in statuses))
    for type_name in sorted(counts):
        print(
            f"{type_name:<30}"
            + "".join(f"{counts[type_name].get(s, 0):>12}" for s in statuses)
        )
    return 0


def _print_failures(limit: int, message_type: MessageType | None) -> int:
    reports = FailureReporter(get_session_factory()).recent_failures(
        limit=limit, message_type=message_type,
    )
    if not reports:
        print("No failure reports.")
        return 0

    for report in reports:
        print(
            f"{report.reported_at.isoformat()}  {report.message_type.value:<28} "
            f"{report.message_id}  attempts={report.attempt_count}  {report.reason}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
