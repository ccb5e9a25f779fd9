"""Command-line interface for the ingestion pipeline.

Provides subcommands: `run` (one ingestion run now), `schedule` (daily runs
until interrupted), `reparse` (retry form parsing of stored filings without
form data) and `init-indexes`. Each command is implemented as a `cmd_*`
function that accepts an argparse namespace.
"""
from __future__ import annotations

import argparse
import logging
from typing import Callable

from dotenv import load_dotenv

from insider_monitor.config import Settings, get_mail_settings, get_settings
from insider_monitor.db import MongoStore, get_client, get_db
from insider_monitor.exceptions import ConfigurationError, RunError
from insider_monitor.ingest.fetch import EDGAR_LIMITER, EdgarFetcher
from insider_monitor.logging_config import configure_logging
from insider_monitor.notify.digest import SubscriptionMatcher
from insider_monitor.notify.mailer import Mailer
from insider_monitor.orchestrator import IngestionOrchestrator, reparse_incomplete_filings
from insider_monitor.scheduler import Scheduler

log = logging.getLogger(__name__)


# --------------------------------------------------
# Helpers
# --------------------------------------------------
def _store(s: Settings) -> MongoStore:
    client = get_client(s.mongo_uri, tls=s.mongo_tls)
    return MongoStore(get_db(client, s.mongo_db))


def build_notifier(store: MongoStore) -> Callable[[], int]:
    """Return a callable that matches subscriptions and sends digests.

    Mail settings are read on every call so a missing relay only disables
    sending for that run.
    """
    def notify() -> int:
        mail = get_mail_settings()
        return SubscriptionMatcher(store, Mailer(mail), mail.server_fqdn).run()

    return notify


def build_orchestrator(s: Settings) -> IngestionOrchestrator:
    store = _store(s)
    EDGAR_LIMITER.configure(s.requests_per_second)
    fetcher = EdgarFetcher(s.sec_user_agent, base_url=s.edgar_base_url)
    return IngestionOrchestrator(
        store,
        fetcher,
        form_types=s.form_types,
        notifier=build_notifier(store),
        workers=s.fetch_workers,
    )


# --------------------------------------------------
# Commands
# --------------------------------------------------
def cmd_run(s: Settings, _: argparse.Namespace) -> int:
    """Run one ingestion immediately; exit status 1 on failure."""
    try:
        report = build_orchestrator(s).run()
    except RunError as exc:
        log.error("%s", exc)
        return 1
    log.info("Run report: %s", report)
    return 0


def cmd_schedule(s: Settings, args: argparse.Namespace) -> int:
    """Trigger runs daily at the configured time until interrupted."""
    orchestrator = build_orchestrator(s)
    scheduler = Scheduler(
        orchestrator.run,
        run_at=s.schedule_time,
        timezone=s.schedule_timezone,
        max_attempts=s.max_attempts,
        retry_delay=s.retry_delay_minutes * 60,
    )
    if args.run_now:
        scheduler.trigger()
    try:
        scheduler.serve_forever()
    except KeyboardInterrupt:
        log.info("Scheduler stopped.")
    return 0


def cmd_reparse(s: Settings, _: argparse.Namespace) -> int:
    """Re-parse stored filings that were persisted without form data."""
    reparse_incomplete_filings(_store(s))
    return 0


def cmd_init_indexes(s: Settings, _: argparse.Namespace) -> int:
    """Create missing indexes on the filings collection."""
    created = _store(s).ensure_indexes()
    log.info("Database indexes initialized (%d created)", len(created))
    return 0


COMMANDS = {
    "run": cmd_run,
    "schedule": cmd_schedule,
    "reparse": cmd_reparse,
    "init-indexes": cmd_init_indexes,
}


# --------------------------------------------------
# CLI
# --------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    """Build and return the top-level argument parser for the CLI.

    Returns:
        Configured argparse.ArgumentParser instance.
    """
    p = argparse.ArgumentParser(prog="insider-monitor")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("run", help="run one ingestion now")

    p_schedule = sub.add_parser("schedule", help="run ingestion daily")
    p_schedule.add_argument("--run-now", action="store_true", help="also run once at startup")

    sub.add_parser("reparse", help="re-parse filings stored without form data")
    sub.add_parser("init-indexes", help="create database indexes")

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entry point: parse args, configure logging and dispatch commands."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        s = get_settings()
    except ConfigurationError as exc:
        configure_logging(None)
        log.critical("Refusing to start: %s", exc)
        return 2

    configure_logging(s.log_file, s.log_level)
    return COMMANDS[args.cmd](s, args)


if __name__ == "__main__":
    raise SystemExit(main())
