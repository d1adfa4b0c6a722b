"""Main entry point for the jobfeed sync service."""

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from jobfeed.config.environment import EnvironmentConfig
from jobfeed.config.exceptions import ConfigurationError
from jobfeed.config.loader import load_config
from jobfeed.config.models import AppConfig
from jobfeed.logging import get_logger
from jobfeed.logging.config import configure_logging
from jobfeed.notifications.service import NotificationService
from jobfeed.notifications.smtp_client import SMTPClient
from jobfeed.notifications.webhook import WebhookClient
from jobfeed.persistence.database import IndexStore
from jobfeed.persistence.exceptions import StoreConnectionError
from jobfeed.pipeline import PipelineRunResult, SyncPipeline
from jobfeed.query.models import MAX_PAGE_SIZE, ListingQuery
from jobfeed.query.service import ListingQueryService
from jobfeed.scheduler import SchedulerService
from jobfeed.utils.timestamps import format_timestamp

logger = get_logger(__name__, component="cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobfeed",
        description="jobfeed - keep a searchable index of employers' job boards in sync",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sync immediately and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument(
        "--query-recent",
        type=int,
        default=None,
        metavar="N",
        help="Print the N most recently first-seen active listings and exit",
    )
    return parser


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI flag, then LOG_LEVEL, then the config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_notification_service(
    app_config: AppConfig, env_config: EnvironmentConfig
) -> Optional[NotificationService]:
    """Return a NotificationService, or None when no channel is enabled."""
    notifications = app_config.notifications
    if not (notifications.email_enabled or notifications.webhook_enabled):
        return None
    timeout = app_config.advanced.http_request_timeout
    return NotificationService(
        notifications,
        env_config,
        smtp_client=SMTPClient(timeout=timeout),
        webhook_client=WebhookClient(timeout=timeout),
    )


def format_listing_lines(service: ListingQueryService, limit: int) -> List[str]:
    """One tab-separated line per recent active listing, newest first."""
    if limit <= 0:
        return []
    page = service.search(ListingQuery(limit=min(limit, MAX_PAGE_SIZE)))
    lines = []
    for listing in page.items:
        lines.append(
            "\t".join(
                [
                    format_timestamp(listing.first_seen_at),
                    listing.employer_name or listing.employer_id,
                    listing.title,
                    listing.location_normalized,
                    ",".join(listing.tags),
                    listing.url,
                ]
            )
        )
    return lines


def run_daemon(pipeline: SyncPipeline, app_config: AppConfig, store: IndexStore) -> int:
    """Run the scheduler until SIGINT/SIGTERM, then close the store."""
    shutdown_event = threading.Event()
    scheduler_service = SchedulerService(
        sync_callable=pipeline.run_once,
        interval_seconds=app_config.sync_interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
        scheduler_service.shutdown(wait=False)
    return 0


def log_run_summary(result: PipelineRunResult) -> None:
    logger.info(
        f"Sync completed: {result.total_fetched} fetched, {result.total_created} new, "
        f"{result.total_removed} removed, {len(result.skipped_employers)} employers skipped",
        extra={
            "event": "service.sync_once.completed",
            "duration_seconds": result.total_duration_seconds,
            "had_errors": result.had_errors,
            "skipped_employers": result.skipped_employers,
        },
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for jobfeed.

    Returns:
        Exit code: 0 on success, 1 on configuration or startup failure, or
        when a ``--once`` run had errors
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)
    load_dotenv()

    store: Optional[IndexStore] = None
    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "jobfeed starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "once": args.once,
                "employer_count": len(app_config.get_enabled_employers()),
                "sync_interval_seconds": app_config.sync_interval_seconds,
            },
        )

        store = IndexStore(env_config.store_url).open()

        if args.query_recent is not None:
            for line in format_listing_lines(ListingQueryService(store), args.query_recent):
                print(line)
            return 0

        pipeline = SyncPipeline(
            app_config=app_config,
            store=store,
            notification_service=build_notification_service(app_config, env_config),
        )

        if args.once:
            result = pipeline.run_once()
            log_run_summary(result)
            return 1 if result.had_errors else 0

        return run_daemon(pipeline, app_config, store)

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except StoreConnectionError as e:
        print(f"Store Error: {e}", file=sys.stderr)
        logger.error(
            f"Could not open index store: {e}",
            extra={"event": "service.startup.failed", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    finally:
        if store is not None:
            store.close()
            logger.info(
                "jobfeed stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )


if __name__ == "__main__":
    sys.exit(main())
