"""Main entry point for the Job Board Notifier service."""

import argparse
import json
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from notifier.config.environment import EnvironmentConfig
from notifier.config.exceptions import ConfigurationError
from notifier.config.loader import load_config, validate_config_file
from notifier.config.models import AppConfig
from notifier.logging import get_logger
from notifier.logging.config import configure_logging
from notifier.persistence.database import close_database, init_database
from notifier.pipeline import NotificationPipeline
from notifier.scheduler import CLEANUP_TASK, JOB_ALERTS_TASK, RELATED_JOBS_TASK

logger = get_logger(__name__, component="cli")

TASK_NAMES = (JOB_ALERTS_TASK, RELATED_JOBS_TASK, CLEANUP_TASK)


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Priority for the log level: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Job Board Notifier - queue processing, alert sweeps and job recommendations"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--run-task",
        choices=TASK_NAMES,
        metavar="NAME",
        help=f"Run one scheduler task once and exit ({', '.join(TASK_NAMES)})",
    )
    action.add_argument(
        "--process-queue",
        action="store_true",
        help="Run a single queue processing tick and exit",
    )
    action.add_argument(
        "--queue-stats",
        action="store_true",
        help="Print queue statistics as JSON and exit",
    )
    action.add_argument(
        "--validate-config",
        action="store_true",
        help="Validate the configuration file and exit (no database access)",
    )
    return parser


def run_daemon(pipeline: NotificationPipeline, grace_seconds: int) -> None:
    """Run until SIGINT/SIGTERM, then stop ticking and wait out in-flight work."""
    stop_requested = threading.Event()

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        stop_requested.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    pipeline.start()
    logger.info(
        "Notifier started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        stop_requested.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )

    # No new ticks from here on; in-flight work gets the grace period
    pipeline.stop(wait=False)
    if not pipeline.wait_idle(timeout=grace_seconds):
        logger.warning(
            f"Queue tick or scheduled task still running after {grace_seconds}s grace period",
            extra={"event": "service.shutdown.grace_expired", "grace_seconds": grace_seconds},
        )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the Job Board Notifier.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    load_dotenv()
    start_time = time.time()
    args = build_parser().parse_args(argv)

    if args.validate_config:
        return 0 if validate_config_file(args.config) else 1

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        environment = os.environ.get("ENVIRONMENT", "local")
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=environment,
        )

        logger.info(
            "Job Board Notifier starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "delivery_method": app_config.delivery.method,
            },
        )

        init_database(env_config.database_url)

        try:
            pipeline = NotificationPipeline(app_config, env_config)

            if args.queue_stats:
                print(json.dumps(pipeline.get_queue_stats(), indent=2))
                return 0

            if args.process_queue:
                result = pipeline.process_queue_now()
                logger.info(
                    f"Manual queue tick completed: {result.claimed} claimed, "
                    f"{result.completed} completed, {result.retried} retried, {result.failed} failed",
                    extra={"event": "service.manual_tick.completed", **result.to_dict()},
                )
                return 0

            if args.run_task:
                result = pipeline.run_task(args.run_task)
                summary = result.to_dict() if hasattr(result, "to_dict") else {}
                logger.info(
                    f"Task {args.run_task} completed",
                    extra={"event": "service.manual_task.completed", "task": args.run_task, **summary},
                )
                return 0

            run_daemon(pipeline, app_config.shutdown_grace_seconds)
            return 0
        finally:
            close_database()
            logger.info(
                "Job Board Notifier stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={
                "event": "service.fatal",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
