"""CLI command for executing sync operations"""

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv

from provider_index.config import config
from provider_index.models.sources_config import SourcesConfig
from provider_index.services.index_store import SQLiteIndexStore
from provider_index.services.refresh_orchestrator import RefreshOrchestrator
from provider_index.services.telemetry import get_telemetry_service
from provider_index.utils.sources_loader import load_sources_config

DEFAULT_SOURCES_PATH = "sources.yaml"


def setup_logging() -> None:
    """Configure logging for CLI (stdout for K8s)"""
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="provider-index-sync",
        description="Index a Terraform provider repository from GitHub into SQLite",
    )
    parser.add_argument(
        "--updates",
        action="store_true",
        help="Only sync repositories whose remote updated_at changed",
    )
    parser.add_argument(
        "--sources",
        default=None,
        help=f"Path to a sources YAML file (default: {DEFAULT_SOURCES_PATH} if present)",
    )
    parser.add_argument(
        "--schedule",
        action="store_true",
        help="Keep running and sync on the configured interval (also enabled by refresh.enabled)",
    )
    return parser.parse_args(argv)


def _load_sources(path: str | None) -> SourcesConfig | None:
    if path is not None:
        return load_sources_config(path)
    if Path(DEFAULT_SOURCES_PATH).exists():
        return load_sources_config(DEFAULT_SOURCES_PATH)
    return None


def _run_scheduler(orchestrator: RefreshOrchestrator, interval_hours: int, max_jobs: int) -> int:
    logger = logging.getLogger(__name__)
    scheduler = BackgroundScheduler()
    orchestrator.configure_scheduler_sync(
        scheduler=scheduler,
        interval_hours=interval_hours,
        max_concurrent_jobs=max_jobs,
    )
    scheduler.start()
    logger.info("Background sync scheduler started (Ctrl+C to stop)")

    try:
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        logger.info("Shutting down background sync scheduler")
    finally:
        orchestrator.stop_scheduler_sync()
        scheduler.shutdown(wait=False)
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for sync CLI command

    Returns:
        int: Exit code (0 for success, 1 for failure)
    """
    args = parse_args(argv)

    # Load .env file first (won't override existing env vars)
    if Path(".env").exists():
        load_dotenv()

    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        logger.info(f"Starting sync operation at {datetime.now().isoformat()}")

        sources = _load_sources(args.sources)
        repositories = sources.get_enabled_repositories() if sources else None
        if sources is not None and not repositories:
            logger.error("No enabled repositories in sources configuration")
            return 1

        store = SQLiteIndexStore(config.db_path)
        store.initialize()

        orchestrator = RefreshOrchestrator(
            store,
            repositories=repositories,
            github_token=sources.github.token if sources else None,
            github_api_url=sources.github.api_url if sources else None,
            telemetry=get_telemetry_service(),
        )

        try:
            if args.schedule or (sources is not None and sources.refresh.enabled):
                interval = sources.refresh.interval_hours if sources else config.sync_interval_hours
                max_jobs = sources.refresh.max_concurrent_jobs if sources else 1
                return _run_scheduler(orchestrator, interval, max_jobs)

            result = orchestrator.run_sync("updates" if args.updates else "full")
        finally:
            store.close()

        if not result.success:
            logger.error(f"Sync failed: {result.error}")
            return 1

        progress = result.progress
        if progress is not None:
            for error in progress.errors:
                logger.error(error)
            logger.info(
                f"Sync completed in {result.duration_seconds:.2f}s: "
                f"{progress.processed_repos}/{progress.total_repos} processed, "
                f"{progress.skipped_repos} skipped, {len(progress.errors)} errors"
            )
            if progress.errors:
                return 1
        return 0
    except FileNotFoundError as e:
        logger.error(f"Configuration file not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
