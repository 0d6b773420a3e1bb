"""Runs sync jobs on demand and on a background schedule"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from provider_index.config import config
from provider_index.models.sources_config import RepositorySource
from provider_index.models.sync import SyncJobResult, SyncMode, SyncProgress
from provider_index.services.github_client import (
    ANONYMOUS_RATE_LIMIT,
    AUTHENTICATED_RATE_LIMIT,
    GitHubClient,
    RateLimiter,
    ResponseCache,
)
from provider_index.services.index_store import IndexStore
from provider_index.services.syncer import RepositoryLocks, Syncer
from provider_index.services.telemetry import TelemetryService

logger = logging.getLogger(__name__)

JOB_ID = "provider_sync"


class RefreshOrchestrator:
    """Run full or incremental syncs and report them as SyncJobResult"""

    def __init__(
        self,
        store: IndexStore,
        repositories: list[RepositorySource] | None = None,
        github_token: str | None = None,
        github_api_url: str | None = None,
        client_factory: Callable[[], GitHubClient] | None = None,
        telemetry: TelemetryService | None = None,
    ):
        """
        Initialize refresh orchestrator

        The rate limiter, response cache and repository locks outlive single
        jobs; a fresh HTTP client is created for every job because each job
        runs in its own event loop.

        Args:
            store: Initialized index store
            repositories: Repositories to sync (defaults to config.repository)
            github_token: GitHub token (defaults to config.github_token)
            github_api_url: GitHub API base URL (defaults to config.github_api_url)
            client_factory: Optional factory for GitHub clients (used by tests)
            telemetry: Optional telemetry service for job results
        """
        self.config = config
        self.store = store
        self.repositories = repositories
        self.github_token = github_token or config.github_token
        self.github_api_url = github_api_url or config.github_api_url
        self.telemetry = telemetry

        max_tokens = AUTHENTICATED_RATE_LIMIT if self.github_token else ANONYMOUS_RATE_LIMIT
        self.rate_limiter = RateLimiter(max_tokens, float(config.rate_limit_window_seconds))
        self.cache = ResponseCache(float(config.cache_ttl_seconds))
        self.locks = RepositoryLocks()
        self.client_factory = client_factory or self._default_client

        self.scheduler: BackgroundScheduler | None = None
        self.last_result: SyncJobResult | None = None

    def _default_client(self) -> GitHubClient:
        return GitHubClient(
            token=self.github_token,
            api_url=self.github_api_url,
            rate_limiter=self.rate_limiter,
            cache=self.cache,
        )

    def configure_scheduler_sync(
        self,
        scheduler: BackgroundScheduler,
        interval_hours: int,
        max_concurrent_jobs: int = 1,
    ) -> None:
        """
        Schedule incremental syncs (synchronous version for BackgroundScheduler)

        Args:
            scheduler: Initialized BackgroundScheduler instance
            interval_hours: Sync interval in hours
            max_concurrent_jobs: Maximum concurrent sync jobs
        """
        self.scheduler = scheduler

        trigger = IntervalTrigger(hours=interval_hours, start_date=datetime.now())

        self.scheduler.add_job(
            self.run_scheduled_sync,
            trigger=trigger,
            id=JOB_ID,
            name="Provider Index Sync",
            max_instances=max_concurrent_jobs,
            replace_existing=True,
        )

        logger.info(f"Scheduled incremental sync every {interval_hours} hours")

    def stop_scheduler_sync(self) -> None:
        """Gracefully stop scheduler (synchronous version)"""
        if self.scheduler:
            try:
                self.scheduler.remove_job(JOB_ID)
                logger.info("Stopped sync scheduler")
            except JobLookupError:
                logger.warning("Sync job not found during shutdown")

    def run_scheduled_sync(self) -> SyncJobResult:
        return self.run_sync("updates")

    async def _run(self, mode: SyncMode) -> SyncProgress:
        async with self.client_factory() as client:
            syncer = Syncer(self.store, client, self.repositories, locks=self.locks)
            if mode == "full":
                return await syncer.sync_all()
            return await syncer.sync_updates()

    def run_sync(self, mode: SyncMode = "updates") -> SyncJobResult:
        """
        Execute one sync job

        Note: This is synchronous because BackgroundScheduler runs in threads.
        asyncio.run() bridges to the async syncer. Any exception is reported
        in the result instead of being raised.

        Args:
            mode: "full" (sync_all) or "updates" (sync_updates)

        Returns:
            SyncJobResult: Terminal state of the job
        """
        start_time = datetime.now()
        logger.info(f"Starting {mode} sync")

        try:
            progress = asyncio.run(self._run(mode))
            end_time = datetime.now()
            result = SyncJobResult(
                mode=mode,
                success=True,
                start_time=start_time,
                end_time=end_time,
                duration_seconds=(end_time - start_time).total_seconds(),
                progress=progress,
            )
            logger.info(
                f"Sync completed in {result.duration_seconds:.2f}s "
                f"({progress.processed_repos}/{progress.total_repos} processed, "
                f"{len(progress.errors)} errors)"
            )
        except Exception as e:
            logger.error(f"Sync failed with exception: {e}", exc_info=True)
            end_time = datetime.now()
            result = SyncJobResult(
                mode=mode,
                success=False,
                start_time=start_time,
                end_time=end_time,
                duration_seconds=(end_time - start_time).total_seconds(),
                error=str(e),
            )

        self.last_result = result
        if self.telemetry is not None:
            self.telemetry.log_sync_job(result)
        return result
