"""Synchronize provider repositories from GitHub into the index store"""

import asyncio
import itertools
import logging
import threading

import httpx
from pydantic import ValidationError

from provider_index.config import config
from provider_index.models.release import ParsedRelease, ReleaseRecord
from provider_index.models.repository import (
    CompareResult,
    GitHubTag,
    RemoteRepositorySummary,
    RepositoryRecord,
)
from provider_index.models.sources_config import RepositorySource
from provider_index.models.sync import RepoSyncResult, SyncProgress
from provider_index.services.archive_ingest import ArchiveIngestor
from provider_index.services.changelog_parser import (
    build_release_entries,
    normalize_tag_name,
    parse_changelog,
)
from provider_index.services.github_client import (
    ContentUnavailableError,
    GitHubAPIError,
    GitHubClient,
    RateLimitExceededError,
)
from provider_index.services.index_store import IndexStore, StoreError
from provider_index.services.schema_extractor import ProviderSchemaExtractor
from provider_index.services.service_metadata import extract_services

logger = logging.getLogger(__name__)

DEFAULT_WORKER_COUNT = 4


class SyncError(Exception):
    """Raised when a sync cannot start or a pipeline step fails"""

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class RepositoryNotEligibleError(SyncError):
    """Raised for private, archived or empty repositories"""

    pass


class RepositoryLocks:
    """Per-repository non-blocking locks shared by every sync run"""

    def __init__(self):
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def acquire(self, name: str) -> bool:
        with self._guard:
            lock = self._locks.setdefault(name, threading.Lock())
        return lock.acquire(blocking=False)

    def release(self, name: str) -> None:
        with self._guard:
            lock = self._locks.get(name)
        if lock is not None and lock.locked():
            lock.release()

    def is_locked(self, name: str) -> bool:
        with self._guard:
            lock = self._locks.get(name)
        return lock is not None and lock.locked()


def validate_repository(repo: RemoteRepositorySummary) -> None:
    """
    Reject repositories that cannot be indexed

    Raises:
        RepositoryNotEligibleError: If the repository is private, archived or empty
    """
    if repo.private:
        raise RepositoryNotEligibleError(f"repository {repo.full_name} is private")
    if repo.archived:
        raise RepositoryNotEligibleError(f"repository {repo.full_name} is archived")
    if repo.size <= 0:
        raise RepositoryNotEligibleError(f"repository {repo.full_name} is empty")


def link_releases(
    full_name: str, releases: list[ParsedRelease], tags: dict[str, GitHubTag]
) -> list[ReleaseRecord]:
    """
    Build release records linked to the next-older release

    Args:
        full_name: owner/name used for comparison URLs
        releases: Parsed releases, newest first
        tags: Tags keyed by normalize_tag_name()

    Returns:
        One record per release, in the same order
    """
    records = []
    for index, release in enumerate(releases):
        tag = tags.get(normalize_tag_name(release.tag))
        record = ReleaseRecord(
            version=release.version,
            tag=release.tag,
            release_date=release.release_date,
            commit_sha=tag.commit.sha or None if tag else None,
        )

        if index + 1 < len(releases):
            previous = releases[index + 1]
            previous_tag = tags.get(normalize_tag_name(previous.tag))
            record.previous_version = previous.version
            record.previous_tag = previous.tag
            record.previous_commit_sha = previous_tag.commit.sha or None if previous_tag else None
            record.comparison_url = (
                f"https://github.com/{full_name}/compare/{previous.tag}...{release.tag}"
            )
        records.append(record)
    return records


class Syncer:
    """Fetch, ingest, extract and persist configured repositories"""

    def __init__(
        self,
        store: IndexStore,
        client: GitHubClient,
        repositories: list[RepositorySource] | None = None,
        worker_count: int | None = None,
        locks: RepositoryLocks | None = None,
        changelog_file: str | None = None,
        max_release_history: int | None = None,
        tag_max_pages: int | None = None,
    ):
        """
        Initialize syncer

        Args:
            store: Index store receiving all records
            client: GitHub client (owns the rate limiter and response cache)
            repositories: Repositories to sync (defaults to config.repository)
            worker_count: Maximum concurrent repository workers
            locks: Repository locks shared with other syncers on the same store
            changelog_file: Changelog path at the repository root
            max_release_history: Maximum number of releases retained
            tag_max_pages: Maximum pages of tags fetched
        """
        self.store = store
        self.client = client
        self.repositories = repositories or [RepositorySource(full_name=config.repository)]
        self.worker_count = worker_count or config.sync_workers
        self.locks = locks or RepositoryLocks()
        self.changelog_file = changelog_file or config.changelog_file
        self.max_release_history = max_release_history or config.max_release_history
        self.tag_max_pages = tag_max_pages or config.tag_max_pages

    def worker_count_for(self, total: int) -> int:
        """Number of workers for `total` queued repositories"""
        if total < 1:
            return 0
        if total == 1:
            return 1

        count = self.worker_count if self.worker_count > 0 else DEFAULT_WORKER_COUNT
        count = min(count, total, self.client.rate_limiter.remaining)
        return max(count, 1)

    async def compare_tags(self, base: str, head: str) -> CompareResult:
        """Compare two tags of the primary repository"""
        return await self.client.compare(self.repositories[0].full_name, base, head)

    async def fetch_repositories(self) -> list[tuple[RemoteRepositorySummary, RepositorySource]]:
        """
        Fetch and validate metadata for every configured repository

        Raises:
            SyncError: If any metadata fetch fails
            RepositoryNotEligibleError: If a repository cannot be indexed
        """
        repos = []
        for source in self.repositories:
            try:
                repo = await self.client.get_repository(source.full_name)
            except (
                GitHubAPIError,
                RateLimitExceededError,
                ValidationError,
                httpx.HTTPError,
            ) as e:
                raise SyncError(
                    f"failed to fetch repository {source.full_name}: {e}", cause=e
                ) from e
            validate_repository(repo)
            repos.append((repo, source))
        return repos

    async def sync_all(self) -> SyncProgress:
        """
        Sync every configured repository unconditionally

        Returns:
            SyncProgress: Final progress; per-repository failures are in `errors`

        Raises:
            SyncError: If repository metadata cannot be fetched
        """
        logger.info("Fetching repositories from GitHub...")
        repos = await self.fetch_repositories()

        progress = SyncProgress(total_repos=len(repos))
        logger.info(f"Found {len(repos)} repositories")

        await self._process_queue(repos, progress, record_updates=False)

        logger.info(
            f"Sync completed: {progress.processed_repos - len(progress.errors)}/"
            f"{progress.total_repos} repositories synced successfully"
        )
        return progress

    async def sync_updates(self) -> SyncProgress:
        """
        Sync only repositories whose remote updated_at changed

        Raises:
            SyncError: If repository metadata cannot be fetched
        """
        self.client.clear_cache()
        logger.info("Fetching repositories from GitHub (cache cleared)...")
        repos = await self.fetch_repositories()

        progress = SyncProgress(total_repos=len(repos))
        pending = []
        for repo, source in repos:
            progress.current_repo = repo.name
            existing = await asyncio.to_thread(self.store.get_repository, repo.name)

            if existing is not None and existing.last_updated == repo.updated_at:
                logger.info(f"Skipping {repo.name} (already up-to-date)")
                progress.skipped_repos += 1
                progress.processed_repos += 1
                continue

            if existing is None:
                logger.info(f"Repository {repo.name} not indexed yet, will sync")
            else:
                logger.info(
                    f"Repository {repo.name} needs update: "
                    f"stored='{existing.last_updated}' vs remote='{repo.updated_at}'"
                )
            pending.append((repo, source))

        await self._process_queue(pending, progress, record_updates=True)

        logger.info(
            f"Sync completed: {len(progress.updated_repos)}/{progress.total_repos} "
            f"repositories synced, {progress.skipped_repos} skipped (up-to-date), "
            f"{len(progress.errors)} errors"
        )
        return progress

    async def _process_queue(
        self,
        repos: list[tuple[RemoteRepositorySummary, RepositorySource]],
        progress: SyncProgress,
        record_updates: bool,
    ) -> None:
        """Run the worker pool and fold per-repository results into progress"""
        if not repos:
            return

        jobs: asyncio.Queue = asyncio.Queue()
        for item in repos:
            jobs.put_nowait(item)
        results: asyncio.Queue[RepoSyncResult] = asyncio.Queue()
        sequence = itertools.count(progress.processed_repos + 1)

        async def worker() -> None:
            while True:
                try:
                    repo, source = jobs.get_nowait()
                except asyncio.QueueEmpty:
                    return
                logger.info(
                    f"Syncing repository: {repo.name} ({next(sequence)}/{progress.total_repos})"
                )
                await results.put(await self.sync_repository(repo, source))

        async def aggregate() -> None:
            for _ in range(len(repos)):
                result = await results.get()
                progress.current_repo = result.name
                progress.processed_repos += 1
                if not result.success:
                    progress.errors.append(result.error or f"Failed to sync {result.name}")
                elif record_updates and not result.unavailable:
                    progress.updated_repos.append(result.name)

        workers = [worker() for _ in range(self.worker_count_for(len(repos)))]
        await asyncio.gather(aggregate(), *workers)

    async def sync_repository(
        self, repo: RemoteRepositorySummary, source: RepositorySource
    ) -> RepoSyncResult:
        """Sync one repository; never raises"""
        if not self.locks.acquire(repo.full_name):
            message = f"Failed to sync {repo.name}: sync already in progress"
            logger.error(message)
            return RepoSyncResult(name=repo.name, success=False, error=message)

        try:
            unavailable = await self._sync_repository(repo, source)
            return RepoSyncResult(name=repo.name, success=True, unavailable=unavailable)
        except Exception as e:
            message = f"Failed to sync {repo.name}: {e}"
            logger.error(message)
            return RepoSyncResult(name=repo.name, success=False, error=message)
        finally:
            self.locks.release(repo.full_name)

    async def _sync_repository(
        self, repo: RemoteRepositorySummary, source: RepositorySource
    ) -> bool:
        """
        Run the per-repository pipeline

        Returns:
            True when the archive was unavailable and the record was removed

        Raises:
            SyncError: If metadata cannot be stored or files cannot be ingested
        """
        prefix = source.resource_prefix or config.resource_prefix

        prior = await asyncio.to_thread(self.store.get_repository, repo.name)
        try:
            repository_id = await asyncio.to_thread(
                self.store.insert_repository, RepositoryRecord.from_remote(repo)
            )
        except StoreError as e:
            raise SyncError(f"failed to insert repository: {e}", cause=e) from e

        if prior is not None:
            try:
                await asyncio.to_thread(self.store.clear_repository_data, repository_id)
            except StoreError as e:
                logger.warning(f"Failed to clear old data for {repo.name}: {e}")

        try:
            await self._sync_readme(repo)
        except Exception as e:
            logger.warning(f"Failed to fetch README for {repo.name}: {e}")

        try:
            data = await self.client.get_archive(self.client.tarball_url(repo.full_name))
        except ContentUnavailableError:
            logger.info(f"Skipping {repo.name}: repository content unavailable")
            try:
                await asyncio.to_thread(self.store.delete_repository_by_id, repository_id)
            except StoreError as e:
                logger.warning(f"Failed to delete repository record for {repo.name}: {e}")
            return True
        except (GitHubAPIError, RateLimitExceededError) as e:
            raise SyncError(f"failed to sync files: {e}", cause=e) from e

        ingestor = ArchiveIngestor(self.store)
        await asyncio.to_thread(ingestor.ingest, data, repository_id)

        try:
            await asyncio.to_thread(self.index_provider_schema, repository_id, prefix)
        except Exception as e:
            logger.warning(f"Failed to parse provider resources for {repo.name}: {e}")

        try:
            await self.capture_releases(repository_id, repo, prefix)
        except Exception as e:
            logger.warning(f"Failed to ingest release metadata for {repo.name}: {e}")

        await self.persist_repository_tags(repository_id)
        await self.persist_repository_aliases(repository_id)
        return False

    async def _sync_readme(self, repo: RemoteRepositorySummary) -> None:
        readme = await self.client.get_readme(repo.full_name)
        await asyncio.to_thread(
            self.store.insert_repository, RepositoryRecord.from_remote(repo, readme)
        )

    def index_provider_schema(self, repository_id: int, resource_prefix: str) -> int:
        """
        Extract services and resources from stored files and persist them

        Returns:
            Number of resources extracted

        Raises:
            ExtractionError: If no Go files or no resources are found
        """
        files = self.store.get_repository_files(repository_id)
        extractor = ProviderSchemaExtractor(files, resource_prefix)

        service_ids: dict[str, int] = {}
        for service in extract_services(extractor.sources):
            try:
                service_id = self.store.insert_provider_service(repository_id, service)
            except StoreError as e:
                logger.warning(f"Failed to persist service {service.name}: {e}")
                continue
            if service.directory:
                service_ids[service.directory] = service_id

        resources = extractor.extract()
        for resource in resources:
            try:
                resource_id = self.store.insert_provider_resource(
                    repository_id, resource, service_ids.get(resource.service_dir or "")
                )
            except StoreError as e:
                logger.warning(f"Failed to persist provider resource {resource.name}: {e}")
                continue

            for attribute in resource.attributes:
                try:
                    self.store.insert_provider_attribute(resource_id, attribute)
                except StoreError as e:
                    logger.warning(
                        f"Failed to persist attribute {attribute.name} on {resource.name}: {e}"
                    )

            if resource.source is not None:
                try:
                    self.store.upsert_provider_resource_source(resource_id, resource.source)
                except StoreError as e:
                    logger.warning(f"Failed to store source snippet for {resource.name}: {e}")

        logger.info(f"Indexed {len(resources)} provider definitions")
        return len(resources)

    async def capture_releases(
        self, repository_id: int, repo: RemoteRepositorySummary, resource_prefix: str
    ) -> int:
        """
        Parse the changelog, link releases to tags and persist them

        Returns:
            Number of releases stored

        Raises:
            SyncError: If the changelog is missing or contains no releases
        """
        changelog = await asyncio.to_thread(self.store.get_file, repo.name, self.changelog_file)
        if changelog is None:
            raise SyncError(f"{self.changelog_file} not found")

        releases = parse_changelog(changelog.content, self.max_release_history)
        if not releases:
            raise SyncError(f"no releases parsed from {self.changelog_file}")

        try:
            tags = await self.client.list_tags(repo.full_name, self.tag_max_pages)
        except (GitHubAPIError, RateLimitExceededError) as e:
            logger.warning(f"Failed to fetch tags for {repo.full_name}: {e}")
            tags = []

        lookup = {}
        for tag in tags:
            normalized = normalize_tag_name(tag.name)
            if normalized:
                lookup[normalized] = tag

        records = link_releases(repo.full_name, releases, lookup)
        await asyncio.to_thread(
            self._persist_releases, repository_id, releases, records, resource_prefix
        )
        logger.info(f"Stored {len(records)} releases for {repo.name}")
        return len(records)

    def _persist_releases(
        self,
        repository_id: int,
        releases: list[ParsedRelease],
        records: list[ReleaseRecord],
        resource_prefix: str,
    ) -> None:
        for release, record in zip(releases, records):
            try:
                release_id = self.store.upsert_provider_release(repository_id, record)
                self.store.replace_release_entries(
                    release_id, build_release_entries(release, resource_prefix)
                )
            except StoreError as e:
                raise SyncError(f"failed to persist release {release.version}: {e}", cause=e) from e

    async def persist_repository_tags(self, repository_id: int) -> None:
        """Extension point for repository tag indexing"""
        return None

    async def persist_repository_aliases(self, repository_id: int) -> None:
        """Extension point for repository alias indexing"""
        return None
