"""Data models for the provider index"""

from provider_index.models.provider import (
    ParsedProviderResource,
    ProviderAttribute,
    ProviderService,
    ResourceRegistration,
    SourceSnippetBundle,
)
from provider_index.models.release import (
    ParsedRelease,
    ReleaseEntry,
    ReleaseRecord,
    ReleaseSection,
)
from provider_index.models.repository import (
    CompareResult,
    GitHubContent,
    GitHubTag,
    IngestedFile,
    RemoteRepositorySummary,
    RepositoryRecord,
)
from provider_index.models.sync import RepoSyncResult, SyncJobResult, SyncProgress

__all__ = [
    "CompareResult",
    "GitHubContent",
    "GitHubTag",
    "IngestedFile",
    "ParsedProviderResource",
    "ParsedRelease",
    "ProviderAttribute",
    "ProviderService",
    "ReleaseEntry",
    "ReleaseRecord",
    "ReleaseSection",
    "RemoteRepositorySummary",
    "RepoSyncResult",
    "RepositoryRecord",
    "ResourceRegistration",
    "SourceSnippetBundle",
    "SyncJobResult",
    "SyncProgress",
]
