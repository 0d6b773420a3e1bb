"""Models for sources configuration (sources.yaml)"""

from pydantic import BaseModel, Field, field_validator


class RepositorySource(BaseModel):
    """A GitHub repository to index"""

    full_name: str = Field(description="Repository in owner/name form")
    resource_prefix: str | None = Field(
        default=None, description="Resource name prefix override (defaults to app config)"
    )
    enabled: bool = Field(default=True, description="Whether this repository is synced")

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        """Validate owner/name form"""
        owner, _, name = v.strip().partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(f"Repository must be in owner/name form, got: {v}")
        return v.strip()


class GitHubConfig(BaseModel):
    """Configuration for GitHub API access"""

    token: str | None = Field(
        default=None, description="GitHub personal access token (or use GITHUB_TOKEN env var)"
    )
    api_url: str = Field(default="https://api.github.com", description="GitHub API base URL")


class RefreshConfig(BaseModel):
    """Configuration for the background sync scheduler"""

    enabled: bool = Field(default=False, description="Run scheduled incremental syncs")
    interval_hours: int = Field(default=24, ge=1, le=168, description="Refresh interval")
    max_concurrent_jobs: int = Field(default=1, ge=1, le=4, description="Max concurrent jobs")


class SourcesConfig(BaseModel):
    """Complete sources configuration"""

    repositories: list[RepositorySource] = Field(default_factory=list)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)

    def get_enabled_repositories(self) -> list[RepositorySource]:
        """Get all enabled repositories"""
        return [source for source in self.repositories if source.enabled]
