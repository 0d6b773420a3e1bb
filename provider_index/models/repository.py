"""Repository, file and GitHub payload models"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RemoteRepositorySummary(BaseModel):
    """Repository metadata as reported by the GitHub API"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(description="Repository name (without owner)")
    full_name: str = Field(description="owner/name")
    description: str | None = Field(default=None, description="Repository description")
    updated_at: str = Field(default="", description="Last-updated timestamp (raw API string)")
    html_url: str = Field(default="", description="Browser URL of the repository")
    private: bool = Field(default=False)
    archived: bool = Field(default=False)
    size: int = Field(default=0, description="Repository size in KB as reported by GitHub")


class RepositoryRecord(BaseModel):
    """Repository row as persisted in the index"""

    id: int | None = Field(default=None, description="Row id (None before insertion)")
    name: str
    full_name: str
    description: str | None = None
    repo_url: str = ""
    last_updated: str | None = Field(
        default=None, description="Remote updated_at at the time of the last sync"
    )
    readme_content: str | None = None
    synced_at: datetime | None = None

    @classmethod
    def from_remote(
        cls, repo: RemoteRepositorySummary, readme_content: str | None = None
    ) -> "RepositoryRecord":
        """Build a record from fetched metadata"""
        return cls(
            name=repo.name,
            full_name=repo.full_name,
            description=repo.description,
            repo_url=repo.html_url,
            last_updated=repo.updated_at,
            readme_content=readme_content,
        )


class IngestedFile(BaseModel):
    """A single file extracted from a repository archive"""

    repository_id: int
    file_path: str = Field(min_length=1, description="Path relative to the repository root")
    file_name: str = Field(min_length=1, description="Base name of the file")
    file_type: str = Field(description="Type label derived from the file extension")
    content: str
    size_bytes: int = Field(ge=0)


class GitHubContent(BaseModel):
    """Contents API payload (used for README retrieval)"""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    path: str = ""
    type: str = ""
    download_url: str | None = None
    content: str | None = None
    size: int = 0


class GitHubTagCommit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sha: str = ""
    url: str = ""


class GitHubTag(BaseModel):
    """Entry of the tags listing"""

    model_config = ConfigDict(extra="ignore")

    name: str
    commit: GitHubTagCommit = Field(default_factory=GitHubTagCommit)


class CompareFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filename: str
    status: str = ""
    patch: str | None = None


class CompareResult(BaseModel):
    """Result of the two-ref compare endpoint"""

    model_config = ConfigDict(extra="ignore")

    files: list[CompareFile] = Field(default_factory=list)
