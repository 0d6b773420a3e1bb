"""Changelog release models"""

from pydantic import BaseModel, Field


class ReleaseSection(BaseModel):
    """Named section of a release (e.g. FEATURES, Bug Fixes)"""

    name: str
    entries: list[str] = Field(default_factory=list)


class ParsedRelease(BaseModel):
    """A release parsed from the changelog"""

    version: str = Field(description="Normalized version without a leading v")
    tag: str = Field(description="Canonical tag, always v-prefixed")
    release_date: str | None = Field(default=None, description="ISO date (YYYY-MM-DD)")
    sections: list[ReleaseSection] = Field(default_factory=list)


class ReleaseEntry(BaseModel):
    """A single changelog bullet, keyed for stable upserts"""

    section: str
    entry_key: str = Field(min_length=1)
    title: str = Field(min_length=1)
    details: str | None = None
    resource_name: str | None = None
    identifier: str | None = None
    change_type: str | None = None
    order_index: int = Field(ge=0)


class ReleaseRecord(BaseModel):
    """Release row as persisted, with linkage to the previous release"""

    id: int | None = None
    version: str
    tag: str
    previous_version: str | None = None
    previous_tag: str | None = None
    commit_sha: str | None = None
    previous_commit_sha: str | None = None
    release_date: str | None = None
    comparison_url: str | None = None
