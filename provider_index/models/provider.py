"""Provider schema models produced by the Go source extractor"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ResourceKind = Literal["resource", "data_source", "action", "list", "ephemeral"]


class ResourceRegistration(BaseModel):
    """Mapping of a public resource name to the construct that defines it"""

    model_config = ConfigDict(frozen=True)

    type_name: str = Field(min_length=1)
    func_name: str | None = Field(
        default=None, description="Builder function (None for struct-based registrations)"
    )
    kind: ResourceKind = "resource"


class ProviderAttribute(BaseModel):
    """One schema attribute of a resource"""

    name: str = Field(min_length=1)
    type: str | None = None
    required: bool = False
    optional: bool = False
    computed: bool = False
    force_new: bool = False
    sensitive: bool = False
    deprecated: str | None = None
    description: str | None = None
    conflicts_with: str | None = None
    exactly_one_of: str | None = None
    at_least_one_of: str | None = None
    required_with: str | None = None
    max_items: int | None = None
    min_items: int | None = None
    elem_type: str | None = None
    elem_summary: str | None = None
    nested_block: bool = Field(
        default=False, description="True when Elem is itself a schema resource"
    )
    validation: str | None = None
    diff_suppress: str | None = None
    default_value: str | None = None
    state_func: str | None = None
    set_func: str | None = None


class SourceSnippetBundle(BaseModel):
    """Raw source text captured for a resource builder"""

    function_name: str
    file_path: str
    function_snippet: str | None = None
    schema_snippet: str | None = None
    customize_diff_snippet: str | None = None
    timeouts_snippet: str | None = None
    state_upgraders_snippet: str | None = None
    importer_snippet: str | None = None


class ParsedProviderResource(BaseModel):
    """A resource, data source, action, list or ephemeral resource"""

    name: str = Field(min_length=1)
    kind: ResourceKind = "resource"
    display_name: str | None = None
    file_path: str | None = None
    description: str | None = None
    deprecation_message: str | None = None
    breaking_changes: str | None = None
    api_version: str | None = None
    attributes: list[ProviderAttribute] = Field(default_factory=list)
    source: SourceSnippetBundle | None = None
    service_dir: str | None = Field(
        default=None, description="Directory under services/ used to link the owning service"
    )


class ProviderService(BaseModel):
    """Service package metadata recovered from registration.go"""

    name: str = Field(min_length=1)
    file_path: str
    directory: str | None = Field(
        default=None, description="Directory name under services/ used to link resources"
    )
    website_categories: list[str] = Field(default_factory=list)
    github_label: str | None = None
