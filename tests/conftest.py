"""Shared fixtures: Go sources, changelog text, tarball builders and a mock GitHub API"""

import base64
import io
import json
import tarfile

import httpx
import pytest

from provider_index.models.repository import IngestedFile

PROVIDER_GO = """package provider

import (
	"github.com/hashicorp/go-azure-sdk/resource-manager/resources/2022-09-01/resourcegroups"
	"github.com/hashicorp/terraform-provider-azurerm/internal/tf/pluginsdk"
)

func SupportedResources() map[string]*pluginsdk.Resource {
	return map[string]*pluginsdk.Resource{
		"x_example": resourceExample(),
	}
}

func SupportedDataSources() map[string]*pluginsdk.Resource {
	return map[string]*pluginsdk.Resource{
		"x_example": dataSourceExample(),
	}
}

func resourceExample() *pluginsdk.Resource {
	return &pluginsdk.Resource{
		Description: "Manages an example.",
		Schema: map[string]*pluginsdk.Schema{
			"name": {
				Type:     pluginsdk.TypeString,
				Required: true,
				ForceNew: true,
			},
		},
	}
}

func dataSourceExample() *pluginsdk.Resource {
	return &pluginsdk.Resource{
		Schema: map[string]*pluginsdk.Schema{
			"name": {
				Type:     pluginsdk.TypeString,
				Required: true,
			},
		},
	}
}
"""

REGISTRATION_GO = """package compute

import "github.com/hashicorp/terraform-provider-azurerm/internal/sdk"

type Registration struct{}

func (r Registration) Name() string {
	return "Compute"
}

func (r Registration) WebsiteCategories() []string {
	return []string{
		"Compute",
		"Virtual Machines",
	}
}

func (r Registration) AssociatedGitHubLabel() string {
	return "service/compute"
}

func (r Registration) Resources() []sdk.Resource {
	return []sdk.Resource{
		AvailabilitySetResource{},
		VirtualMachineScaleSetStandbyPoolResource{},
	}
}

func (r Registration) DataSources() []sdk.Resource {
	return []sdk.Resource{
		ImageDataSource{},
	}
}
"""

CHANGELOG_MD = """## 4.2.0 (Unreleased)

FEATURES:

* **New Resource:** `azurerm_example_thing` ([#100](https://github.com/o/r/issues/100))

## 4.1.0 (August 22, 2024)

FEATURES:

* **New Data Source:** `azurerm_widget`

ENHANCEMENTS:

* `azurerm_resource_group` - support for the `managed_by` property

BUG FIXES:

* `azurerm_virtual_network` - fix a crash when `subnet` is empty

## 4.0.0 (2024-08-01)

### Breaking Changes

- `azurerm_legacy_thing` has been removed
"""


def go_file(path: str, content: str, repository_id: int = 1) -> IngestedFile:
    return IngestedFile(
        repository_id=repository_id,
        file_path=path,
        file_name=path.rsplit("/", 1)[-1],
        file_type="go",
        content=content,
        size_bytes=len(content.encode("utf-8")),
    )


def build_tarball(files: dict[str, str], root: str = "owner-repo-abc123") -> bytes:
    """Gzip tarball with every file under a GitHub-style top-level directory"""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        directory = tarfile.TarInfo(name=f"{root}/")
        directory.type = tarfile.DIRTYPE
        archive.addfile(directory)
        for path, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name=f"{root}/{path}")
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def repository_payload(**overrides) -> bytes:
    payload = {
        "name": "terraform-provider-azurerm",
        "full_name": "hashicorp/terraform-provider-azurerm",
        "description": "Terraform provider for Azure Resource Manager",
        "updated_at": "2024-08-22T10:00:00Z",
        "html_url": "https://github.com/hashicorp/terraform-provider-azurerm",
        "private": False,
        "archived": False,
        "size": 1024,
    }
    payload.update(overrides)
    return json.dumps(payload).encode("utf-8")


@pytest.fixture
def provider_go() -> str:
    return PROVIDER_GO


@pytest.fixture
def registration_go() -> str:
    return REGISTRATION_GO


@pytest.fixture
def changelog_md() -> str:
    return CHANGELOG_MD


@pytest.fixture
def make_go_file():
    return go_file


@pytest.fixture
def make_tarball():
    return build_tarball


@pytest.fixture
def make_repository_payload():
    return repository_payload


DEFAULT_TAGS = [
    {"name": "v4.1.0", "commit": {"sha": "bbb"}},
    {"name": "v4.0.0", "commit": {"sha": "aaa"}},
]


class FakeGitHub:
    """Route mock transport requests to canned repository responses"""

    def __init__(self, files, tags=None, statuses=None, **overrides):
        self.files = files
        self.tags = DEFAULT_TAGS if tags is None else tags
        self.statuses = statuses or {}
        self.payload_overrides = overrides
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(path)

        parts = path.strip("/").split("/")
        # /repos/{owner}/{name}[/{endpoint}]
        full_name = "/".join(parts[1:3])
        endpoint = parts[3] if len(parts) > 3 else "repo"

        status = self.statuses.get(endpoint)
        if status is not None:
            return httpx.Response(status)

        if endpoint == "repo":
            payload = {"name": parts[2], "full_name": full_name, **self.payload_overrides}
            return httpx.Response(200, content=repository_payload(**payload))
        if endpoint == "readme":
            encoded = base64.b64encode(b"# AzureRM\n").decode()
            body = {"name": "README.md", "path": "README.md", "content": encoded}
            return httpx.Response(200, content=json.dumps(body).encode())
        if endpoint == "tarball":
            return httpx.Response(200, content=build_tarball(self.files))
        if endpoint == "tags":
            return httpx.Response(200, content=json.dumps(self.tags).encode())
        return httpx.Response(404)


@pytest.fixture
def fake_github(provider_go, registration_go, changelog_md):
    """Factory for FakeGitHub handlers serving a small provider repository"""
    default_files = {
        "README.md": "# AzureRM\n",
        "CHANGELOG.md": changelog_md,
        "internal/provider/provider.go": provider_go,
        "internal/services/compute/registration.go": registration_go,
        ".github/workflows/ci.yml": "on: push\n",
    }

    def factory(files=None, **kwargs) -> FakeGitHub:
        files = default_files if files is None else files
        return FakeGitHub(files, **kwargs)

    return factory
