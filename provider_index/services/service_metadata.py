"""Service package metadata from registration.go files"""

import logging
import posixpath

from tree_sitter import Node

from provider_index.models.provider import ProviderService
from provider_index.services.go_source import (
    GoSourceFile,
    block_statements,
    function_name,
    literal_body,
    list_elements,
    parameter_count,
    return_values,
    string_value,
)

logger = logging.getLogger(__name__)

REGISTRATION_FILE = "registration.go"


def service_dir_from_path(file_path: str | None) -> str | None:
    """Path segment following a literal `services` component"""
    if not file_path:
        return None
    parts = file_path.split("/")
    for index, part in enumerate(parts[:-1]):
        if part == "services":
            return parts[index + 1] or None
    return None


def _accessor(source: GoSourceFile, name: str) -> Node | None:
    for declaration in [*source.methods, *source.functions.values()]:
        if function_name(declaration) == name and parameter_count(declaration) == 0:
            return declaration
    return None


def _returned_expression(declaration: Node) -> Node | None:
    for statement in block_statements(declaration):
        if statement.type == "return_statement":
            results = return_values(statement)
            if results:
                return results[0]
    return None


def _returned_string(source: GoSourceFile, name: str) -> str | None:
    declaration = _accessor(source, name)
    if declaration is None:
        return None
    return string_value(_returned_expression(declaration))


def _returned_strings(source: GoSourceFile, name: str) -> list[str]:
    declaration = _accessor(source, name)
    if declaration is None:
        return []
    body = literal_body(_returned_expression(declaration))
    if body is None:
        return []
    return [value for value in (string_value(e) for e in list_elements(body)) if value]


def extract_services(sources: list[GoSourceFile]) -> list[ProviderService]:
    """
    Read Name(), WebsiteCategories() and AssociatedGitHubLabel() from each registration.go

    Files without a string-returning Name() are ignored.
    """
    services = []
    for source in sources:
        if posixpath.basename(source.path) != REGISTRATION_FILE:
            continue

        name = _returned_string(source, "Name")
        if not name:
            continue

        services.append(
            ProviderService(
                name=name,
                file_path=source.path,
                directory=service_dir_from_path(source.path),
                website_categories=_returned_strings(source, "WebsiteCategories"),
                github_label=_returned_string(source, "AssociatedGitHubLabel"),
            )
        )

    logger.info(f"Found {len(services)} service registrations")
    return services
