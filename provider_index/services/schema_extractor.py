"""Extract provider resources and their schemas from Go sources"""

import logging
import re
from dataclasses import dataclass

from tree_sitter import Node

from provider_index.config import config
from provider_index.models.provider import (
    ParsedProviderResource,
    ProviderAttribute,
    ResourceKind,
    ResourceRegistration,
    SourceSnippetBundle,
)
from provider_index.models.repository import IngestedFile
from provider_index.services.go_source import (
    GoParseError,
    GoSourceFile,
    block_statements,
    call_name,
    expression_list,
    field_value,
    function_name,
    int_value,
    is_true,
    keyed_elements,
    list_elements,
    literal_body,
    node_text,
    parameter_count,
    parse_go_file,
    return_values,
    string_value,
    unwrap,
    walk,
)
from provider_index.services.service_metadata import service_dir_from_path

logger = logging.getLogger(__name__)

RESOURCE_TYPE_SUFFIX = ".Resource"
SLICE_REGISTRATION_METHODS: dict[str, ResourceKind] = {
    "Resources": "resource",
    "DataSources": "data_source",
}
STRUCT_NAME_SUFFIXES = ("Resource", "DataSource", "Action", "List", "Ephemeral")
SDK_IMPORT_MARKER = "go-azure-sdk/resource-manager"
API_VERSION_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

BOOL_FIELDS = {
    "Required": "required",
    "Optional": "optional",
    "Computed": "computed",
    "ForceNew": "force_new",
    "Sensitive": "sensitive",
}
STRING_FIELDS = {
    "Deprecated": "deprecated",
    "Description": "description",
    "Default": "default_value",
}
LIST_FIELDS = {
    "ConflictsWith": "conflicts_with",
    "ExactlyOneOf": "exactly_one_of",
    "AtLeastOneOf": "at_least_one_of",
    "RequiredWith": "required_with",
}
INT_FIELDS = {"MaxItems": "max_items", "MinItems": "min_items"}
TEXT_FIELDS = {
    "Type": "type",
    "ValidateFunc": "validation",
    "ValidateDiagFunc": "validation",
    "DiffSuppressFunc": "diff_suppress",
    "StateFunc": "state_func",
    "Set": "set_func",
}


class ExtractionError(Exception):
    """Raised when no provider resources can be extracted"""

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


def infer_registration_kind(func_name: str) -> ResourceKind:
    """Guess the registration kind from the builder function name"""
    lower = func_name.lower()
    if "action" in lower:
        return "action"
    if "list" in lower and "datasource" not in lower:
        return "list"
    if "ephemeral" in lower:
        return "ephemeral"
    if "datasource" in lower:
        return "data_source"
    return "resource"


def struct_name_to_resource_name(struct_name: str, resource_prefix: str) -> str:
    """
    Convert a typed-resource struct name to a resource name

    AvailabilitySetResource -> <prefix>_availability_set
    """
    for suffix in STRUCT_NAME_SUFFIXES:
        if struct_name.endswith(suffix):
            struct_name = struct_name[: -len(suffix)]
    if not struct_name:
        return ""

    snake = re.sub(r"(?<!^)([A-Z])", r"_\1", struct_name).lower()
    return f"{resource_prefix}_{snake}"


def display_name_for(name: str, resource_prefix: str) -> str:
    trimmed = name.removeprefix(f"{resource_prefix}_")
    parts = [part[:1].upper() + part[1:].lower() for part in trimmed.split("_")]
    return " ".join(parts)


def summarize_breaking_changes(attributes: list[ProviderAttribute]) -> str:
    """Summarize ForceNew, ConflictsWith and ExactlyOneOf attributes"""
    force_new = [attr.name for attr in attributes if attr.force_new]
    conflicts = [
        f"{attr.name} ↔ {attr.conflicts_with}" for attr in attributes if attr.conflicts_with
    ]
    exclusive = [
        f"{attr.name} ↔ {attr.exactly_one_of}" for attr in attributes if attr.exactly_one_of
    ]

    sections = []
    if force_new:
        sections.append(f"ForceNew attributes: {', '.join(force_new)}")
    if conflicts:
        sections.append(f"Conflicts: {'; '.join(conflicts)}")
    if exclusive:
        sections.append(f"Mutually exclusive: {'; '.join(exclusive)}")
    return "\n".join(sections)


def api_version_for(source: GoSourceFile) -> str | None:
    """First YYYY-MM-DD segment of a resource-manager SDK import"""
    for path in source.imports:
        if SDK_IMPORT_MARKER not in path:
            continue
        for part in path.split("/"):
            if API_VERSION_PATTERN.match(part):
                return part
    return None


def _optional(text: str | None) -> str | None:
    if text is None:
        return None
    text = text.strip()
    return text or None


def _string_or_text(node: Node) -> str | None:
    value = string_value(node)
    if value is not None:
        return _optional(value)
    node = unwrap(node)
    if node is None or node.type == "nil":
        return None
    return _optional(node_text(node))


def _string_list(node: Node) -> str | None:
    body = literal_body(node)
    if body is None:
        return _optional(node_text(node))
    parts = [value for value in (_string_or_text(e) for e in list_elements(body)) if value]
    return ", ".join(parts) or None


def _elem_summary(node: Node) -> str | None:
    body = literal_body(node)
    if body is None:
        return _optional(node_text(node))

    parts = []
    for key, value in keyed_elements(body):
        name = node_text(key)
        if not name:
            continue
        parts.append(f"{name}={_string_or_text(value) or node_text(value)}")
    return ", ".join(parts) or None


def build_attribute(name: str, schema: Node) -> ProviderAttribute:
    """Map the fields of a schema literal onto an attribute"""
    values: dict[str, object] = {"name": name}

    for key, value in keyed_elements(schema):
        field = node_text(key)
        if field in BOOL_FIELDS:
            values[BOOL_FIELDS[field]] = is_true(value)
        elif field in STRING_FIELDS:
            values[STRING_FIELDS[field]] = _string_or_text(value)
        elif field in LIST_FIELDS:
            values[LIST_FIELDS[field]] = _string_list(value)
        elif field in INT_FIELDS:
            values[INT_FIELDS[field]] = int_value(value)
        elif field in TEXT_FIELDS:
            values[TEXT_FIELDS[field]] = _optional(node_text(value))
        elif field == "Elem":
            elem_text = node_text(value)
            values["elem_type"] = _optional(elem_text)
            values["elem_summary"] = _elem_summary(value)
            values["nested_block"] = RESOURCE_TYPE_SUFFIX in elem_text

    return ProviderAttribute.model_validate(values)


@dataclass
class ResourceBuilder:
    """A builder function and the resource literal it returns"""

    name: str
    source: GoSourceFile
    declaration: Node
    literal: Node
    body: Node

    def field_text(self, field: str) -> str | None:
        value = field_value(self.body, field)
        return _optional(node_text(value)) if value is not None else None

    def snippets(self) -> SourceSnippetBundle:
        schema = field_value(self.body, "Schema")
        return SourceSnippetBundle(
            function_name=self.name,
            file_path=self.source.path,
            function_snippet=_optional(node_text(self.declaration)),
            schema_snippet=_optional(node_text(schema if schema is not None else self.literal)),
            customize_diff_snippet=self.field_text("CustomizeDiff"),
            timeouts_snippet=self.field_text("Timeouts"),
            state_upgraders_snippet=self.field_text("StateUpgraders"),
            importer_snippet=self.field_text("Importer"),
        )


def returned_literal(declaration: Node) -> tuple[Node, Node] | None:
    """
    Find the composite literal a function returns

    Handles `return T{...}`, `return &T{...}` and a local variable that is
    assigned a literal and later returned. Returns (expression, literal_value).
    """
    assigned: dict[str, tuple[Node, Node]] = {}

    for statement in block_statements(declaration):
        if statement.type in ("short_var_declaration", "assignment_statement"):
            left = expression_list(statement.child_by_field_name("left"))
            right = expression_list(statement.child_by_field_name("right"))
            if len(left) == 1 and len(right) == 1 and left[0].type == "identifier":
                body = literal_body(right[0])
                if body is not None:
                    assigned[node_text(left[0])] = (right[0], body)

        elif statement.type == "var_declaration":
            for spec in walk(statement):
                if spec.type != "var_spec":
                    continue
                names = spec.children_by_field_name("name")
                values = expression_list(spec.child_by_field_name("value"))
                if len(names) == 1 and len(values) == 1:
                    body = literal_body(values[0])
                    if body is not None:
                        assigned[node_text(names[0])] = (values[0], body)

        elif statement.type == "return_statement":
            results = return_values(statement)
            if not results:
                continue
            body = literal_body(results[0])
            if body is not None:
                return results[0], body
            first = unwrap(results[0])
            if first is not None and first.type == "identifier":
                found = assigned.get(node_text(first))
                if found is not None:
                    return found

    return None


class ProviderSchemaExtractor:
    """Discover resource registrations and walk their schema literals"""

    def __init__(self, files: list[IngestedFile], resource_prefix: str | None = None):
        """
        Initialize extractor

        Args:
            files: Repository files; only .go files are parsed
            resource_prefix: Resource name prefix (defaults to config.resource_prefix)
        """
        self.files = files
        self.resource_prefix = resource_prefix or config.resource_prefix
        self._sources: list[GoSourceFile] | None = None
        self._functions: dict[str, GoSourceFile] = {}

    @property
    def sources(self) -> list[GoSourceFile]:
        """Parsed Go files (files with syntax errors are excluded)"""
        if self._sources is None:
            self._sources = self._parse_files()
        return self._sources

    def _parse_files(self) -> list[GoSourceFile]:
        sources = []
        for file in self.files:
            if not file.file_name.endswith(".go"):
                continue
            try:
                source = parse_go_file(file)
            except GoParseError as e:
                logger.warning(f"Failed to parse Go file {file.file_path}: {e}")
                continue
            sources.append(source)
            for name in source.functions:
                self._functions.setdefault(name, source)
        return sources

    def extract(self) -> list[ParsedProviderResource]:
        """
        Extract every registered resource, sorted by name

        Returns:
            Parsed resources with attributes and source snippets

        Raises:
            ExtractionError: If no Go files parse or no resources are found
        """
        if not self.sources:
            raise ExtractionError("no Go files discovered")

        resources = []
        for registration, source in self._collect_registrations():
            if registration.func_name is None:
                resources.append(
                    ParsedProviderResource(
                        name=registration.type_name,
                        kind=registration.kind,
                        display_name=display_name_for(registration.type_name, self.resource_prefix),
                        service_dir=service_dir_from_path(source.path),
                    )
                )
                continue

            try:
                resources.append(self._build_resource(registration, source))
            except ExtractionError as e:
                logger.warning(f"Skipping {registration.type_name}: {e}")

        if not resources:
            raise ExtractionError("no provider resources or data sources discovered")

        resources.sort(key=lambda resource: resource.name)
        logger.info(f"Extracted {len(resources)} provider definitions")
        return resources

    def registrations(self) -> list[ResourceRegistration]:
        """All discovered registrations, deduplicated by (name, kind)"""
        return [registration for registration, _ in self._collect_registrations()]

    def _collect_registrations(self) -> list[tuple[ResourceRegistration, GoSourceFile]]:
        seen: set[tuple[str, str]] = set()
        found = []
        for registration, source in [*self._map_registrations(), *self._slice_registrations()]:
            key = (registration.type_name, registration.kind)
            if key in seen:
                continue
            seen.add(key)
            found.append((registration, source))
        return found

    def _map_registrations(self) -> list[tuple[ResourceRegistration, GoSourceFile]]:
        """map[string]*X.Resource{"name": builder(), ...}"""
        found = []
        for source in self.sources:
            for node in walk(source.root):
                if node.type != "composite_literal":
                    continue
                literal_type = node.child_by_field_name("type")
                if literal_type is None or literal_type.type != "map_type":
                    continue
                value_type = node_text(literal_type.child_by_field_name("value"))
                if not value_type.endswith(RESOURCE_TYPE_SUFFIX):
                    continue

                body = node.child_by_field_name("body")
                if body is None:
                    continue
                for key, value in keyed_elements(body):
                    type_name = string_value(key)
                    func_name = call_name(value)
                    if not type_name or not func_name:
                        continue
                    registration = ResourceRegistration(
                        type_name=type_name,
                        func_name=func_name,
                        kind=infer_registration_kind(func_name),
                    )
                    found.append((registration, source))
        return found

    def _slice_registrations(self) -> list[tuple[ResourceRegistration, GoSourceFile]]:
        """Resources() / DataSources() returning []X.Resource{FooResource{}, ...}"""
        found = []
        for source in self.sources:
            for declaration in [*source.functions.values(), *source.methods]:
                kind = SLICE_REGISTRATION_METHODS.get(function_name(declaration))
                if kind is None or parameter_count(declaration) != 0:
                    continue
                result_type = node_text(declaration.child_by_field_name("result"))
                if not (
                    result_type.startswith("[]") and result_type.endswith(RESOURCE_TYPE_SUFFIX)
                ):
                    continue

                for statement in block_statements(declaration):
                    if statement.type != "return_statement":
                        continue
                    results = return_values(statement)
                    body = literal_body(results[0]) if results else None
                    if body is None:
                        continue
                    for element in list_elements(body):
                        type_name = self._typed_resource_name(element)
                        if type_name:
                            found.append((ResourceRegistration(type_name=type_name, kind=kind), source))
        return found

    def _typed_resource_name(self, element: Node) -> str:
        if element.type == "composite_literal":
            element = element.child_by_field_name("type")
        if element is None or element.type not in ("identifier", "type_identifier"):
            return ""
        return struct_name_to_resource_name(node_text(element), self.resource_prefix)

    def find_function(self, name: str, preferred: GoSourceFile) -> tuple[GoSourceFile, Node] | None:
        """Look a function up in the preferred file first, then in any parsed file"""
        declaration = preferred.functions.get(name)
        if declaration is not None:
            return preferred, declaration
        other = self._functions.get(name)
        if other is not None:
            return other, other.functions[name]
        return None

    def _resolve_builder(self, func_name: str, source: GoSourceFile) -> ResourceBuilder:
        match = self.find_function(func_name, source)
        if match is None:
            raise ExtractionError(f"builder function {func_name} not found")
        builder_source, declaration = match

        literal = returned_literal(declaration)
        if literal is None:
            raise ExtractionError(f"builder function {func_name} returns no resource literal")
        expression, body = literal
        return ResourceBuilder(func_name, builder_source, declaration, expression, body)

    def _schema_body(self, value: Node, source: GoSourceFile) -> Node | None:
        body = literal_body(value)
        if body is not None:
            return body

        func_name = call_name(value)
        if func_name is None:
            return None
        match = self.find_function(func_name, source)
        if match is None:
            logger.debug(f"Schema function {func_name} not found")
            return None
        literal = returned_literal(match[1])
        return literal[1] if literal else None

    def extract_attributes(self, value: Node, source: GoSourceFile) -> list[ProviderAttribute]:
        """Attributes of a Schema field value (map literal or schema function call)"""
        body = self._schema_body(value, source)
        if body is None:
            return []

        attributes = []
        for key, entry in keyed_elements(body):
            name = string_value(key) or node_text(key)
            schema = literal_body(entry)
            if not name or schema is None:
                continue
            attributes.append(build_attribute(name, schema))
        return attributes

    def _build_resource(
        self, registration: ResourceRegistration, source: GoSourceFile
    ) -> ParsedProviderResource:
        builder = self._resolve_builder(registration.func_name or "", source)

        description = field_value(builder.body, "Description")
        deprecation = field_value(builder.body, "DeprecationMessage")
        schema = field_value(builder.body, "Schema")
        attributes = self.extract_attributes(schema, builder.source) if schema is not None else []

        return ParsedProviderResource(
            name=registration.type_name,
            kind=registration.kind,
            display_name=display_name_for(registration.type_name, self.resource_prefix),
            file_path=builder.source.path,
            description=_string_or_text(description) if description is not None else None,
            deprecation_message=_string_or_text(deprecation) if deprecation is not None else None,
            breaking_changes=summarize_breaking_changes(attributes) or None,
            api_version=api_version_for(builder.source),
            attributes=attributes,
            source=builder.snippets(),
            service_dir=service_dir_from_path(builder.source.path),
        )
