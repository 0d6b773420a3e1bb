"""Go syntax trees (tree-sitter) and node helpers used by the schema extractor"""

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from functools import lru_cache

from tree_sitter import Node, Parser, Tree
from tree_sitter_language_pack import get_parser

from provider_index.models.repository import IngestedFile

logger = logging.getLogger(__name__)

WRAPPER_TYPES = frozenset({"literal_element", "element", "parenthesized_expression"})
FUNCTION_TYPES = frozenset({"function_declaration", "method_declaration"})


class GoParseError(Exception):
    """Raised when a Go source file does not parse cleanly"""

    def __init__(self, file_path: str, message: str = "syntax error"):
        self.file_path = file_path
        super().__init__(f"{file_path}: {message}")


@lru_cache(maxsize=1)
def _go_parser() -> Parser:
    return get_parser("go")


@dataclass
class GoSourceFile:
    """A repository file together with its parsed syntax tree"""

    file: IngestedFile
    tree: Tree
    functions: dict[str, Node] = field(default_factory=dict)
    methods: list[Node] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.file.file_path

    @property
    def root(self) -> Node:
        return self.tree.root_node


def parse_go_file(file: IngestedFile) -> GoSourceFile:
    """
    Parse a stored Go file and index its top-level declarations

    Raises:
        GoParseError: If the tree contains syntax errors
    """
    tree = _go_parser().parse(file.content.encode("utf-8"))
    if tree.root_node.has_error:
        raise GoParseError(file.file_path)

    source = GoSourceFile(file=file, tree=tree)
    for child in tree.root_node.named_children:
        if child.type == "function_declaration":
            name = child.child_by_field_name("name")
            if name is not None:
                # first declaration wins, matching Go's own uniqueness rule
                source.functions.setdefault(node_text(name), child)
        elif child.type == "method_declaration":
            source.methods.append(child)
        elif child.type == "import_declaration":
            source.imports.extend(_import_paths(child))
    return source


def _import_paths(declaration: Node) -> list[str]:
    paths = []
    for node in walk(declaration):
        if node.type == "import_spec":
            path = node.child_by_field_name("path")
            if path is not None:
                paths.append(string_value(path) or node_text(path).strip('"`'))
    return paths


def node_text(node: Node | None) -> str:
    if node is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal of named nodes"""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.named_children))


def unwrap(node: Node | None) -> Node | None:
    """Strip literal_element and parenthesis wrappers"""
    while node is not None and node.type in WRAPPER_TYPES:
        inner = [child for child in node.named_children if child.type != "comment"]
        if not inner:
            return None
        node = inner[0]
    return node


def function_name(declaration: Node) -> str:
    return node_text(declaration.child_by_field_name("name"))


def parameter_count(declaration: Node) -> int:
    parameters = declaration.child_by_field_name("parameters")
    if parameters is None:
        return 0
    return sum(1 for child in parameters.named_children if child.type != "comment")


def block_statements(declaration: Node) -> list[Node]:
    """Top-level statements of a function body"""
    body = declaration.child_by_field_name("body")
    if body is None:
        return []

    statements = []
    for child in body.named_children:
        if child.type == "statement_list":
            statements.extend(c for c in child.named_children if c.type != "comment")
        elif child.type != "comment":
            statements.append(child)
    return statements


def expression_list(node: Node | None) -> list[Node]:
    """Expressions of an expression_list (or the node itself)"""
    if node is None:
        return []
    if node.type == "expression_list":
        return [child for child in node.named_children if child.type != "comment"]
    return [node]


def return_values(statement: Node) -> list[Node]:
    values: list[Node] = []
    for child in statement.named_children:
        if child.type != "comment":
            values.extend(expression_list(child))
    return values


def literal_body(node: Node | None) -> Node | None:
    """
    Resolve an expression to the literal_value of a composite literal

    Accepts T{...}, &T{...} and the elided-type {...} form used inside
    map and slice literals. Returns None for anything else.
    """
    node = unwrap(node)
    if node is None:
        return None

    if node.type == "unary_expression":
        operator = node.child_by_field_name("operator")
        if node_text(operator) != "&":
            return None
        node = unwrap(node.child_by_field_name("operand"))
        if node is None:
            return None

    if node.type == "composite_literal":
        return node.child_by_field_name("body")
    if node.type == "literal_value":
        return node
    return None


def keyed_elements(literal_value: Node) -> list[tuple[Node, Node]]:
    """(key, value) pairs of a literal_value, with wrappers removed"""
    pairs = []
    for child in literal_value.named_children:
        if child.type != "keyed_element":
            continue
        parts = [c for c in child.named_children if c.type != "comment"]
        if len(parts) < 2:
            continue
        key, value = unwrap(parts[0]), unwrap(parts[1])
        if key is not None and value is not None:
            pairs.append((key, value))
    return pairs


def list_elements(literal_value: Node) -> list[Node]:
    """Positional elements of a literal_value"""
    elements = []
    for child in literal_value.named_children:
        if child.type in ("keyed_element", "comment"):
            continue
        element = unwrap(child)
        if element is not None:
            elements.append(element)
    return elements


def field_value(literal_value: Node, name: str) -> Node | None:
    """Value of the struct field `name` in a keyed literal"""
    for key, value in keyed_elements(literal_value):
        if node_text(key) == name:
            return value
    return None


def string_value(node: Node | None) -> str | None:
    """Unquote a string literal (or a + concatenation of them)"""
    node = unwrap(node)
    if node is None:
        return None

    if node.type == "interpreted_string_literal":
        text = node_text(node)
        try:
            return json.loads(text)
        except ValueError:
            return text[1:-1]
    if node.type == "raw_string_literal":
        return node_text(node)[1:-1]
    if node.type == "binary_expression" and node_text(node.child_by_field_name("operator")) == "+":
        left = string_value(node.child_by_field_name("left"))
        right = string_value(node.child_by_field_name("right"))
        if left is not None and right is not None:
            return left + right
    return None


def int_value(node: Node | None) -> int | None:
    node = unwrap(node)
    if node is None or node.type != "int_literal":
        return None
    text = node_text(node).replace("_", "")
    try:
        return int(text, 0)
    except ValueError:
        try:
            return int(text, 8)
        except ValueError:
            return None


def is_true(node: Node | None) -> bool:
    node = unwrap(node)
    return node is not None and node.type == "true"


def call_name(node: Node | None) -> str | None:
    """Name of the called function (identifier or selector field) of a call expression"""
    node = unwrap(node)
    if node is None or node.type != "call_expression":
        return None

    function = unwrap(node.child_by_field_name("function"))
    if function is None:
        return None
    if function.type == "identifier":
        return node_text(function)
    if function.type == "selector_expression":
        return node_text(function.child_by_field_name("field"))
    return None
