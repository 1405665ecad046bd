"""
js_ast.py
Parsing of the client bundle with esprima and the small set of AST shapes the
extractor understands. Matchers return None when a node is not of the expected
shape; expect_* helpers raise UnrecognizedShapeError instead.
"""
from typing import Any, Iterator, List, Optional, Tuple

import esprima
from esprima.error_handler import Error as EsprimaError

from bundle_model import EnumValue


class BundleParseError(Exception):
    """
    The bundle source could not be parsed as a script. esprima accepts
    syntax up to ES2017, so newer constructs such as `a?.b` or `a ?? b`
    end up here; `context` holds the source text around the failure.
    """
    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None, context: Optional[str] = None):
        self.line = line
        self.column = column
        self.context = context
        if context:
            message = f"{message} near '{context}'"
        super().__init__(message)


class UnrecognizedShapeError(Exception):
    def __init__(self, expected: str, node: Any):
        self.expected = expected
        self.node = node
        super().__init__(f"expected {expected}, found {expression_text(node)}")


def _error_context(source: str, line: Optional[int], column: Optional[int], width: int = 40) -> Optional[str]:
    """Source text around a 1-based line and column, at most `width` characters either side."""
    if not line:
        return None
    lines = source.splitlines()
    if line > len(lines):
        return None
    text = lines[line - 1]
    position = max((column or 1) - 1, 0)
    return text[max(position - width, 0):position + width].strip()


def parse_bundle(source: str):
    """Parse the bundle source and return the esprima Program node."""
    try:
        return esprima.parseScript(source)
    except EsprimaError as e:
        line = getattr(e, "lineNumber", None)
        column = getattr(e, "column", None)
        raise BundleParseError(
            f"Could not parse bundle: {e}",
            line,
            column,
            _error_context(source, line, column),
        ) from e
    except RecursionError as e:
        raise BundleParseError("Could not parse bundle: nesting too deep") from e


def is_node(value: Any) -> bool:
    return isinstance(getattr(value, "type", None), str)


def node_type(value: Any) -> Optional[str]:
    if is_node(value):
        return value.type
    return None


def child_nodes(node: Any) -> List[Any]:
    """Direct child nodes in source order."""
    children = []
    for key, value in vars(node).items():
        if key == "type":
            continue
        if isinstance(value, list):
            children.extend(item for item in value if is_node(item))
        elif is_node(value):
            children.append(value)
    return children


def iter_postorder(root: Any) -> Iterator[Any]:
    """Yield every node below and including root, children before parents."""
    stack = [(root, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            yield node
            continue
        stack.append((node, True))
        for child in reversed(child_nodes(node)):
            stack.append((child, False))


def iter_postorder_with_ancestors(root: Any) -> Iterator[Tuple[Any, Tuple[Any, ...]]]:
    """Like iter_postorder, also yielding the path from root; the node itself is the last entry."""
    stack = [(root, (), False)]
    while stack:
        node, parents, expanded = stack.pop()
        path = parents + (node,)
        if expanded:
            yield node, path
            continue
        stack.append((node, parents, True))
        for child in reversed(child_nodes(node)):
            stack.append((child, path, False))


def expression_text(node: Any) -> str:
    """Short source-like rendering of an expression for diagnostics."""
    kind = node_type(node)
    if kind == "Identifier":
        return node.name
    if kind == "Literal":
        return node.raw if node.raw is not None else repr(node.value)
    if kind == "MemberExpression":
        name = property_name(node)
        if name is None:
            return f"{expression_text(node.object)}[...]"
        return f"{expression_text(node.object)}.{name}"
    if kind == "CallExpression":
        return f"{expression_text(node.callee)}(...)"
    if kind == "UnaryExpression":
        return f"{node.operator}{expression_text(node.argument)}"
    if kind == "BinaryExpression":
        return f"{expression_text(node.left)} {node.operator} {expression_text(node.right)}"
    if kind is None:
        return repr(node)
    return f"<{kind}>"


def identifier_name(node: Any) -> Optional[str]:
    if node_type(node) == "Identifier":
        return node.name
    return None


def property_name(member: Any) -> Optional[str]:
    """Name of the accessed property of `obj.name` or `obj["name"]`."""
    if node_type(member) != "MemberExpression":
        return None
    prop = member.property
    if not member.computed and node_type(prop) == "Identifier":
        return prop.name
    if member.computed and node_type(prop) == "Literal" and isinstance(prop.value, str):
        return prop.value
    return None


def property_key(prop: Any) -> Optional[str]:
    """Key of an object literal Property, from an identifier or a literal."""
    if node_type(prop) != "Property":
        return None
    key = prop.key
    if node_type(key) == "Identifier" and not prop.computed:
        return key.name
    if node_type(key) == "Literal" and key.value is not None:
        value = key.value
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value)
    return None


def literal_int(node: Any) -> Optional[int]:
    """Integer value of a numeric literal, allowing a leading sign."""
    kind = node_type(node)
    if kind == "UnaryExpression" and node.operator in ("-", "+"):
        value = literal_int(node.argument)
        if value is None:
            return None
        return -value if node.operator == "-" else value
    if kind != "Literal":
        return None
    value = node.value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def string_literal(node: Any) -> Optional[str]:
    if node_type(node) == "Literal" and isinstance(node.value, str):
        return node.value
    return None


class PropertyAssignment:
    """`<object>.<property> = <right>`"""
    def __init__(self, node: Any, object: Any, property: str, right: Any):
        self.node = node
        self.object = object
        self.property = property
        self.right = right

    @property
    def object_name(self) -> Optional[str]:
        return identifier_name(self.object)


class SingleArgCall:
    """`<callee>(<argument>)`"""
    def __init__(self, node: Any, callee: Any, argument: Any):
        self.node = node
        self.callee = callee
        self.argument = argument


class TableToken:
    """`<x>.<table>.<name>`, e.g. `e.TYPES.INT32` or `e.FLAGS.REPEATED`."""
    def __init__(self, table: str, name: str):
        self.table = table
        self.name = name


class FieldTuple:
    """`[tag, typeExpr, ref?]`"""
    def __init__(self, tag: int, type_expr: Any, ref: Any = None):
        self.tag = tag
        self.type_expr = type_expr
        self.ref = ref


def match_property_assignment(node: Any) -> Optional[PropertyAssignment]:
    if node_type(node) != "AssignmentExpression" or node.operator != "=":
        return None
    name = property_name(node.left)
    if not name:
        return None
    return PropertyAssignment(node, node.left.object, name, node.right)


def match_single_arg_call(node: Any) -> Optional[SingleArgCall]:
    if node_type(node) != "CallExpression":
        return None
    args = node.arguments or []
    if len(args) != 1:
        return None
    return SingleArgCall(node, node.callee, args[0])


def flatten_binary_or(node: Any) -> List[Any]:
    """Leaves of an `a | b | c` chain, left to right. A non-chain is its own single leaf."""
    leaves = []
    stack = [node]
    while stack:
        current = stack.pop()
        if node_type(current) == "BinaryExpression" and current.operator == "|":
            stack.append(current.right)
            stack.append(current.left)
        else:
            leaves.append(current)
    return leaves


def match_table_token(node: Any) -> Optional[TableToken]:
    if node_type(node) != "MemberExpression" or node_type(node.object) != "MemberExpression":
        return None
    table = property_name(node.object)
    name = property_name(node)
    if table is None or name is None:
        return None
    return TableToken(table, name)


def expect_field_tuple(node: Any) -> FieldTuple:
    if node_type(node) != "ArrayExpression":
        raise UnrecognizedShapeError("[tag, type, ref?] array", node)
    elements = node.elements or []
    if len(elements) not in (2, 3):
        raise UnrecognizedShapeError("array of two or three elements", node)
    tag = literal_int(elements[0])
    if tag is None:
        raise UnrecognizedShapeError("integer field tag", elements[0])
    ref = elements[2] if len(elements) == 3 else None
    return FieldTuple(tag, elements[1], ref)


def match_enum_literal(node: Any) -> Optional[List[EnumValue]]:
    """Values of a non-empty object literal whose every value is an integer literal."""
    if node_type(node) != "ObjectExpression" or not node.properties:
        return None
    values = []
    for prop in node.properties:
        name = property_key(prop)
        value = literal_int(prop.value) if name is not None else None
        if value is None:
            return None
        values.append(EnumValue(name, value))
    return values
