"""
proto_checker.py
Re-parses generated proto3 text with a lark grammar and reports what the
downstream protobuf compiler would reject: placeholder types, references to
undeclared types, duplicate field numbers, proto2 labels, plus entities the
generator could not render.
"""
import re
from typing import List, Optional, Set

from lark import Lark, Token, Transformer
from lark.exceptions import UnexpectedInput

from generators.proto3_generator import UNRESOLVED_TYPE

grammar = r"""
    start: _statement*
    _statement: syntax_decl | package_decl | message | enum

    syntax_decl: "syntax" "=" ESCAPED_STRING ";"
    package_decl: "package" type_name ";"

    message: "message" NAME "{" _message_item* "}"
    _message_item: field | map_field | oneof | message | enum

    field: label? type_name NAME "=" INT field_options? ";"
    ?label: REPEATED | REQUIRED | OPTIONAL
    map_field: "map" "<" type_name "," type_name ">" NAME "=" INT field_options? ";"
    oneof: "oneof" NAME "{" field* "}"

    enum: "enum" NAME "{" enum_value* "}"
    enum_value: NAME "=" SIGNED_INT ";"

    field_options: "[" field_option ("," field_option)* "]"
    field_option: NAME "=" (NAME | INT)

    type_name: NAME ("." NAME)*

    REPEATED: "repeated"
    REQUIRED: "required"
    OPTIONAL: "optional"
    NAME: /[A-Za-z_][A-Za-z0-9_]*/
    COMMENT: /\/\/[^\n]*/

    %import common.INT
    %import common.SIGNED_INT
    %import common.ESCAPED_STRING
    %import common.WS
    %ignore WS
    %ignore COMMENT
"""

parser = Lark(grammar, start='start', parser='lalr', propagate_positions=True)

SCALAR_TYPES = {
    "double", "float", "int32", "int64", "uint32", "uint64", "sint32", "sint64",
    "fixed32", "fixed64", "sfixed32", "sfixed64", "bool", "string", "bytes",
}

FORBIDDEN_LABELS = ("REQUIRED", "OPTIONAL")

UNKNOWN_ENTITY_RE = re.compile(r"^[ \t]*// Unknown entity (\S+)", re.MULTILINE)


class ProtoFieldDecl:
    def __init__(self, name: str, number: int, type_names: List[str], label: Optional[str] = None, line: Optional[int] = None):
        self.name = name
        self.number = number
        self.type_names = type_names
        self.label = label
        self.line = line


class ProtoDecl:
    """A message, enum or oneof block."""
    def __init__(self, kind: str, name: str, members: list, line: Optional[int] = None):
        self.kind = kind
        self.name = name
        self.members = members
        self.line = line

    def fields(self) -> List[ProtoFieldDecl]:
        """Fields of a message, including the ones inside its oneofs."""
        result = []
        for member in self.members:
            if isinstance(member, ProtoFieldDecl):
                result.append(member)
            elif member.kind == "oneof":
                result.extend(member.members)
        return result

    def nested(self) -> List["ProtoDecl"]:
        return [m for m in self.members if isinstance(m, ProtoDecl) and m.kind in ("message", "enum")]


class ProtoTreeBuilder(Transformer):
    def start(self, items):
        return [item for item in items if isinstance(item, ProtoDecl)]

    def syntax_decl(self, items):
        return None

    def package_decl(self, items):
        return None

    def type_name(self, items):
        return ".".join(str(item) for item in items)

    def field(self, items):
        label = None
        if isinstance(items[0], Token) and items[0].type in ("REPEATED", "REQUIRED", "OPTIONAL"):
            label = items[0].type
            items = items[1:]
        type_name, name, number = items[0], items[1], items[2]
        return ProtoFieldDecl(str(name), int(number), [type_name], label, name.line)

    def map_field(self, items):
        key, value, name, number = items[0], items[1], items[2], items[3]
        return ProtoFieldDecl(str(name), int(number), [key, value], None, name.line)

    def oneof(self, items):
        return ProtoDecl("oneof", str(items[0]), list(items[1:]), items[0].line)

    def message(self, items):
        return ProtoDecl("message", str(items[0]), list(items[1:]), items[0].line)

    def enum(self, items):
        return ProtoDecl("enum", str(items[0]), list(items[1:]), items[0].line)

    def enum_value(self, items):
        return (str(items[0]), int(items[1]))


def parse_proto_text(text: str) -> List[ProtoDecl]:
    """Parse proto3 text into its top-level message and enum declarations."""
    tree = parser.parse(text)
    return ProtoTreeBuilder().transform(tree)


class ProtoCheckIssue:
    def __init__(self, kind: str, message: str, line: Optional[int] = None):
        self.kind = kind
        self.message = message
        self.line = line

    def __str__(self):
        if self.line is not None:
            return f"line {self.line}: {self.message}"
        return self.message

    def __repr__(self):
        return f"ProtoCheckIssue(kind={self.kind!r}, message={self.message!r}, line={self.line!r})"


class ProtoCheckReport:
    def __init__(self, issues: Optional[List[ProtoCheckIssue]] = None):
        self.issues = issues or []

    @property
    def ok(self) -> bool:
        return not self.issues

    def by_kind(self, kind: str) -> List[ProtoCheckIssue]:
        return [issue for issue in self.issues if issue.kind == kind]


def _declared_names(decls: List[ProtoDecl], scope: List[str], names: Set[str]) -> Set[str]:
    for decl in decls:
        full_name = ".".join(scope + [decl.name])
        names.add(full_name)
        if decl.kind == "message":
            _declared_names(decl.nested(), scope + [decl.name], names)
    return names


def _type_is_declared(type_name: str, scope: List[str], declared: Set[str]) -> bool:
    for depth in range(len(scope), -1, -1):
        if ".".join(scope[:depth] + [type_name]) in declared:
            return True
    return False


def _check_message(decl: ProtoDecl, scope: List[str], declared: Set[str], issues: List[ProtoCheckIssue]) -> None:
    inner_scope = scope + [decl.name]
    qualified = ".".join(inner_scope)
    seen_numbers = {}
    for field in decl.fields():
        if field.number in seen_numbers:
            issues.append(ProtoCheckIssue(
                "duplicate_field_number",
                f"{qualified}: fields '{seen_numbers[field.number]}' and '{field.name}' share number {field.number}",
                field.line,
            ))
        else:
            seen_numbers[field.number] = field.name
        if field.label in FORBIDDEN_LABELS:
            issues.append(ProtoCheckIssue(
                "forbidden_label",
                f"{qualified}.{field.name}: label '{field.label.lower()}' is not allowed in proto3",
                field.line,
            ))
        for type_name in field.type_names:
            if type_name == UNRESOLVED_TYPE:
                issues.append(ProtoCheckIssue("placeholder_type", f"{qualified}.{field.name} has no resolved type", field.line))
            elif type_name not in SCALAR_TYPES and not _type_is_declared(type_name, inner_scope, declared):
                issues.append(ProtoCheckIssue("unknown_type", f"{qualified}.{field.name} references undeclared type '{type_name}'", field.line))
    for nested in decl.nested():
        if nested.kind == "message":
            _check_message(nested, inner_scope, declared, issues)


def check_proto_text(text: str) -> ProtoCheckReport:
    """Check generated proto3 text; a document that does not parse yields a single syntax_error issue."""
    issues = []
    for match in UNKNOWN_ENTITY_RE.finditer(text):
        line = text.count("\n", 0, match.start()) + 1
        issues.append(ProtoCheckIssue("unknown_entity", f"'{match.group(1)}' could not be rendered", line))
    try:
        decls = parse_proto_text(text)
    except UnexpectedInput as e:
        issues.append(ProtoCheckIssue("syntax_error", f"Generated text is not valid proto3: {e}", getattr(e, "line", None)))
        return ProtoCheckReport(issues)
    declared = _declared_names(decls, [], set())
    for decl in decls:
        if decl.kind == "message":
            _check_message(decl, [], declared, issues)
    return ProtoCheckReport(issues)
