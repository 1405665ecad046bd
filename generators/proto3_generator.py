"""
Proto3 generator for the resolved bundle Catalog.
Emits one `.proto` document: a fixed header, then every top-level message and
enum sorted by name, with nested definitions inside their parent's braces.

Where each definition goes is decided before rendering. A nested definition
whose parent is not in the catalog gets an empty synthesized parent message;
a parent with neither fields nor values is rendered as an empty message; an
enum cannot hold nested definitions, so its children move to the top level.
Each of these is reported as an `orphan_nested` warning.
"""
from typing import Dict, List, Optional, Set

from bundle_model import Catalog, Identifier, OneofGroup, ProtoField, ResolutionWarning
from identifier_names import child_display_name, field_type_display_name, get_nesting
from wrangler_config import WranglerConfig

UNRESOLVED_TYPE = "__unresolved__"


def add_prefix(lines: List[str], prefix: str) -> List[str]:
    return [prefix + line for line in lines]


class Proto3Generator:
    def __init__(
        self,
        catalog: Catalog,
        version: str,
        generated_on: str,
        config: Optional[WranglerConfig] = None,
        verbose: bool = False,
    ):
        self.catalog = catalog
        self.version = version
        self.generated_on = generated_on
        self.config = config or WranglerConfig()
        self.verbose = verbose
        self.warnings: List[ResolutionWarning] = []
        self.entity_count = 0
        self.entities: Dict[str, Identifier] = {}
        self.parents: Dict[str, str] = {}
        self.children: Dict[str, List[str]] = {}
        self.synthesized: Set[str] = set()

    def debug_print(self, message: str) -> None:
        if self.verbose:
            print(message)

    def warn(self, kind: str, message: str, ident: Optional[Identifier] = None, field: Optional[str] = None) -> None:
        self.warnings.append(ResolutionWarning(
            kind,
            message,
            module=ident.module if ident else None,
            identifier=ident.name if ident else None,
            field=field,
        ))

    def generate(self) -> str:
        """Render the whole document. The catalog is left untouched, so repeated calls give the same text."""
        self.warnings = []
        self.plan_layout()
        names = self.children.get("", [])
        self.entity_count = len(names)
        blocks = ["\n".join(self.render_entity(self.entities[name], child_display_name(name, ""))) for name in names]

        header = [
            'syntax = "proto3";',
            f"package {self.config.package};",
            "",
            f"/// {self.config.client_label} Version: {self.version}",
            f"/// Generated on: {self.generated_on}",
            f"/// Entities found: {self.entity_count}",
            "",
        ]
        text = "\n".join(header) + "\n" + "\n\n".join(blocks)
        if blocks:
            text += "\n"
        self.debug_print(f"[PROTO3] rendered {self.entity_count} top-level entities")
        return text

    def nesting_of(self, name: str) -> str:
        return self.catalog.nesting.nesting_of(name) or get_nesting(name)

    def plan_layout(self) -> None:
        """Fill `parents` (name -> enclosing name, "" for top level) and the sorted `children` lists."""
        self.entities = self.catalog.identifiers_by_name()
        self.parents = {}
        self.synthesized = set()
        for name in sorted(self.entities):
            self.place(self.entities[name])

        children: Dict[str, List[str]] = {}
        for name, parent in self.parents.items():
            children.setdefault(parent, []).append(name)
        self.children = {parent: sorted(names) for parent, names in children.items()}

    def place(self, ident: Identifier) -> None:
        if ident.name in self.parents:
            return
        path = self.nesting_of(ident.name)
        if not path:
            self.parents[ident.name] = ""
            return
        parent = self.entities.get(path)
        if parent is None:
            parent = Identifier(path, get_nesting(path), members=[])
            self.entities[path] = parent
            self.synthesized.add(path)
            self.debug_print(f"[PROTO3] synthesized parent message {path}")
        self.place(parent)

        if path in self.synthesized:
            self.warn("orphan_nested", f"Parent '{path}' is not defined; rendered as an empty message", ident)
        elif parent.is_enum:
            self.warn("orphan_nested", f"Parent '{path}' is an enum and cannot nest definitions; moved to top level", ident)
            self.parents[ident.name] = ""
            return
        elif parent.is_shell:
            self.warn("orphan_nested", f"Parent '{path}' has neither fields nor values; rendered as an empty message", ident)
        self.parents[ident.name] = path

    def render_entity(self, ident: Identifier, display_name: str) -> List[str]:
        if ident.is_message or self.children.get(ident.name):
            return self.render_message(ident, display_name)
        if ident.is_enum:
            return self.render_enum(ident, display_name)
        self.warn("bare_identifier", "Identifier has neither fields nor enum values", ident)
        return [f"// Unknown entity {ident.name}"]

    def render_enum(self, ident: Identifier, display_name: str) -> List[str]:
        lines = [f"enum {display_name} {{"]
        lines.extend(add_prefix([f"{value.name} = {value.id};" for value in ident.enum_values], self.config.indent))
        lines.append("}")
        return lines

    def render_message(self, ident: Identifier, display_name: str) -> List[str]:
        body = []
        for member in ident.members or []:
            if isinstance(member, OneofGroup):
                body.append(f"oneof {member.name} {{")
                body.extend(add_prefix(
                    [self.render_field(field, ident, in_oneof=True) for field in member.members],
                    self.config.indent,
                ))
                body.append("}")
            else:
                body.append(self.render_field(member, ident))

        for child_name in self.children.get(ident.name, []):
            child = self.entities[child_name]
            body.extend(self.render_entity(child, child_display_name(child.name, ident.name)))

        return [f"message {display_name} {{"] + add_prefix(body, self.config.indent) + ["}"]

    def display_path(self, name: str) -> str:
        """Dotted name of a rendered definition as seen from the top level."""
        parent = self.parents.get(name, get_nesting(name))
        short = child_display_name(name, parent)
        if not parent:
            return short
        return f"{self.display_path(parent)}.{short}"

    def type_display_name(self, type_name: str, enclosing: Identifier) -> str:
        if type_name not in self.parents:
            return field_type_display_name(type_name, get_nesting(type_name), enclosing.name)
        parent = self.parents[type_name]
        if not parent or parent == enclosing.name:
            return child_display_name(type_name, parent)
        return f"{self.display_path(parent)}.{child_display_name(type_name, parent)}"

    def render_field(self, field: ProtoField, enclosing: Identifier, in_oneof: bool = False) -> str:
        repeated = field.has_flag("repeated")
        packed = ""
        if field.has_flag("packed"):
            if field.is_map:
                self.warn("packed_on_map", "Dropped packed option from a map field", enclosing, field.name)
            elif in_oneof:
                self.warn("packed_in_oneof", "Dropped packed option from a oneof member", enclosing, field.name)
            elif not repeated:
                self.warn("packed_without_repeated", "Dropped packed option from a field that is not repeated", enclosing, field.name)
            else:
                packed = " [packed=true]"
        # required and optional are never written in proto3
        label = ""
        if repeated and in_oneof and not field.is_map:
            self.warn("repeated_in_oneof", "Dropped repeated label from a oneof member", enclosing, field.name)
        elif repeated and not field.is_map:
            label = "repeated "

        if field.type is None:
            type_name = UNRESOLVED_TYPE
        elif field.is_map:
            key, value = field.map_types
            type_name = f"map<{self.type_display_name(key, enclosing)}, {self.type_display_name(value, enclosing)}>"
        else:
            type_name = self.type_display_name(field.type, enclosing)
        return f"{label}{type_name} {field.name} = {field.id}{packed};"


def generate_proto3_schema(
    catalog: Catalog,
    version: str,
    generated_on: str,
    config: Optional[WranglerConfig] = None,
) -> str:
    return Proto3Generator(catalog, version, generated_on, config).generate()
