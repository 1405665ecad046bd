"""
bundle_model.py
Representation of the schema recovered from a client bundle: modules, their
cross-references and identifiers, resolved fields and oneof groups.
Each extraction stage returns a new Catalog built from the previous one.
"""
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Union


class CrossRef:
    """A local alias bound to another module loaded by name."""
    def __init__(self, alias: str, target_module: str):
        self.alias = alias
        self.target_module = target_module

    def __eq__(self, other):
        return (
            isinstance(other, CrossRef)
            and self.alias == other.alias
            and self.target_module == other.target_module
        )

    def __repr__(self):
        return f"CrossRef(alias={self.alias!r}, target_module={self.target_module!r})"


class EnumValue:
    def __init__(self, name: str, id: int):
        self.name = name
        self.id = id

    def __eq__(self, other):
        return isinstance(other, EnumValue) and self.name == other.name and self.id == other.id

    def __repr__(self):
        return f"EnumValue({self.name!r}, {self.id!r})"


class ResolvedType:
    """Outcome of a successful reference lookup; `via` records which rule matched."""
    def __init__(self, name: str, via: str):
        self.name = name
        self.via = via

    def __repr__(self):
        return f"ResolvedType(name={self.name!r}, via={self.via!r})"


class UnresolvedReference:
    """Outcome of a failed reference lookup, kept on the field it belongs to."""
    def __init__(self, reason: str, expression: Optional[str] = None):
        self.reason = reason
        self.expression = expression

    def __repr__(self):
        return f"UnresolvedReference(reason={self.reason!r}, expression={self.expression!r})"


TypeResolution = Union[ResolvedType, UnresolvedReference]


class ProtoField:
    def __init__(
        self,
        name: str,
        id: Optional[int],
        type: Optional[str] = None,
        flags: Optional[List[str]] = None,
        map_types: Optional[Tuple[str, str]] = None,
        unresolved: Optional[UnresolvedReference] = None,
    ):
        self.name = name
        self.id = id
        self.type = type  # scalar tag, identifier name, "map<K, V>" or None
        self.flags = flags or []
        self.map_types = map_types
        self.unresolved = unresolved

    @property
    def is_map(self) -> bool:
        return self.map_types is not None

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags

    def copy(self) -> "ProtoField":
        return ProtoField(self.name, self.id, self.type, list(self.flags), self.map_types, self.unresolved)

    def __repr__(self):
        return f"ProtoField(name={self.name!r}, id={self.id!r}, type={self.type!r}, flags={self.flags!r})"


class OneofGroup:
    def __init__(self, name: str, members: Optional[List[ProtoField]] = None):
        self.name = name
        self.members = members or []

    def copy(self) -> "OneofGroup":
        return OneofGroup(self.name, [m.copy() for m in self.members])

    def __repr__(self):
        return f"OneofGroup(name={self.name!r}, members={[m.name for m in self.members]!r})"


Member = Union[ProtoField, OneofGroup]


class Identifier:
    """
    A message or enum definition. Starts as a blank shell holding only a name;
    `members` is filled for messages, `enum_values` for enums.
    """
    def __init__(
        self,
        name: str,
        nesting_path: str = "",
        alias: Optional[str] = None,
        members: Optional[List[Member]] = None,
        enum_values: Optional[List[EnumValue]] = None,
        module: Optional[str] = None,
    ):
        self.name = name
        self.nesting_path = nesting_path
        self.alias = alias
        self.members = members
        self.enum_values = enum_values
        self.module = module

    @property
    def is_message(self) -> bool:
        return self.members is not None

    @property
    def is_enum(self) -> bool:
        return not self.is_message and bool(self.enum_values)

    @property
    def is_shell(self) -> bool:
        return not self.is_message and not self.is_enum

    def fields(self) -> List[ProtoField]:
        """Fields outside any oneof group."""
        return [m for m in (self.members or []) if isinstance(m, ProtoField)]

    def oneof_groups(self) -> List[OneofGroup]:
        return [m for m in (self.members or []) if isinstance(m, OneofGroup)]

    def all_fields(self) -> List[ProtoField]:
        result = []
        for member in self.members or []:
            if isinstance(member, OneofGroup):
                result.extend(member.members)
            else:
                result.append(member)
        return result

    def copy(self) -> "Identifier":
        members = None
        if self.members is not None:
            members = [m.copy() for m in self.members]
        enum_values = None
        if self.enum_values is not None:
            enum_values = list(self.enum_values)
        return Identifier(self.name, self.nesting_path, self.alias, members, enum_values, self.module)

    def __repr__(self):
        kind = "message" if self.is_message else "enum" if self.is_enum else "shell"
        return f"Identifier(name={self.name!r}, kind={kind}, alias={self.alias!r})"


class BundleModule:
    """One top-level component of the bundle that declares protocol definitions."""
    def __init__(
        self,
        name: str,
        statement: Any,
        cross_refs: Optional[List[CrossRef]] = None,
        identifiers: Optional[Dict[str, Identifier]] = None,
    ):
        self.name = name
        self.statement = statement  # parsed AST node, shared and never modified
        self.cross_refs = cross_refs or []
        self.identifiers = identifiers if identifiers is not None else {}

    def replace(self, **changes) -> "BundleModule":
        values = {
            "name": self.name,
            "statement": self.statement,
            "cross_refs": self.cross_refs,
            "identifiers": self.identifiers,
        }
        values.update(changes)
        return BundleModule(**values)

    def find_cross_ref(self, alias: Optional[str]) -> Optional[CrossRef]:
        if alias is None:
            return None
        for ref in self.cross_refs:
            if ref.alias == alias:
                return ref
        return None

    def find_by_alias(self, alias: Optional[str]) -> Optional[Identifier]:
        if alias is None:
            return None
        for ident in self.identifiers.values():
            if ident.alias == alias:
                return ident
        return None

    def __repr__(self):
        return f"BundleModule(name={self.name!r}, identifiers={len(self.identifiers)})"


class NestingIndex:
    """
    Global nesting information: every identifier key's nesting path, and for
    each parent path the set of child keys registered under it.
    """
    def __init__(self, paths: Optional[Dict[str, str]] = None, children: Optional[Dict[str, Set[str]]] = None):
        self.paths = paths if paths is not None else {}
        self.children = children if children is not None else {}

    def register(self, key: str, nesting_path: str):
        self.paths[key] = nesting_path
        if nesting_path:
            self.children.setdefault(nesting_path, set()).add(key)

    def nesting_of(self, key: Optional[str]) -> str:
        if key is None:
            return ""
        return self.paths.get(key, "")

    def children_of(self, key: str) -> List[str]:
        """Child keys in lexicographic order."""
        return sorted(self.children.get(key, ()))

    def copy(self) -> "NestingIndex":
        return NestingIndex(dict(self.paths), {k: set(v) for k, v in self.children.items()})


class ResolutionWarning:
    """A recoverable problem found while extracting; never stops the run."""
    def __init__(
        self,
        kind: str,
        message: str,
        module: Optional[str] = None,
        identifier: Optional[str] = None,
        field: Optional[str] = None,
    ):
        self.kind = kind
        self.message = message
        self.module = module
        self.identifier = identifier
        self.field = field

    def __str__(self):
        location = []
        if self.module:
            location.append(f"module '{self.module}'")
        if self.identifier:
            location.append(f"message '{self.identifier}'")
        if self.field:
            location.append(f"field '{self.field}'")
        suffix = f" ({', '.join(location)})" if location else ""
        return f"[{self.kind}] {self.message}{suffix}"

    def __repr__(self):
        return f"ResolutionWarning(kind={self.kind!r}, message={self.message!r})"


class Catalog:
    def __init__(
        self,
        modules: Optional[List[BundleModule]] = None,
        nesting: Optional[NestingIndex] = None,
        warnings: Optional[List[ResolutionWarning]] = None,
    ):
        self.modules = modules or []
        self.nesting = nesting if nesting is not None else NestingIndex()
        self.warnings = warnings or []

    def replace(self, **changes) -> "Catalog":
        values = {"modules": self.modules, "nesting": self.nesting, "warnings": self.warnings}
        values.update(changes)
        return Catalog(**values)

    def with_warnings(self, warnings: List[ResolutionWarning]) -> "Catalog":
        return self.replace(warnings=list(self.warnings) + list(warnings))

    def module(self, name: Optional[str]) -> Optional[BundleModule]:
        for mod in self.modules:
            if mod.name == name:
                return mod
        return None

    def iter_identifiers(self) -> Iterator[Identifier]:
        for mod in self.modules:
            yield from mod.identifiers.values()

    def find_identifier(self, name: str) -> Optional[Identifier]:
        """Global lookup; names are unique across modules, a later module wins on collision."""
        found = None
        for mod in self.modules:
            if name in mod.identifiers:
                found = mod.identifiers[name]
        return found

    def identifiers_by_name(self) -> Dict[str, Identifier]:
        """Every identifier keyed by name; a later module wins on collision, as in find_identifier."""
        result = {}
        for ident in self.iter_identifiers():
            result[ident.name] = ident
        return result

    def unresolved_fields(self) -> List[Tuple[Identifier, ProtoField]]:
        result = []
        for ident in self.iter_identifiers():
            if not ident.is_message:
                continue
            for field in ident.all_fields():
                if field.type is None:
                    result.append((ident, field))
        return result

    def __repr__(self):
        return f"Catalog(modules={[m.name for m in self.modules]!r}, warnings={len(self.warnings)})"
