"""
SpecResolutionTransform: Resolves every `alias.internalSpec = {...}` field table
into typed ProtoField members of the identifier bound to `alias`.

Each member is `[tag, TYPES.T | FLAGS.F..., ref?]`. `ref` names the target of
message and enum fields (a local alias or `module.NameSpec`) or, for maps, is a
`[key, value]` pair. The `__oneofs__` constraint regroups named fields into
OneofGroup members. Problems that only affect one field or one message are
recorded in `warnings`; a bundle where no spec table belongs to any identifier
raises SchemaShapeError.
"""
from typing import Any, Dict, List, Optional, Tuple

from bundle_model import (
    BundleModule,
    Catalog,
    Identifier,
    Member,
    OneofGroup,
    ProtoField,
    ResolutionWarning,
    ResolvedType,
    TypeResolution,
    UnresolvedReference,
)
from bundle_transform_pipeline import BundleTransform
from identifier_names import make_rename_func
from js_ast import (
    UnrecognizedShapeError,
    expect_field_tuple,
    expression_text,
    flatten_binary_or,
    identifier_name,
    iter_postorder,
    match_enum_literal,
    match_property_assignment,
    match_table_token,
    node_type,
    property_key,
    property_name,
    string_literal,
)
from wrangler_config import WranglerConfig


class SchemaShapeError(Exception):
    """Spec tables exist but none of them belongs to a known identifier."""
    pass


class SpecResolutionTransform(BundleTransform):
    def __init__(self, config: Optional[WranglerConfig] = None, verbose: bool = False):
        self.config = config or WranglerConfig()
        self.verbose = verbose
        self.rename = make_rename_func(self.config.spec_suffix)
        self.warnings: List[ResolutionWarning] = []
        self.modules_by_name: Dict[str, BundleModule] = {}

    def debug_print(self, message: str) -> None:
        if self.verbose:
            print(message)

    def warn(self, kind: str, message: str, module: BundleModule = None, identifier: Identifier = None, field: str = None):
        warning = ResolutionWarning(
            kind,
            message,
            module=module.name if module else None,
            identifier=identifier.name if identifier else None,
            field=field,
        )
        self.warnings.append(warning)
        self.debug_print(f"[RESOLVE] warning: {warning}")

    def transform(self, catalog: Catalog) -> Catalog:
        self.warnings = []
        modules = [
            module.replace(identifiers={name: ident.copy() for name, ident in module.identifiers.items()})
            for module in catalog.modules
        ]
        self.modules_by_name = {module.name: module for module in modules}

        spec_tables = 0
        matched = 0
        for module in modules:
            for node in iter_postorder(module.statement):
                assignment = match_property_assignment(node)
                if (
                    assignment is None
                    or assignment.property != self.config.spec_property
                    or node_type(assignment.right) != "ObjectExpression"
                ):
                    continue
                spec_tables += 1
                target = module.find_by_alias(assignment.object_name)
                if target is None:
                    self.warn(
                        "unknown_spec_target",
                        f"No identifier is bound to alias '{expression_text(assignment.object)}'",
                        module,
                    )
                    continue
                matched += 1
                self.resolve_spec(assignment.right, target, module)

        if spec_tables and not matched:
            raise SchemaShapeError(
                f"None of the {spec_tables} '{self.config.spec_property}' tables belongs to a known identifier; "
                "the bundle layout has changed"
            )
        self.report_collisions(modules)
        self.debug_print(f"[RESOLVE] {matched}/{spec_tables} spec tables resolved, {len(self.warnings)} warnings")
        return catalog.replace(modules=modules).with_warnings(self.warnings)

    def resolve_spec(self, table: Any, target: Identifier, module: BundleModule) -> None:
        enum_values = match_enum_literal(table)
        if enum_values is not None:
            # enum body assigned through the spec property
            if not target.enum_values:
                target.enum_values = enum_values
            return

        constraints: List[Tuple[str, Any]] = []
        member_props: List[Tuple[str, Any]] = []
        for prop in table.properties:
            key = property_key(prop)
            if key is None:
                self.warn("unrecognized_shape", f"Unsupported property in spec table: {expression_text(prop)}", module, target)
                continue
            if key.startswith(self.config.constraint_prefix):
                constraints.append((key, prop))
            else:
                member_props.append((key, prop))

        members: List[Member] = []
        for key, prop in member_props:
            try:
                field_tuple = expect_field_tuple(prop.value)
            except UnrecognizedShapeError as e:
                self.warn("unrecognized_shape", f"Skipped member: {e}", module, target, key)
                continue
            members.append(self.resolve_field(key, field_tuple, target, module))

        for key, prop in constraints:
            if key == self.config.oneof_key and node_type(prop.value) == "ObjectExpression":
                members = self.group_oneofs(prop.value, members, target, module)
            else:
                self.debug_print(f"[RESOLVE]   {target.name}: ignoring constraint {key}")

        target.members = members
        self.debug_print(f"[RESOLVE]   {target.name}: {len(target.all_fields())} fields")

    def resolve_field(self, name: str, field_tuple, target: Identifier, module: BundleModule) -> ProtoField:
        field = ProtoField(name, field_tuple.tag)
        type_token = None
        for leaf in flatten_binary_or(field_tuple.type_expr):
            token = match_table_token(leaf)
            if token is None:
                continue
            if token.table == self.config.types_table:
                type_token = token.name.lower()
            elif token.table == self.config.flags_table:
                field.flags.append(token.name.lower())

        if type_token is None:
            resolution = UnresolvedReference("no type token", expression_text(field_tuple.type_expr))
        elif type_token == "map":
            resolution = self.resolve_map(field, field_tuple.ref, module)
        elif type_token in ("message", "enum"):
            resolution = self.resolve_reference(field_tuple.ref, module, type_token == "enum")
        else:
            resolution = ResolvedType(type_token, "scalar")

        if isinstance(resolution, ResolvedType):
            field.type = resolution.name
        else:
            field.unresolved = resolution
            self.warn(
                "unresolved_reference",
                f"Unable to resolve type of field ({resolution.reason}: {resolution.expression})",
                module,
                target,
                name,
            )
        return field

    def resolve_map(self, field: ProtoField, ref: Any, module: BundleModule) -> TypeResolution:
        if node_type(ref) != "ArrayExpression" or len(ref.elements or []) != 2:
            return UnresolvedReference("map without [key, value] pair", expression_text(ref) if ref is not None else None)
        names = []
        for element in ref.elements:
            token = match_table_token(element)
            if token is not None and token.table == self.config.types_table:
                names.append(token.name.lower())
                continue
            resolution = self.resolve_reference(element, module, False)
            if isinstance(resolution, UnresolvedReference):
                return resolution
            names.append(resolution.name)
        field.map_types = (names[0], names[1])
        return ResolvedType(f"map<{names[0]}, {names[1]}>", "map")

    def resolve_reference(self, ref: Any, module: BundleModule, enum_field: bool) -> TypeResolution:
        """
        Resolve the target of a message or enum field.
        A bare alias is looked up in the module's own identifiers. For
        `obj.Prop`, the suffix-stripped property is tried in the current module,
        then in the module `obj` was loaded from, then accepted by the bundle's
        naming convention (`...Spec`, or `...Type` for enums).
        """
        kind = node_type(ref)
        if kind is None:
            return UnresolvedReference("missing reference")
        if kind == "Identifier":
            ident = module.find_by_alias(ref.name)
            if ident is not None:
                return ResolvedType(ident.name, "local_alias")
            return UnresolvedReference("unknown alias", ref.name)
        prop = property_name(ref)
        if kind != "MemberExpression" or prop is None:
            return UnresolvedReference("unrecognized reference shape", expression_text(ref))

        key = self.rename(prop)
        if key in module.identifiers:
            return ResolvedType(key, "local")

        cross_ref = module.find_cross_ref(self.loader_alias(ref.object))
        if cross_ref is not None and cross_ref.target_module != self.config.external_enum_module:
            target_module = self.modules_by_name.get(cross_ref.target_module)
            if target_module is not None and key in target_module.identifiers:
                return ResolvedType(key, "cross_reference")

        if (enum_field and "Type" in prop) or self.config.spec_suffix in prop:
            return ResolvedType(key, "naming_convention")
        return UnresolvedReference("unresolved cross-module reference", expression_text(ref))

    @staticmethod
    def loader_alias(obj: Any) -> Optional[str]:
        """Alias of the module object in `alias.X`, `(alias = load(...)).X` or `alias(...).X`."""
        kind = node_type(obj)
        if kind == "Identifier":
            return obj.name
        if kind == "AssignmentExpression":
            return identifier_name(obj.left)
        if kind == "CallExpression":
            return identifier_name(obj.callee)
        return None

    def group_oneofs(self, table: Any, members: List[Member], target: Identifier, module: BundleModule) -> List[Member]:
        members = list(members)
        groups = []
        for prop in table.properties:
            group_name = property_key(prop)
            if group_name is None or node_type(prop.value) != "ArrayExpression":
                self.warn("unrecognized_shape", f"Unsupported oneof declaration: {expression_text(prop)}", module, target)
                continue
            group = OneofGroup(group_name)
            for element in prop.value.elements or []:
                member_name = string_literal(element)
                index = next(
                    (i for i, m in enumerate(members) if isinstance(m, ProtoField) and m.name == member_name),
                    None,
                )
                if index is None:
                    self.warn(
                        "oneof_member_missing",
                        f"Oneof '{group_name}' names a member that is not declared",
                        module,
                        target,
                        member_name or expression_text(element),
                    )
                    continue
                group.members.append(members.pop(index))
            if group.members:
                groups.append(group)
            else:
                self.warn("oneof_member_missing", f"Oneof '{group_name}' has no declared members and was dropped", module, target)
        return members + groups

    def report_collisions(self, modules: List[BundleModule]) -> None:
        owners: Dict[str, List[str]] = {}
        for module in modules:
            for ident in module.identifiers.values():
                if not ident.is_shell:
                    owners.setdefault(ident.name, []).append(module.name)
        for name, module_names in owners.items():
            if len(module_names) > 1:
                self.warnings.append(ResolutionWarning(
                    "name_collision",
                    f"'{name}' is defined in modules {', '.join(module_names)}; the last definition is used",
                    module=module_names[-1],
                    identifier=name,
                ))
