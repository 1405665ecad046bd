"""
IdentifierCatalogTransform: Builds the identifier namespace of every module.
Each property assignment (other than builder metadata) names an identifier;
the property name minus its "Spec" suffix is the identifier key and its
'$'-separated prefix is the nesting path. Identifiers initialised from an enum
literal receive their enum values here. Message members are filled in later
by SpecResolutionTransform.
"""
from typing import Any, Callable, Dict, List, Optional

from bundle_model import BundleModule, Catalog, EnumValue, Identifier, NestingIndex
from bundle_transform_pipeline import BundleTransform
from identifier_names import get_nesting, make_rename_func
from js_ast import (
    identifier_name,
    iter_postorder,
    iter_postorder_with_ancestors,
    match_enum_literal,
    match_property_assignment,
    match_single_arg_call,
    node_type,
    property_key,
)
from wrangler_config import WranglerConfig


def collect_named_assignments(statement: Any, config: WranglerConfig) -> List[Any]:
    """Property assignments naming schema members, in source (post-)order."""
    reserved = config.reserved_properties
    result = []
    for node in iter_postorder(statement):
        assignment = match_property_assignment(node)
        if assignment is not None and assignment.property not in reserved:
            result.append(assignment)
    return result


def build_enum_tables(statement: Any, config: WranglerConfig) -> Dict[str, List[EnumValue]]:
    """
    Map local variable name -> enum values for every enum literal in the module.
    An enum body is either the right-hand side of `alias.<spec> = {...}` or the
    object argument of a builder call, `var alias = builder({...})`.
    """
    tables = {}
    seen = set()
    for node, path in iter_postorder_with_ancestors(statement):
        if node_type(node) != "Property" or len(path) < 3:
            continue
        body = path[-2]
        if id(body) in seen:
            continue
        seen.add(id(body))
        father = path[-3]
        father_father = path[-4] if len(path) >= 4 else None

        assignment = match_property_assignment(father)
        if assignment is not None and assignment.property == config.spec_property:
            if assignment.right is not body:
                continue
            values = match_enum_literal(body)
            alias = assignment.object_name
            if values and alias:
                tables[alias] = values
        elif (
            property_key(node)
            and node_type(father) == "CallExpression"
            and any(arg is body for arg in father.arguments or [])
        ):
            values = match_enum_literal(body)
            alias = None
            if node_type(father_father) == "AssignmentExpression":
                alias = identifier_name(father_father.left)
            elif node_type(father_father) == "VariableDeclarator":
                alias = identifier_name(father_father.id)
            if values and alias:
                tables[alias] = values
    return tables


def direct_enum_values(right: Any):
    """Values of `builder({...})` bound straight to a property, with no local alias."""
    call = match_single_arg_call(right)
    if call is None:
        return None
    return match_enum_literal(call.argument)


class IdentifierCatalogTransform(BundleTransform):
    def __init__(self, config: Optional[WranglerConfig] = None, verbose: bool = False):
        self.config = config or WranglerConfig()
        self.verbose = verbose

    def debug_print(self, message: str) -> None:
        if self.verbose:
            print(message)

    def transform(self, catalog: Catalog) -> Catalog:
        nesting = catalog.nesting.copy()
        modules = [self.build_module(module, nesting) for module in catalog.modules]
        return catalog.replace(modules=modules, nesting=nesting)

    def build_module(self, module: BundleModule, nesting: NestingIndex) -> BundleModule:
        rename = make_rename_func(self.config.spec_suffix)
        assignments = collect_named_assignments(module.statement, self.config)

        keys = []
        for assignment in assignments:
            key = rename(assignment.property)
            nesting.register(key, get_nesting(key))
            keys.append(key)

        # Identifiers are created in reverse declaration order: bundles declare
        # children before their parents, and later passes look parents up by
        # this order.
        identifiers = {}
        for key in reversed(keys):
            if key not in identifiers:
                identifiers[key] = Identifier(key, get_nesting(key), module=module.name)

        enum_tables = build_enum_tables(module.statement, self.config)
        self.link_aliases(assignments, identifiers, enum_tables, rename)

        enums = sum(1 for ident in identifiers.values() if ident.enum_values)
        self.debug_print(f"[CATALOG] {module.name}: {len(identifiers)} identifiers, {enums} with enum values")
        return module.replace(identifiers=identifiers)

    def link_aliases(
        self,
        assignments: List[Any],
        identifiers: Dict[str, Identifier],
        enum_tables: Dict[str, List[EnumValue]],
        rename: Callable[[str], str],
    ) -> None:
        for assignment in assignments:
            ident = identifiers.get(rename(assignment.property))
            if ident is None:
                continue
            alias = identifier_name(assignment.right)
            ident.alias = alias
            if alias is not None:
                ident.enum_values = enum_tables.get(alias)
            else:
                ident.enum_values = direct_enum_values(assignment.right)
            if ident.enum_values:
                self.debug_print(f"[CATALOG]   enum {ident.name} <- {alias or 'inline literal'}")
