"""
CrossReferenceTransform: Records, per module, every local alias bound to a call
that loads another module by name, e.g. `e = o("WAProtoConst")`.
Builder calls always pass an object literal and are not recorded.
"""
from typing import Any, List

from bundle_model import Catalog, CrossRef
from bundle_transform_pipeline import BundleTransform
from js_ast import identifier_name, iter_postorder, match_single_arg_call, node_type, string_literal


def _module_load(alias_node: Any, value: Any):
    call = match_single_arg_call(value)
    if call is None or node_type(call.argument) == "ObjectExpression":
        return None
    alias = identifier_name(alias_node)
    target = string_literal(call.argument)
    if alias is None or target is None:
        return None
    return CrossRef(alias, target)


def build_cross_refs(statement: Any) -> List[CrossRef]:
    refs = []
    for node in iter_postorder(statement):
        kind = node_type(node)
        if kind == "AssignmentExpression":
            ref = _module_load(node.left, node.right)
        elif kind == "VariableDeclarator":
            ref = _module_load(node.id, node.init)
        else:
            continue
        if ref is not None:
            refs.append(ref)
    return refs


class CrossReferenceTransform(BundleTransform):
    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def debug_print(self, message: str) -> None:
        if self.verbose:
            print(message)

    def transform(self, catalog: Catalog) -> Catalog:
        modules = []
        for module in catalog.modules:
            refs = build_cross_refs(module.statement)
            self.debug_print(f"[XREF] {module.name}: {', '.join(f'{r.alias} -> {r.target_module}' for r in refs) or 'none'}")
            modules.append(module.replace(cross_refs=refs))
        return catalog.replace(modules=modules)
