"""
catalog_debug.py
JSON dump and text listing of a Catalog, for inspecting what each extraction
stage recovered from a bundle.
"""
import os
import json
from typing import Any, Dict

from bundle_model import Catalog, Identifier, OneofGroup, ProtoField


def _field_to_dict(field: ProtoField) -> Dict[str, Any]:
    result = {"name": field.name, "id": field.id, "type": field.type, "flags": list(field.flags)}
    if field.map_types:
        result["map_types"] = list(field.map_types)
    if field.unresolved is not None:
        result["unresolved"] = {"reason": field.unresolved.reason, "expression": field.unresolved.expression}
    return result


def _identifier_to_dict(ident: Identifier) -> Dict[str, Any]:
    result = {"name": ident.name, "nesting_path": ident.nesting_path, "alias": ident.alias}
    if ident.members is not None:
        members = []
        for member in ident.members:
            if isinstance(member, OneofGroup):
                members.append({"oneof": member.name, "members": [_field_to_dict(f) for f in member.members]})
            else:
                members.append(_field_to_dict(member))
        result["members"] = members
    if ident.enum_values:
        result["enum_values"] = [{"name": v.name, "id": v.id} for v in ident.enum_values]
    return result


def catalog_to_dict(catalog: Catalog) -> Dict[str, Any]:
    return {
        "modules": [
            {
                "name": module.name,
                "cross_refs": [{"alias": r.alias, "module": r.target_module} for r in module.cross_refs],
                "identifiers": [_identifier_to_dict(ident) for ident in module.identifiers.values()],
            }
            for module in catalog.modules
        ],
        "nesting": {parent: catalog.nesting.children_of(parent) for parent in sorted(catalog.nesting.children)},
        "warnings": [
            {
                "kind": w.kind,
                "message": w.message,
                "module": w.module,
                "identifier": w.identifier,
                "field": w.field,
            }
            for w in catalog.warnings
        ],
    }


def dump_catalog(catalog: Catalog, file_path: str) -> str:
    """Write the catalog as JSON to file_path, creating its directory. Returns the path."""
    directory = os.path.dirname(file_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(catalog_to_dict(catalog), f, indent=2)
    return file_path


def format_catalog(catalog: Catalog) -> str:
    lines = []
    for module in catalog.modules:
        lines.append(f"Module {module.name}")
        for ref in module.cross_refs:
            lines.append(f"  CrossRef {ref.alias} -> {ref.target_module}")
        for ident in module.identifiers.values():
            if ident.is_message:
                lines.append(f"  Message {ident.name} (alias={ident.alias})")
                for member in ident.members:
                    if isinstance(member, OneofGroup):
                        lines.append(f"    Oneof {member.name}")
                        for field in member.members:
                            lines.append(f"      {field.name} = {field.id}: {field.type} {field.flags}")
                    else:
                        lines.append(f"    {member.name} = {member.id}: {member.type} {member.flags}")
            elif ident.is_enum:
                lines.append(f"  Enum {ident.name} (alias={ident.alias})")
                for value in ident.enum_values:
                    lines.append(f"    {value.name} = {value.id}")
            else:
                lines.append(f"  Shell {ident.name}")
    if catalog.warnings:
        lines.append("Warnings")
        for warning in catalog.warnings:
            lines.append(f"  {warning}")
    return "\n".join(lines)
