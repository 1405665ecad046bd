"""
identifier_names.py
Naming rules for identifiers recovered from the bundle.
Nested definitions are encoded in their names with '$' separators,
e.g. 'Message$Child$Grandchild'.
"""
from typing import Callable

NESTING_SEPARATOR = "$"


def unspec_name(name: str, suffix: str = "Spec") -> str:
    """Strip the builder suffix: 'ReportSpec' -> 'Report'."""
    if suffix and name.endswith(suffix) and len(name) > len(suffix):
        return name[:-len(suffix)]
    return name


def unnest_name(name: str) -> str:
    """Last segment of a nested name: 'A$B$C' -> 'C'."""
    return name.split(NESTING_SEPARATOR)[-1]


def get_nesting(name: str) -> str:
    """Nesting path of a name, empty for top-level names: 'A$B$C' -> 'A$B'."""
    return NESTING_SEPARATOR.join(name.split(NESTING_SEPARATOR)[:-1])


def make_rename_func(suffix: str = "Spec") -> Callable[[str], str]:
    """Return the function mapping a bundle property name to its identifier key."""
    def rename(name: str) -> str:
        return unspec_name(name, suffix)
    return rename


def dotted(name: str) -> str:
    return name.replace(NESTING_SEPARATOR, ".")


def child_display_name(child: str, parent: str) -> str:
    """Name of a nested block inside its parent: ('A$B', 'A') -> 'B'."""
    prefix = parent + NESTING_SEPARATOR
    if child.startswith(prefix):
        return child[len(prefix):]
    return unnest_name(child)


def field_type_display_name(type_name: str, nesting_path: str, enclosing: str) -> str:
    """
    Name used for a field type inside the message `enclosing`.
    A type nested directly under the enclosing message, or not nested at all,
    is written with its last segment; otherwise with its dotted ancestor path.
    """
    short = unnest_name(type_name)
    if nesting_path and nesting_path != enclosing:
        return f"{dotted(nesting_path)}.{short}"
    return short
