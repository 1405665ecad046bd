"""
module_selector.py
Selects the top-level statements of a bundle that define protocol messages,
i.e. the module-defining calls whose bodies assign the spec property.
"""
from typing import Any, List, Optional

from js_ast import is_node, match_property_assignment, node_type, string_literal
from wrangler_config import WranglerConfig


class NoCandidateModulesError(Exception):
    """No statement of the bundle defines protocol messages."""
    pass


def _body_statements(node: Any) -> List[Any]:
    body = getattr(node, "body", None)
    statements = getattr(body, "body", None)
    if isinstance(statements, list):
        return statements
    return []


def extract_all_expressions(node: Any) -> List[Any]:
    """
    Collect the expressions a module-defining statement is made of:
    the statement and its expression, the statements of function arguments
    of that expression, expressions of the node's own block body, and
    members of comma sequences. Module calls are usually passed to one or two
    wrapping calls as closures, which this reaches through.
    """
    if not is_node(node):
        return []
    expressions = [node]
    expression = getattr(node, "expression", None)
    if is_node(expression):
        expressions.append(expression)
        for arg in getattr(expression, "arguments", None) or []:
            for statement in _body_statements(arg):
                expressions.extend(extract_all_expressions(statement))
    for statement in _body_statements(node):
        inner = getattr(statement, "expression", None)
        if is_node(inner):
            expressions.extend(extract_all_expressions(inner))
    if is_node(expression):
        for inner in getattr(expression, "expressions", None) or []:
            expressions.extend(extract_all_expressions(inner))
    return expressions


def defines_spec(statement: Any, config: WranglerConfig) -> bool:
    for expression in extract_all_expressions(statement):
        assignment = match_property_assignment(expression)
        if assignment is not None and assignment.property == config.spec_property:
            return True
    return False


def select_candidate_modules(statements: List[Any], config: Optional[WranglerConfig] = None) -> List[Any]:
    """Statements that assign the spec property somewhere in their module body, in source order."""
    config = config or WranglerConfig()
    return [statement for statement in statements if defines_spec(statement, config)]


def module_name_of(statement: Any, index: int) -> str:
    """First string argument of the module-defining call, e.g. `__d("Name", ...)`."""
    expression = getattr(statement, "expression", None)
    calls = [expression]
    if node_type(expression) == "SequenceExpression":
        calls = expression.expressions
    for call in calls:
        if node_type(call) != "CallExpression" or not call.arguments:
            continue
        name = string_literal(call.arguments[0])
        if name is not None:
            return name
    return f"<module {index}>"


class ModuleSelector:
    def __init__(self, config: Optional[WranglerConfig] = None, verbose: bool = False):
        self.config = config or WranglerConfig()
        self.verbose = verbose

    def debug_print(self, message: str) -> None:
        if self.verbose:
            print(message)

    def select(self, statements: List[Any], require: bool = False) -> List[Any]:
        """
        Return the candidate module statements.

        Args:
            statements: Top-level statements of the parsed bundle
            require: Raise NoCandidateModulesError when nothing qualifies
        """
        candidates = select_candidate_modules(statements, self.config)
        self.debug_print(f"[SELECT] {len(candidates)} of {len(statements)} top-level statements define '{self.config.spec_property}'")
        if require and not candidates:
            raise NoCandidateModulesError(
                f"No module assigns '{self.config.spec_property}'; the bundle does not follow the builder convention"
            )
        return candidates
