"""Safe evaluation for user-authored stat formulas.

Derived stats reference other stat ids in a small arithmetic expression
language: numeric literals, identifiers, unary `+`/`-`, the four binary
operators, parentheses and a fixed whitelist of functions. Expressions are
compiled once into a Python `ast` tree and interpreted against a variable
mapping; nothing else (attributes, subscripts, arbitrary calls, comprehensions)
is reachable.

Two entry points mirror how callers consume formulas:

- `validate_formula` reports problems as a structured value and never raises.
- `execute_formula` never raises either: any failure or non-finite result
  evaluates to `0.0`, so a bad formula cannot abort a tournament run. Callers
  that need hard failures must validate first.
"""

from __future__ import annotations

import ast
import io
import logging
import math
import re
import tokenize
from collections.abc import Callable, Iterable, Mapping
from functools import lru_cache

from .dto import FormulaValidationResult

logger = logging.getLogger(__name__)


class FormulaError(ValueError):
    """Raised by strict evaluation when an expression cannot be evaluated."""


def _fn_min(*args: float) -> float:
    if not args:
        return math.inf
    return min(args)


def _fn_max(*args: float) -> float:
    if not args:
        return -math.inf
    return max(args)


def _fn_abs(value: float) -> float:
    return abs(value)


def _fn_floor(value: float) -> float:
    if not math.isfinite(value):
        return value
    return float(math.floor(value))


def _fn_ceil(value: float) -> float:
    if not math.isfinite(value):
        return value
    return float(math.ceil(value))


def _fn_round(value: float) -> float:
    """Round half up (2.5 -> 3, -2.5 -> -2)."""

    if not math.isfinite(value):
        return value
    return float(math.floor(value + 0.5))


SUPPORTED_FUNCTIONS: dict[str, Callable[..., float]] = {
    "min": _fn_min,
    "max": _fn_max,
    "abs": _fn_abs,
    "floor": _fn_floor,
    "ceil": _fn_ceil,
    "round": _fn_round,
}

_TRAILING_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*$")


def extract_identifiers(expression: str) -> tuple[str, ...]:
    """Return bare identifiers referenced by an expression.

    Numeric literals and whitelisted function names are ignored. Identifiers
    are unique and returned in first-use order. Tokenization stops quietly at
    the first malformed token; the dry-run in `validate_formula` reports it.

    Args:
        expression: Formula text.

    Returns:
        Tuple of identifier names.
    """

    names: list[str] = []
    try:
        for token in tokenize.generate_tokens(io.StringIO(expression.strip()).readline):
            if token.type != tokenize.NAME:
                continue
            if token.string in SUPPORTED_FUNCTIONS or token.string in names:
                continue
            names.append(token.string)
    except (tokenize.TokenError, SyntaxError):
        pass
    return tuple(names)


@lru_cache(maxsize=512)
def compile_formula(expression: str) -> ast.expr:
    """Parse and vet an expression, returning its AST body.

    Raises:
        FormulaError: When the expression does not parse or uses a construct
            outside the supported grammar.
    """

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except (SyntaxError, ValueError) as exc:
        message = getattr(exc, "msg", None) or str(exc)
        raise FormulaError(message) from exc
    except RecursionError as exc:
        raise FormulaError("Expression is nested too deeply") from exc
    try:
        _check_node(tree.body)
    except RecursionError as exc:
        raise FormulaError("Expression is nested too deeply") from exc
    return tree.body


def _check_node(node: ast.AST) -> None:
    """Reject any AST node outside the restricted arithmetic grammar."""

    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise FormulaError(f"Unsupported literal: {node.value!r}")
        return

    if isinstance(node, ast.Name):
        return

    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.UAdd, ast.USub)):
        _check_node(node.operand)
        return

    if isinstance(node, ast.BinOp) and isinstance(node.op, (ast.Add, ast.Sub, ast.Mult, ast.Div)):
        _check_node(node.left)
        _check_node(node.right)
        return

    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in SUPPORTED_FUNCTIONS:
            raise FormulaError("Only min, max, abs, floor, ceil and round may be called")
        if node.keywords:
            raise FormulaError("Keyword arguments are not supported")
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                raise FormulaError("Starred arguments are not supported")
            _check_node(arg)
        return

    raise FormulaError(f"Unsupported expression: {type(node).__name__}")


def evaluate_formula_strict(expression: str, variables: Mapping[str, float]) -> float:
    """Evaluate an expression, raising on failure.

    The result may be non-finite (division by zero follows IEEE semantics).

    Args:
        expression: Formula text.
        variables: Mapping from identifier to numeric value.

    Returns:
        The raw float result.

    Raises:
        FormulaError: When the expression is malformed or references an
            unbound identifier.
    """

    body = compile_formula(expression)
    try:
        return _eval_node(body, variables)
    except RecursionError as exc:
        raise FormulaError("Expression is nested too deeply") from exc


def _eval_node(node: ast.AST, variables: Mapping[str, float]) -> float:
    """Recursively evaluate a vetted AST node."""

    if isinstance(node, ast.Constant):
        try:
            return float(node.value)
        except OverflowError as exc:
            raise FormulaError("Numeric literal is out of range") from exc

    if isinstance(node, ast.Name):
        if node.id not in variables:
            raise FormulaError(f"Unbound identifier: {node.id}")
        try:
            return float(variables[node.id])
        except (TypeError, ValueError) as exc:
            raise FormulaError(f"Identifier {node.id} is not numeric") from exc

    if isinstance(node, ast.UnaryOp):
        operand = _eval_node(node.operand, variables)
        return operand if isinstance(node.op, ast.UAdd) else -operand

    if isinstance(node, ast.BinOp):
        left = _eval_node(node.left, variables)
        right = _eval_node(node.right, variables)
        if isinstance(node.op, ast.Add):
            return left + right
        if isinstance(node.op, ast.Sub):
            return left - right
        if isinstance(node.op, ast.Mult):
            return left * right
        return _divide(left, right)

    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
        func = SUPPORTED_FUNCTIONS[node.func.id]
        args = [_eval_node(arg, variables) for arg in node.args]
        try:
            return float(func(*args))
        except TypeError as exc:
            raise FormulaError(f"Invalid arguments for {node.func.id}()") from exc

    raise FormulaError(f"Unsupported expression: {type(node).__name__}")


def _divide(left: float, right: float) -> float:
    """Divide with IEEE semantics instead of raising ZeroDivisionError."""

    if right != 0:
        return left / right
    if left == 0 or math.isnan(left):
        return math.nan
    return math.copysign(1.0, left) * math.copysign(1.0, right) * math.inf


def validate_formula(expression: str | None, known_identifiers: Iterable[str]) -> FormulaValidationResult:
    """Validate a formula against the set of known stat ids.

    Args:
        expression: Formula text.
        known_identifiers: Stat ids the formula may reference.

    Returns:
        FormulaValidationResult. Errors are reported, never raised.
    """

    if not expression or not expression.strip():
        return FormulaValidationResult(valid=False, error="Formula cannot be empty")

    known = list(known_identifiers)
    known_set = set(known)
    used = extract_identifiers(expression)
    unknown = [name for name in used if name not in known_set]
    if unknown:
        return FormulaValidationResult(
            valid=False,
            used_identifiers=used,
            error=f"Unknown stats: {', '.join(unknown)}",
        )

    try:
        result = evaluate_formula_strict(expression, {name: 1.0 for name in known})
    except FormulaError as exc:
        return FormulaValidationResult(valid=False, used_identifiers=used, error=f"Syntax error: {exc}")

    if not math.isfinite(result):
        return FormulaValidationResult(
            valid=False,
            used_identifiers=used,
            error="Formula must return a finite number",
        )
    return FormulaValidationResult(valid=True, used_identifiers=used)


def execute_formula(expression: str, values: Mapping[str, float]) -> float:
    """Evaluate a formula, degrading every failure to `0.0`.

    Args:
        expression: Formula text.
        values: Mapping from stat id to value; every key is bound.

    Returns:
        The finite result, or 0.0 when evaluation fails or is non-finite.
    """

    try:
        result = evaluate_formula_strict(expression, values)
    except FormulaError as exc:
        logger.debug("Formula %r failed to evaluate: %s", expression, exc)
        return 0.0
    if not math.isfinite(result):
        logger.debug("Formula %r produced a non-finite result", expression)
        return 0.0
    return result


def suggest_completions(partial_formula: str, available_stats: Iterable[str]) -> tuple[str, ...]:
    """Suggest stat ids completing the identifier at the end of a partial formula.

    Args:
        partial_formula: Formula text typed so far.
        available_stats: Candidate stat ids.

    Returns:
        Stat ids whose name starts with the trailing word (case-insensitive),
        or every candidate when the text does not end in an identifier.
    """

    candidates = tuple(available_stats)
    match = _TRAILING_WORD_RE.search(partial_formula)
    if match is None:
        return candidates
    prefix = match.group(0).lower()
    return tuple(stat_id for stat_id in candidates if stat_id.lower().startswith(prefix))
