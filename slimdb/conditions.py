"""Parsing and evaluation of WHERE-clause boolean expressions."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

OPERATORS = frozenset({"=", "!=", ">", "<", ">=", "<=", "&&", "||", "!", "(", ")"})
_LOGICAL = frozenset({"&&", "||", "!"})

_AND = re.compile(r"\bAND\b", re.IGNORECASE | re.ASCII)
_OR = re.compile(r"\bOR\b", re.IGNORECASE | re.ASCII)
_NOT = re.compile(r"\bNOT\b", re.IGNORECASE | re.ASCII)
_DIGITS = re.compile(r"[0-9]+")


def _normalize(expr: str) -> str:
    expr = _AND.sub("&&", expr)
    expr = _OR.sub("||", expr)
    return _NOT.sub("!", expr)


def _is_quoted(token: str) -> bool:
    return bool(token) and token[0] == token[-1] and token[0] in "\"'"


def tokenize(expr: str) -> list[str]:
    """Split on whitespace, dropping quotes that wrap a whole token."""
    return [token[1:-1] if _is_quoted(token) else token for token in expr.split()]


def precedence(op: str) -> int:
    """Binding strength of a logical operator."""
    return {"!": 3, "&&": 2, "||": 1}.get(op, 0)


def infix_to_postfix(infix: str) -> list[str]:
    """Convert an infix token stream to postfix order."""
    output: list[str] = []
    ops: list[str] = []
    for token in tokenize(infix):
        if token == "(":
            ops.append(token)
        elif token == ")":
            while ops and ops[-1] != "(":
                output.append(ops.pop())
            if ops:
                ops.pop()
        elif token in _LOGICAL:
            while ops and precedence(ops[-1]) >= precedence(token):
                output.append(ops.pop())
            ops.append(token)
        else:
            output.append(token)
    output.extend(reversed(ops))
    return output


def match_condition(lhs: str, rhs: str, op: str) -> bool:
    """Compare two operands, numerically when both are plain digit strings."""
    left: object
    right: object
    if _DIGITS.fullmatch(lhs) and _DIGITS.fullmatch(rhs):
        left, right = int(lhs), int(rhs)
    else:
        left, right = lhs, rhs
    comparisons = {
        "=": lambda: left == right,
        "!=": lambda: left != right,
        ">": lambda: left > right,
        "<": lambda: left < right,
        ">=": lambda: left >= right,
        "<=": lambda: left <= right,
    }
    compare = comparisons.get(op)
    return compare() if compare is not None else False


def evaluate_postfix(tokens: Sequence[str]) -> bool:
    """Evaluate postfix tokens where each operand is a ``lhs op rhs`` triple."""
    stack: list[bool] = []
    position = 0
    try:
        while position < len(tokens):
            token = tokens[position]
            if token == "&&":
                right, left = stack.pop(), stack.pop()
                stack.append(left and right)
                position += 1
            elif token == "||":
                right, left = stack.pop(), stack.pop()
                stack.append(left or right)
                position += 1
            elif token == "!":
                stack.append(not stack.pop())
                position += 1
            else:
                lhs, op, rhs = tokens[position:position + 3]
                stack.append(match_condition(lhs, rhs, op))
                position += 3
    except (IndexError, ValueError) as exc:
        raise ValueError(f"malformed condition: {' '.join(tokens)}") from exc
    return bool(stack) and stack[-1]


def eval_logic(expr: str) -> bool:
    """Evaluate an expression that may use AND, OR and NOT."""
    return evaluate_postfix(infix_to_postfix(_normalize(expr)))


def replace_values(expr: str, row: Sequence[str], column_names: Iterable[str]) -> str:
    """Substitute each column name in ``expr`` with its quoted row value."""
    for name, value in zip(column_names, row):
        pattern = re.compile(r"\b" + re.escape(name) + r"\b", re.ASCII)
        quoted = f'"{value}"'
        expr = pattern.sub(lambda _match, text=quoted: text, expr)
    return expr


def evaluate_condition(expr: str, row: Sequence[str], column_names: Iterable[str]) -> bool:
    """Evaluate ``expr`` against one row."""
    return eval_logic(replace_values(expr, row, column_names))


def validate_where_columns(where_clause: str, column_names: Iterable[str]) -> bool:
    """Check that the first identifier in the clause names a known column."""
    names = set(column_names)
    for token in tokenize(_normalize(where_clause)):
        if token in OPERATORS or _is_quoted(token) or _DIGITS.fullmatch(token):
            continue
        return token in names
    return True