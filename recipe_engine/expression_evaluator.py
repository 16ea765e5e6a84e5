"""Bounded expression evaluator for `when` / `skip_if` conditions.

Supports literals, dotted paths, comparisons, boolean connectives,
parentheses and calls to an explicit whitelist of functions. Recipes may come
from untrusted sources, so nothing here ever reaches eval().
"""

import re
from collections.abc import Callable
from collections.abc import Mapping
from typing import Any

from .variables import MISSING
from .variables import PLACEHOLDER_PATTERN
from .variables import lookup_path


class ExpressionError(ValueError):
    """Malformed or disallowed expression."""


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<number>-?\d+(?:\.\d+)?)
    |(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<op>==|!=|<=|>=|&&|\|\||[<>!()\[\],.])
    |(?P<name>[A-Za-z_$][A-Za-z0-9_$-]*)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"and", "or", "not", "in"}
_LITERALS = {
    "true": True,
    "false": False,
    "True": True,
    "False": False,
    "null": None,
    "None": None,
    "undefined": None,
}
_COMPARISONS = {"==", "!=", "<", "<=", ">", ">=", "in", "not in"}


def _tokenize(expression: str) -> list[tuple[str, str]]:
    tokens = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_PATTERN.match(expression, pos)
        if not match:
            raise ExpressionError(f"Unexpected character {expression[pos]!r} at position {pos}")
        kind = match.lastgroup
        text = match.group()
        pos = match.end()
        if kind == "ws":
            continue
        if kind == "name" and text in _KEYWORDS:
            kind = "keyword"
        tokens.append((kind, text))
    return tokens


def _unquote(text: str) -> str:
    body = text[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


class _Parser:
    """Recursive-descent parser producing a small tuple AST."""

    def __init__(self, tokens: list[tuple[str, str]]):
        self.tokens = tokens
        self.pos = 0

    def peek(self, offset: int = 0) -> tuple[str, str] | None:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def accept(self, *texts: str) -> str | None:
        token = self.peek()
        if token is not None and token[1] in texts and token[0] in ("op", "keyword"):
            self.pos += 1
            return token[1]
        return None

    def expect(self, text: str) -> None:
        if self.accept(text) is None:
            found = self.peek()
            raise ExpressionError(f"Expected '{text}', found {found[1] if found else 'end of expression'!r}")

    def parse(self) -> tuple:
        if not self.tokens:
            raise ExpressionError("Empty expression")
        node = self.parse_or()
        if self.peek() is not None:
            raise ExpressionError(f"Unexpected token {self.peek()[1]!r}")
        return node

    def parse_or(self) -> tuple:
        node = self.parse_and()
        while self.accept("or", "||"):
            node = ("or", node, self.parse_and())
        return node

    def parse_and(self) -> tuple:
        node = self.parse_not()
        while self.accept("and", "&&"):
            node = ("and", node, self.parse_not())
        return node

    def parse_not(self) -> tuple:
        if self.accept("not", "!"):
            return ("not", self.parse_not())
        return self.parse_comparison()

    def parse_comparison(self) -> tuple:
        left = self.parse_primary()
        token = self.peek()
        if token is None:
            return left
        if token[1] == "not" and self.peek(1) is not None and self.peek(1)[1] == "in":
            self.pos += 2
            return ("cmp", "not in", left, self.parse_primary())
        if token[0] in ("op", "keyword") and token[1] in _COMPARISONS:
            self.pos += 1
            return ("cmp", token[1], left, self.parse_primary())
        return left

    def parse_primary(self) -> tuple:
        token = self.peek()
        if token is None:
            raise ExpressionError("Unexpected end of expression")
        kind, text = token

        if self.accept("("):
            node = self.parse_or()
            self.expect(")")
            return node
        if self.accept("["):
            items = []
            if not self.accept("]"):
                items.append(self.parse_or())
                while self.accept(","):
                    items.append(self.parse_or())
                self.expect("]")
            return ("list", items)

        self.pos += 1
        if kind == "number":
            return ("literal", float(text) if "." in text else int(text))
        if kind == "string":
            return ("literal", _unquote(text))
        if kind == "name":
            if text in _LITERALS:
                return ("literal", _LITERALS[text])
            if self.accept("("):
                args = []
                if not self.accept(")"):
                    args.append(self.parse_or())
                    while self.accept(","):
                        args.append(self.parse_or())
                    self.expect(")")
                return ("call", text, args)
            return ("path", self.parse_path_tail(text))
        raise ExpressionError(f"Unexpected token {text!r}")

    def parse_path_tail(self, head: str) -> str:
        parts = [head]
        while True:
            if self.accept("."):
                token = self.peek()
                if token is None or token[0] not in ("name", "number", "keyword"):
                    raise ExpressionError("Expected name after '.'")
                self.pos += 1
                parts.append(token[1])
            elif self.accept("["):
                token = self.peek()
                if token is None or token[0] not in ("number", "string"):
                    raise ExpressionError("Only literal indices are allowed inside []")
                self.pos += 1
                parts.append(_unquote(token[1]) if token[0] == "string" else token[1])
                self.expect("]")
            else:
                return ".".join(parts)


def _compare(op: str, left: Any, right: Any) -> bool:
    try:
        if op == "==":
            return left == right
        if op == "!=":
            return left != right
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
        if op == "in":
            return right is not None and left in right
        if op == "not in":
            return right is None or left not in right
    except TypeError:
        return False
    raise ExpressionError(f"Unknown comparison: {op}")


def _evaluate(node: tuple, scope: Mapping[str, Any], functions: Mapping[str, Callable[..., Any]]) -> Any:
    kind = node[0]
    if kind == "literal":
        return node[1]
    if kind == "path":
        value = lookup_path(scope, node[1])
        return None if value is MISSING else value
    if kind == "list":
        return [_evaluate(item, scope, functions) for item in node[1]]
    if kind == "not":
        return not _evaluate(node[1], scope, functions)
    if kind == "and":
        return bool(_evaluate(node[1], scope, functions)) and bool(_evaluate(node[2], scope, functions))
    if kind == "or":
        return bool(_evaluate(node[1], scope, functions)) or bool(_evaluate(node[2], scope, functions))
    if kind == "cmp":
        return _compare(node[1], _evaluate(node[2], scope, functions), _evaluate(node[3], scope, functions))
    if kind == "call":
        func = functions.get(node[1])
        if func is None:
            raise ExpressionError(f"Function '{node[1]}' is not allowed in expressions")
        return func(*[_evaluate(arg, scope, functions) for arg in node[2]])
    raise ExpressionError(f"Unknown expression node: {kind}")


def parse_expression(expression: str) -> tuple:
    """Parse without evaluating; useful for validation."""
    stripped = PLACEHOLDER_PATTERN.sub(r"\1", expression).strip()
    return _Parser(_tokenize(stripped)).parse()


def evaluate_expression(
    expression: str,
    scope: Mapping[str, Any],
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> Any:
    """Evaluate an expression and return its raw value."""
    return _evaluate(parse_expression(expression), scope, functions or {})


def evaluate_condition(
    condition: str,
    scope: Mapping[str, Any],
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> bool:
    """Evaluate a condition to a bool.

    Raises:
        ExpressionError: If the condition is malformed or calls a function
            outside the whitelist.
    """
    if isinstance(condition, bool):
        return condition
    return bool(evaluate_expression(str(condition), scope, functions))
