# ============================================================================
# EXPRESSION EVALUATOR
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Placeholder expression language
# PURPOSE: Parse and evaluate the text inside {{ }} / ${ } placeholders
# CREATED: 18 OCT 2026
# ============================================================================
"""
Expression Evaluator

Evaluates one placeholder expression against a resolution view and returns
a native value. Nothing is stringified here; that only happens when a
placeholder is embedded in surrounding text (see templates.py).

Grammar (lowest binding first):

    pipeline  := coalesce ( "|" IDENT [ "(" args ")" ] )*
    coalesce  := or_expr ( "??" or_expr )*
    or_expr   := ternary ( "||" or_expr )?
    ternary   := unary ( "?" pipeline ":" ternary )?
    unary     := "!" unary | primary
    primary   := literal | path | "(" pipeline ")"
    path      := IDENT ( "." (IDENT | INT) | "[" pipeline "]" )*
    literal   := NUMBER | STRING | true | false | null | undefined

Semantics:
- a missing key, out-of-range index or step through null yields UNDEFINED
- `a ?? b` returns the first operand that is neither null nor UNDEFINED
- `a || b` returns the first truthy operand, else the last one
- ternary and both binary operators short-circuit
- `!` negates truthiness (see core.contracts.is_truthy)
- `| name(args)` applies a Jinja2 filter (upper, length, default, ...)

Examples:
    input.items[0] ?? "none"
    input.query.name ?? input.body.name ?? "World"
    input.premium ? 100 : 10
    !input.disabled ?? false
    input.text | upper
"""

import types
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple

from jinja2 import BaseLoader, Environment, StrictUndefined, Undefined
from jinja2.exceptions import FilterArgumentError, TemplateRuntimeError, UndefinedError
from jinja2.filters import do_lower, do_upper

from core.contracts import UNDEFINED, is_nullish, is_truthy
from core.errors import ExpressionError


# ============================================================================
# TOKENIZER
# ============================================================================

NUMBER = "NUMBER"
STRING = "STRING"
IDENT = "IDENT"
OP = "OP"
EOF = "EOF"

_TWO_CHAR_OPS = ("??", "||")
_ONE_CHAR_OPS = ".[]()!?:|,"
_KEYWORDS = {"true": True, "false": False, "null": None, "undefined": UNDEFINED}
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"', "/": "/"}


@dataclass(frozen=True)
class Token:
    type: str
    value: Any
    pos: int


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$"


def _is_ident_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$-"


def tokenize(text: str) -> List[Token]:
    """Split an expression into tokens."""
    tokens: List[Token] = []
    i = 0
    length = len(text)

    while i < length:
        ch = text[i]

        if ch.isspace():
            i += 1
            continue

        two = text[i:i + 2]
        if two in _TWO_CHAR_OPS:
            tokens.append(Token(OP, two, i))
            i += 2
            continue

        after_dot = bool(tokens) and tokens[-1].type == OP and tokens[-1].value == "."

        if _is_digit(ch) or (ch == "-" and i + 1 < length and _is_digit(text[i + 1]) and not after_dot):
            start = i
            i += 1
            while i < length and _is_digit(text[i]):
                i += 1
            # After a dot only an integer segment is read, so items.0.1 is two indexes
            if not after_dot and i + 1 < length and text[i] == "." and _is_digit(text[i + 1]):
                i += 1
                while i < length and _is_digit(text[i]):
                    i += 1
                tokens.append(Token(NUMBER, float(text[start:i]), start))
            else:
                tokens.append(Token(NUMBER, int(text[start:i]), start))
            continue

        if ch in "\"'":
            quote = ch
            start = i
            i += 1
            chars = []
            while i < length and text[i] != quote:
                if text[i] == "\\" and i + 1 < length:
                    chars.append(_ESCAPES.get(text[i + 1], text[i + 1]))
                    i += 2
                else:
                    chars.append(text[i])
                    i += 1
            if i >= length:
                raise ExpressionError("Unterminated string literal", text, start)
            i += 1
            tokens.append(Token(STRING, "".join(chars), start))
            continue

        if _is_ident_start(ch):
            start = i
            while i < length and _is_ident_char(text[i]):
                i += 1
            tokens.append(Token(IDENT, text[start:i], start))
            continue

        if ch in _ONE_CHAR_OPS:
            tokens.append(Token(OP, ch, i))
            i += 1
            continue

        raise ExpressionError(f"Unexpected character {ch!r}", text, i)

    tokens.append(Token(EOF, None, length))
    return tokens


# ============================================================================
# AST
# ============================================================================

class Node:
    """Base class for expression nodes."""

    def evaluate(self, scope: Mapping, evaluator: "ExpressionEvaluator") -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, scope, evaluator):
        return self.value


@dataclass(frozen=True)
class Path(Node):
    """Root identifier followed by member / index segments."""
    root: str
    # Each segment is either a constant key (str/int) or a Node to evaluate
    segments: Tuple[Any, ...] = ()

    def evaluate(self, scope, evaluator):
        current = scope.get(self.root, UNDEFINED) if isinstance(scope, Mapping) else UNDEFINED
        for segment in self.segments:
            if current is UNDEFINED:
                return UNDEFINED
            key = segment.evaluate(scope, evaluator) if isinstance(segment, Node) else segment
            current = get_member(current, key)
        return current


@dataclass(frozen=True)
class Not(Node):
    operand: Node

    def evaluate(self, scope, evaluator):
        return not is_truthy(self.operand.evaluate(scope, evaluator))


@dataclass(frozen=True)
class Ternary(Node):
    condition: Node
    then: Node
    otherwise: Node

    def evaluate(self, scope, evaluator):
        if is_truthy(self.condition.evaluate(scope, evaluator)):
            return self.then.evaluate(scope, evaluator)
        return self.otherwise.evaluate(scope, evaluator)


@dataclass(frozen=True)
class Or(Node):
    left: Node
    right: Node

    def evaluate(self, scope, evaluator):
        value = self.left.evaluate(scope, evaluator)
        if is_truthy(value):
            return value
        return self.right.evaluate(scope, evaluator)


@dataclass(frozen=True)
class Coalesce(Node):
    operands: Tuple[Node, ...]

    def evaluate(self, scope, evaluator):
        value = UNDEFINED
        for operand in self.operands:
            value = operand.evaluate(scope, evaluator)
            if not is_nullish(value):
                return value
        return value


@dataclass(frozen=True)
class Filter(Node):
    operand: Node
    name: str
    args: Tuple[Node, ...] = ()

    def evaluate(self, scope, evaluator):
        value = self.operand.evaluate(scope, evaluator)
        args = [arg.evaluate(scope, evaluator) for arg in self.args]
        return evaluator.apply_filter(self.name, value, args)


def get_member(value: Any, key: Any) -> Any:
    """One step of path access. Anything unresolvable is UNDEFINED."""
    if is_nullish(value):
        return UNDEFINED

    if isinstance(value, Mapping):
        try:
            if key in value:
                return value[key]
        except TypeError:
            # unhashable key
            return UNDEFINED
        if not isinstance(key, str) and str(key) in value:
            return value[str(key)]
        return UNDEFINED

    if isinstance(value, (list, tuple)):
        if key == "length":
            return len(value)
        if isinstance(key, str) and key and all(_is_digit(c) for c in key):
            key = int(key)
        if isinstance(key, float) and key.is_integer():
            key = int(key)
        if isinstance(key, int) and not isinstance(key, bool) and 0 <= key < len(value):
            return value[key]
        return UNDEFINED

    if isinstance(value, (str, bytes, int, float, bool)):
        return UNDEFINED

    if isinstance(key, str) and key and not key.startswith("_"):
        return getattr(value, key, UNDEFINED)
    return UNDEFINED


# ============================================================================
# PARSER
# ============================================================================

class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _check(self, value: str) -> bool:
        token = self.current
        return token.type == OP and token.value == value

    def _accept(self, value: str) -> bool:
        if self._check(value):
            self.pos += 1
            return True
        return False

    def _expect(self, value: str) -> Token:
        if not self._check(value):
            self._fail(f"Expected '{value}'")
        token = self.current
        self.pos += 1
        return token

    def _fail(self, message: str):
        token = self.current
        found = "end of expression" if token.type == EOF else repr(token.value)
        raise ExpressionError(f"{message}, found {found}", self.text, token.pos)

    def parse(self) -> Node:
        node = self.pipeline()
        if self.current.type != EOF:
            self._fail("Unexpected token")
        return node

    def pipeline(self) -> Node:
        node = self.coalesce()
        while self._accept("|"):
            token = self.current
            if token.type != IDENT:
                self._fail("Expected filter name after '|'")
            self.pos += 1
            args: List[Node] = []
            if self._accept("("):
                if not self._check(")"):
                    args.append(self.pipeline())
                    while self._accept(","):
                        args.append(self.pipeline())
                self._expect(")")
            node = Filter(node, token.value, tuple(args))
        return node

    def coalesce(self) -> Node:
        operands = [self.or_expr()]
        while self._accept("??"):
            operands.append(self.or_expr())
        if len(operands) == 1:
            return operands[0]
        return Coalesce(tuple(operands))

    def or_expr(self) -> Node:
        left = self.ternary()
        if self._accept("||"):
            return Or(left, self.or_expr())
        return left

    def ternary(self) -> Node:
        condition = self.unary()
        if self._accept("?"):
            then = self.pipeline()
            self._expect(":")
            otherwise = self.ternary()
            return Ternary(condition, then, otherwise)
        return condition

    def unary(self) -> Node:
        if self._accept("!"):
            return Not(self.unary())
        return self.primary()

    def primary(self) -> Node:
        token = self.current

        if token.type in (NUMBER, STRING):
            self.pos += 1
            return Literal(token.value)

        if self._accept("("):
            node = self.pipeline()
            self._expect(")")
            return node

        if token.type == IDENT:
            self.pos += 1
            if token.value in _KEYWORDS:
                return Literal(_KEYWORDS[token.value])
            return self.path(token.value)

        self._fail("Expected a value")

    def path(self, root: str) -> Node:
        segments: List[Any] = []
        while True:
            if self._accept("."):
                token = self.current
                if token.type == IDENT:
                    segments.append(token.value)
                elif token.type == NUMBER and isinstance(token.value, int) and token.value >= 0:
                    segments.append(token.value)
                else:
                    self._fail("Expected property name after '.'")
                self.pos += 1
            elif self._accept("["):
                index = self.pipeline()
                self._expect("]")
                segments.append(index.value if isinstance(index, Literal) else index)
            else:
                break
        return Path(root, tuple(segments))


@lru_cache(maxsize=1024)
def parse_expression(text: str) -> Node:
    """Parse an expression into an immutable AST (cached)."""
    return _Parser(text).parse()


# ============================================================================
# FILTERS
# ============================================================================

def _split(value, separator=None, maxsplit=-1):
    return str(value).split(separator, maxsplit)


def _keys(value):
    return list(value.keys()) if isinstance(value, Mapping) else []


def _values(value):
    return list(value.values()) if isinstance(value, Mapping) else []


EXTRA_FILTERS: Dict[str, Callable] = {
    "uppercase": do_upper,
    "lowercase": do_lower,
    "split": _split,
    "keys": _keys,
    "values": _values,
}


# ============================================================================
# EVALUATOR
# ============================================================================

class ExpressionEvaluator:
    """
    Evaluates expressions against a resolution view.

    Filters come from a Jinja2 environment (its built-in filters plus a few
    extras); hosts may register more via `filters`.
    """

    def __init__(self, filters: Optional[Dict[str, Callable]] = None):
        self._env = Environment(
            loader=BaseLoader(),
            autoescape=False,
            undefined=StrictUndefined,
        )
        self._env.filters.update(EXTRA_FILTERS)
        if filters:
            self._env.filters.update(filters)

    @property
    def filters(self) -> List[str]:
        return sorted(self._env.filters)

    def parse(self, expression: str) -> Node:
        return parse_expression(expression.strip())

    def evaluate(self, expression: str, scope: Mapping) -> Any:
        """
        Evaluate one expression.

        An empty expression evaluates to UNDEFINED.

        Raises:
            ExpressionError: malformed expression or failing filter
        """
        text = expression.strip()
        if not text:
            return UNDEFINED
        return parse_expression(text).evaluate(scope, self)

    def apply_filter(self, name: str, value: Any, args: List[Any]) -> Any:
        if name not in self._env.filters:
            raise ExpressionError(f"Unknown filter: '{name}'", name)

        jinja_value = self._env.undefined(name="value") if value is UNDEFINED else value
        jinja_args = [
            self._env.undefined(name="argument") if arg is UNDEFINED else arg
            for arg in args
        ]

        try:
            result = self._env.call_filter(name, jinja_value, jinja_args)
        except UndefinedError:
            return UNDEFINED
        except (FilterArgumentError, TemplateRuntimeError, TypeError, ValueError, AttributeError) as e:
            raise ExpressionError(f"Filter '{name}' failed: {e}", name) from e

        return _from_jinja(result)


def _from_jinja(value: Any) -> Any:
    """Bring a filter result back into expression values."""
    if isinstance(value, Undefined):
        return UNDEFINED
    if isinstance(value, str) and type(value) is not str:
        return str(value)
    if isinstance(value, (types.GeneratorType, Iterator)):
        return list(value)
    return value


_evaluator: Optional[ExpressionEvaluator] = None


def get_evaluator() -> ExpressionEvaluator:
    """Get the shared evaluator instance."""
    global _evaluator
    if _evaluator is None:
        _evaluator = ExpressionEvaluator()
    return _evaluator


def evaluate(expression: str, scope: Mapping) -> Any:
    """Convenience function to evaluate with the shared evaluator."""
    return get_evaluator().evaluate(expression, scope)


__all__ = [
    "Token",
    "tokenize",
    "Node",
    "Literal",
    "Path",
    "Not",
    "Ternary",
    "Or",
    "Coalesce",
    "Filter",
    "get_member",
    "parse_expression",
    "ExpressionEvaluator",
    "get_evaluator",
    "evaluate",
]
