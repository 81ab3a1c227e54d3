"""Arithmetic expression evaluator behind ``helpers.evaluate_expression``.

Grammar (lowest to highest precedence)::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/" | "%") unary | <implicit *> power)*
    unary   := ("+" | "-") unary | power
    power   := primary ("^" unary)?
    primary := NUMBER | NAME "(" expr ("," expr)* ")" | NAME | "(" expr ")"

``^`` is right-associative and binds tighter than unary minus, so ``-2^2``
is ``-4``. Juxtaposition multiplies (``2x``, ``3(x + 1)``). Arithmetic
follows IEEE float rules: division by zero gives an infinity or NaN.
"""
from __future__ import annotations

import math
import re
from typing import Callable, Dict, List, Mapping, Optional, Tuple

_TOKEN = re.compile(
    r"\s*(?:(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op>[-+*/%^(),]))"
)


class ExpressionError(ValueError):
    """The expression could not be parsed or evaluated."""


def _div(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _mod(a: float, b: float) -> float:
    if b == 0:
        return math.nan
    return a - math.floor(a / b) * b


def _pow(a: float, b: float) -> float:
    try:
        result = a ** b
    except OverflowError:
        return math.inf
    except ZeroDivisionError:
        return math.inf
    if isinstance(result, complex):
        return math.nan
    return result


def _log2(x: float) -> float:
    if x == 0:
        return -math.inf
    if x < 0:
        return math.nan
    return math.log2(x)


def _sqrt(x: float) -> float:
    return math.nan if x < 0 else math.sqrt(x)


def _sign(x: float) -> float:
    if abs(x) < 2.220446049250313e-16:
        return 0.0
    return math.copysign(1.0, x)


_UNARY: Dict[str, Callable[[float], float]] = {
    "abs": abs,
    "sign": _sign,
    "log2": _log2,
    "sqrt": _sqrt,
    "floor": lambda x: float(math.floor(x)) if math.isfinite(x) else x,
    "ceil": lambda x: float(math.ceil(x)) if math.isfinite(x) else x,
}
_VARIADIC: Dict[str, Callable[[List[float]], float]] = {
    "min": min,
    "max": max,
}

_BINARY: Dict[str, Callable[[float, float], float]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _div,
    "%": _mod,
}


def tokenize(text: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN.match(text, pos)
        if match is None or match.end() == pos:
            raise ExpressionError(f"unexpected character {text[pos:].lstrip()[:1]!r} at {pos}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, text: str, variables: Mapping[str, float]):
        self.tokens = tokenize(text)
        self.pos = 0
        self.variables = variables

    def peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> Tuple[str, str]:
        token = self.peek()
        if token is None:
            raise ExpressionError("unexpected end of expression")
        self.pos += 1
        return token

    def accept(self, op: str) -> bool:
        if self.peek() == ("op", op):
            self.pos += 1
            return True
        return False

    def expect(self, op: str) -> None:
        if not self.accept(op):
            found = self.peek()
            raise ExpressionError(f"expected {op!r} but found {found[1] if found else 'end'!r}")

    def parse(self) -> float:
        value = self.expr()
        if self.peek() is not None:
            raise ExpressionError(f"unexpected {self.peek()[1]!r}")
        return value

    def expr(self) -> float:
        value = self.term()
        while self.peek() in (("op", "+"), ("op", "-")):
            op = self.take()[1]
            value = _BINARY[op](value, self.term())
        return value

    def _starts_operand(self) -> bool:
        token = self.peek()
        return token is not None and (token[0] in ("number", "name") or token == ("op", "("))

    def term(self) -> float:
        value = self.unary()
        while True:
            token = self.peek()
            if token in (("op", "*"), ("op", "/"), ("op", "%")):
                self.take()
                value = _BINARY[token[1]](value, self.unary())
            elif self._starts_operand():
                value = value * self.power()
            else:
                return value

    def unary(self) -> float:
        if self.accept("-"):
            return -self.unary()
        if self.accept("+"):
            return self.unary()
        return self.power()

    def power(self) -> float:
        base = self.primary()
        if self.accept("^"):
            return _pow(base, self.unary())
        return base

    def primary(self) -> float:
        kind, text = self.take()
        if kind == "number":
            return float(text)
        if kind == "name":
            if self.accept("("):
                return self.call(text)
            if text not in self.variables:
                raise ExpressionError(f"unknown variable: {text}")
            return float(self.variables[text])
        if text == "(":
            value = self.expr()
            self.expect(")")
            return value
        raise ExpressionError(f"unexpected {text!r}")

    def call(self, name: str) -> float:
        args = [self.expr()]
        while self.accept(","):
            args.append(self.expr())
        self.expect(")")

        if name in _UNARY:
            if len(args) != 1:
                raise ExpressionError(f"{name}() takes exactly one argument")
            return _UNARY[name](args[0])
        if name in _VARIADIC:
            return _VARIADIC[name](args)
        raise ExpressionError(f"unknown function: {name}")


def evaluate(text: str, variables: Optional[Mapping[str, float]] = None) -> float:
    """Evaluate ``text`` with the given variable values.

    Raises:
        ExpressionError: On syntax errors, unknown variables or functions.
    """
    return _Parser(text, variables or {}).parse()
