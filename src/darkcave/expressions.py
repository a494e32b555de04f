"""Formula expressions for action costs, effects and conditions.

Catalog strings such as ``"random(3,5)"``, ``"5 + getBowHuntingBonus()"`` or
``"!relics.old_trinket && buildings.cabin >= 1"`` are parsed once, when the
catalog is loaded, into a small AST. Evaluation walks that AST against an
:class:`EvalContext` holding the state tree, the helper registry and the
random source. Nothing is ever passed to ``eval``.

Grammar (lowest precedence first)::

    or      := and ("||" and)*
    and     := compare ("&&" compare)*
    compare := sum (("==" | "!=" | ">=" | "<=" | ">" | "<") sum)?
    sum     := product (("+" | "-") product)*
    product := unary (("*" | "/") unary)*
    unary   := ("!" | "-") unary | primary
    primary := NUMBER | STRING | "true" | "false" | call | path | "(" or ")"
    call    := NAME "(" [or ("," or)*] ")"
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import EvaluationError
from .state_paths import get_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class PathRef:
    path: str


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple["Node", ...]


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Literal, PathRef, Call, UnaryOp, BinaryOp]

BUILTIN_FUNCTIONS = {"random", "floor", "min", "max"}


@dataclass(frozen=True)
class PlainEffect:
    expr: Node


@dataclass(frozen=True)
class ProbabilisticEffect:
    """An effect that applies only when its random draw succeeds."""
    probability: Node
    value: Node
    condition: Optional[Node] = None
    trigger_event: Optional[str] = None
    log_message: Optional[str] = None


Effect = Union[PlainEffect, ProbabilisticEffect]


@dataclass
class EffectOutcome:
    applied: bool
    value: Any = None
    log_message: Optional[str] = None
    trigger_event: Optional[str] = None


@dataclass
class EvalContext:
    """Everything a formula may read.

    ``rng`` needs ``random()`` (uniform float in [0, 1)) and
    ``randint(a, b)`` (inclusive); ``random.Random`` satisfies both.
    """
    state: Dict[str, Any]
    helpers: Any
    rng: Any


# ---------------------------------------------------------------------------
# Parsing

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?|\.\d+)
  | (?P<string>"[^"]*"|'[^']*')
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)
  | (?P<op>&&|\|\||==|!=|>=|<=|[-+*/()<>!,])
    """,
    re.VERBOSE,
)


def _tokenize(text: str) -> List[Tuple[str, str]]:
    tokens: List[Tuple[str, str]] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise EvaluationError(f"unexpected character {text[pos]!r} at {pos} in {text!r}")
        pos = m.end()
        kind = m.lastgroup
        if kind == "ws":
            continue
        tokens.append((kind, m.group(kind)))
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise EvaluationError("empty expression")
        node = self._or()
        if self.pos != len(self.tokens):
            raise EvaluationError(f"unexpected {self.tokens[self.pos][1]!r} in {self.text!r}")
        return node

    def _peek(self) -> Optional[str]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos][1]
        return None

    def _take(self, expected: Optional[str] = None) -> Tuple[str, str]:
        if self.pos >= len(self.tokens):
            raise EvaluationError(f"unexpected end of expression {self.text!r}")
        tok = self.tokens[self.pos]
        if expected is not None and tok[1] != expected:
            raise EvaluationError(f"expected {expected!r}, got {tok[1]!r} in {self.text!r}")
        self.pos += 1
        return tok

    def _binary(self, ops: Tuple[str, ...], operand) -> Node:
        node = operand()
        while self._peek() in ops:
            op = self._take()[1]
            node = BinaryOp(op, node, operand())
        return node

    def _or(self) -> Node:
        return self._binary(("||",), self._and)

    def _and(self) -> Node:
        return self._binary(("&&",), self._compare)

    def _compare(self) -> Node:
        node = self._sum()
        if self._peek() in ("==", "!=", ">=", "<=", ">", "<"):
            op = self._take()[1]
            node = BinaryOp(op, node, self._sum())
        return node

    def _sum(self) -> Node:
        return self._binary(("+", "-"), self._product)

    def _product(self) -> Node:
        return self._binary(("*", "/"), self._unary)

    def _unary(self) -> Node:
        if self._peek() in ("!", "-"):
            op = self._take()[1]
            return UnaryOp(op, self._unary())
        return self._primary()

    def _primary(self) -> Node:
        kind, value = self._take()
        if kind == "number":
            return Literal(float(value) if "." in value else int(value))
        if kind == "string":
            return Literal(value[1:-1])
        if kind == "name":
            if value in ("true", "false"):
                return Literal(value == "true")
            if self._peek() == "(":
                return self._call(value)
            return PathRef(value)
        if value == "(":
            node = self._or()
            self._take(")")
            return node
        raise EvaluationError(f"unexpected {value!r} in {self.text!r}")

    def _call(self, name: str) -> Node:
        if "." in name:
            raise EvaluationError(f"invalid function name {name!r} in {self.text!r}")
        self._take("(")
        args: List[Node] = []
        if self._peek() != ")":
            args.append(self._or())
            while self._peek() == ",":
                self._take(",")
                args.append(self._or())
        self._take(")")
        return Call(name, tuple(args))


def parse_expression(text: str) -> Node:
    """Parse a formula string into an AST, raising EvaluationError if malformed."""
    return _Parser(text).parse()


def compile_value(raw: Any) -> Node:
    """Compile a catalog scalar (number, boolean or formula string)."""
    if isinstance(raw, (bool, int, float)):
        return Literal(raw)
    if isinstance(raw, str):
        return parse_expression(raw)
    raise EvaluationError(f"unsupported value {raw!r}")


def compile_effect(raw: Any) -> Effect:
    if isinstance(raw, dict):
        if "probability" not in raw or "value" not in raw:
            raise EvaluationError(f"probabilistic effect needs probability and value: {raw!r}")
        condition = raw.get("condition")
        return ProbabilisticEffect(
            probability=compile_value(raw["probability"]),
            value=compile_value(raw["value"]),
            condition=parse_expression(condition) if condition else None,
            trigger_event=raw.get("triggerEvent"),
            log_message=raw.get("logMessage"),
        )
    return PlainEffect(compile_value(raw))


def iter_calls(node: Node):
    """Yield every Call node in ``node`` (used by content validation)."""
    if isinstance(node, Call):
        yield node
        for arg in node.args:
            yield from iter_calls(arg)
    elif isinstance(node, UnaryOp):
        yield from iter_calls(node.operand)
    elif isinstance(node, BinaryOp):
        yield from iter_calls(node.left)
        yield from iter_calls(node.right)


def iter_paths(node: Node):
    if isinstance(node, PathRef):
        yield node.path
    elif isinstance(node, Call):
        for arg in node.args:
            yield from iter_paths(arg)
    elif isinstance(node, UnaryOp):
        yield from iter_paths(node.operand)
    elif isinstance(node, BinaryOp):
        yield from iter_paths(node.left)
        yield from iter_paths(node.right)


# ---------------------------------------------------------------------------
# Evaluation

def _num(value: Any) -> float:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    raise EvaluationError(f"expected a number, got {value!r}")


def _equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return bool(left) == bool(right)
    if isinstance(left, str) or isinstance(right, str):
        return left == right
    return _num(left) == _num(right)


def _evaluate(node: Node, ctx: EvalContext) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, PathRef):
        return get_path(ctx.state, node.path)
    if isinstance(node, UnaryOp):
        operand = _evaluate(node.operand, ctx)
        if node.op == "!":
            return not operand
        return -_num(operand)
    if isinstance(node, BinaryOp):
        return _evaluate_binary(node, ctx)
    if isinstance(node, Call):
        return _evaluate_call(node, ctx)
    raise EvaluationError(f"unknown expression node {node!r}")


def _evaluate_binary(node: BinaryOp, ctx: EvalContext) -> Any:
    op = node.op
    left = _evaluate(node.left, ctx)
    if op == "&&":
        return bool(left) and bool(_evaluate(node.right, ctx))
    if op == "||":
        return bool(left) or bool(_evaluate(node.right, ctx))
    right = _evaluate(node.right, ctx)
    if op == "==":
        return _equal(left, right)
    if op == "!=":
        return not _equal(left, right)
    a, b = _num(left), _num(right)
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if op == "/":
        if b == 0:
            raise EvaluationError("division by zero")
        return a / b
    if op == ">=":
        return a >= b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    if op == "<":
        return a < b
    raise EvaluationError(f"unknown operator {op!r}")


def _evaluate_call(node: Call, ctx: EvalContext) -> Any:
    args = [_evaluate(arg, ctx) for arg in node.args]
    if node.name == "random":
        if len(args) != 2:
            raise EvaluationError("random() takes exactly two arguments")
        low, high = int(_num(args[0])), int(_num(args[1]))
        if low > high:
            raise EvaluationError(f"random({low},{high}): min is greater than max")
        value = ctx.rng.randint(low, high)
        logger.debug("random(%s,%s) rolled %s", low, high, value)
        return value
    if node.name == "floor":
        if len(args) != 1:
            raise EvaluationError("floor() takes exactly one argument")
        return math.floor(_num(args[0]))
    if node.name in ("min", "max"):
        if not args:
            raise EvaluationError(f"{node.name}() needs at least one argument")
        nums = [_num(a) for a in args]
        return min(nums) if node.name == "min" else max(nums)
    if ctx.helpers is None:
        raise EvaluationError(f"unknown function {node.name}()")
    return ctx.helpers.call(node.name, ctx.state, *args)


def resolve(expr: Node, ctx: EvalContext) -> Any:
    """Evaluate ``expr``; a missing state path resolves to 0."""
    value = _evaluate(expr, ctx)
    return 0 if value is None else value


def resolve_effect(effect: Effect, ctx: EvalContext) -> EffectOutcome:
    """Resolve a plain or probabilistic effect.

    A probabilistic effect whose condition is false does not apply and takes
    no draw. Otherwise one uniform draw in [0, 1) is taken and the effect
    applies iff the draw is strictly below the resolved probability.
    """
    if isinstance(effect, PlainEffect):
        return EffectOutcome(applied=True, value=resolve(effect.expr, ctx))

    if effect.condition is not None and not _evaluate(effect.condition, ctx):
        return EffectOutcome(applied=False)

    probability = _num(resolve(effect.probability, ctx))
    draw = ctx.rng.random()
    logger.debug("probability %.4f drew %.4f", probability, draw)
    if not draw < probability:
        return EffectOutcome(applied=False)
    return EffectOutcome(
        applied=True,
        value=resolve(effect.value, ctx),
        log_message=effect.log_message,
        trigger_event=effect.trigger_event,
    )
