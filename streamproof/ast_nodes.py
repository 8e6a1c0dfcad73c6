"""Stream specification AST.

Expressions: constants, stream drops, external variables, operator
applications (arity 1-3), and the local/variable/label nodes which the
translator rejects. Streams pair a literal prefix buffer with a recurrence
expression; properties name a boolean expression to prove.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from streamproof.types import StreamType, BoolType, BOOL


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------

OP1_NAMES = frozenset({
    "not", "abs", "sign", "recip", "sqrt",
    "exp", "log", "sin", "cos", "tan", "asin", "acos", "atan",
    "sinh", "cosh", "tanh", "asinh", "acosh", "atanh",
    "ceiling", "floor", "bw_not", "cast", "get_field",
})

OP2_NAMES = frozenset({
    "and", "or",
    "add", "sub", "mul", "div", "mod", "fdiv", "pow", "logb", "atan2",
    "eq", "ne", "lt", "le", "gt", "ge",
    "bw_and", "bw_or", "bw_xor", "bw_shift_l", "bw_shift_r",
    "index",
})

OP3_NAMES = frozenset({"mux"})


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

@dataclass
class Expr:
    """Base expression. ``type`` is the static result type of the node."""
    type: StreamType = field(default_factory=BoolType)


@dataclass
class Const(Expr):
    value: Any = None


@dataclass
class Drop(Expr):
    """The value of stream ``stream_id``, ``drop`` steps ahead of the
    current evaluation point."""
    drop: int = 0
    stream_id: int = 0


@dataclass
class ExternVar(Expr):
    name: str = ""


@dataclass
class Local(Expr):
    name: str = ""
    bound_type: StreamType = field(default_factory=BoolType)
    bound: Expr = field(default_factory=Expr)
    body: Expr = field(default_factory=Expr)


@dataclass
class Var(Expr):
    name: str = ""


@dataclass
class Label(Expr):
    label: str = ""
    expr: Expr = field(default_factory=Expr)


@dataclass
class Op1(Expr):
    op: str = ""
    arg: Expr = field(default_factory=Expr)
    # Only meaningful for get_field.
    field_name: str = ""


@dataclass
class Op2(Expr):
    op: str = ""
    left: Expr = field(default_factory=Expr)
    right: Expr = field(default_factory=Expr)


@dataclass
class Op3(Expr):
    op: str = ""
    first: Expr = field(default_factory=Expr)
    second: Expr = field(default_factory=Expr)
    third: Expr = field(default_factory=Expr)


# ---------------------------------------------------------------------------
# Streams, properties, specifications
# ---------------------------------------------------------------------------

@dataclass
class Stream:
    stream_id: int
    buffer: tuple[Any, ...]
    expr: Expr
    type: StreamType


@dataclass
class Property:
    name: str
    expr: Expr


@dataclass
class Spec:
    streams: list[Stream] = field(default_factory=list)
    properties: list[Property] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Construction helpers
# ---------------------------------------------------------------------------

def const(t: StreamType, value: Any) -> Const:
    return Const(type=t, value=value)


def drop(t: StreamType, k: int, stream_id: int) -> Drop:
    return Drop(type=t, drop=k, stream_id=stream_id)


def stream_ref(t: StreamType, stream_id: int) -> Drop:
    return Drop(type=t, drop=0, stream_id=stream_id)


def extern(t: StreamType, name: str) -> ExternVar:
    return ExternVar(type=t, name=name)


def op1(op: str, arg: Expr, t: Optional[StreamType] = None, field_name: str = "") -> Op1:
    return Op1(type=t if t is not None else arg.type, op=op, arg=arg, field_name=field_name)


def op2(op: str, left: Expr, right: Expr, t: Optional[StreamType] = None) -> Op2:
    if t is None:
        t = BOOL if op in ("eq", "ne", "lt", "le", "gt", "ge") else left.type
    return Op2(type=t, op=op, left=left, right=right)


def mux(cond: Expr, then: Expr, other: Expr) -> Op3:
    return Op3(type=then.type, op="mux", first=cond, second=then, third=other)


def not_(e: Expr) -> Op1:
    return op1("not", e, BOOL)


def and_(a: Expr, b: Expr) -> Op2:
    return op2("and", a, b, BOOL)


def or_(a: Expr, b: Expr) -> Op2:
    return op2("or", a, b, BOOL)
