"""Symbolic Values — the typed solver-side image of stream expressions.

Every translated expression becomes a SymValue whose tag mirrors the
static type of the expression:

  BOOL                 z3 Bool term
  INT8 .. INT64        z3 bit-vector term, two's-complement reading
  WORD8 .. WORD64      z3 bit-vector term, unsigned reading
  FLOAT, DOUBLE        z3 IEEE-754 term (Float32 / Float64)
  ARRAY                non-empty tuple of homogeneous SymValues
  EMPTY_ARRAY          marker for a declared length of 0
  STRUCT               tuple of SymValues in field declaration order

The SymbolicBuilder is the only place solver terms for literals and fresh
unknowns are created. Fresh constants get their uniqueness from the
builder's allocation counter; the debug name is cosmetic.
"""

from __future__ import annotations

import logging
import math
import re
import struct
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional

import z3

from streamproof.errors import TypeMismatchError
from streamproof.types import (
    StreamType, BoolType, IntType, WordType, FloatingType, ArrayType, StructType,
    z3_sort,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class SymTag(Enum):
    BOOL = auto()
    INT8 = auto()
    INT16 = auto()
    INT32 = auto()
    INT64 = auto()
    WORD8 = auto()
    WORD16 = auto()
    WORD32 = auto()
    WORD64 = auto()
    FLOAT = auto()
    DOUBLE = auto()
    ARRAY = auto()
    EMPTY_ARRAY = auto()
    STRUCT = auto()


SIGNED_TAGS = {
    SymTag.INT8: 8, SymTag.INT16: 16, SymTag.INT32: 32, SymTag.INT64: 64,
}
UNSIGNED_TAGS = {
    SymTag.WORD8: 8, SymTag.WORD16: 16, SymTag.WORD32: 32, SymTag.WORD64: 64,
}
INTEGRAL_TAGS = {**SIGNED_TAGS, **UNSIGNED_TAGS}
FLOAT_TAGS = {SymTag.FLOAT: 32, SymTag.DOUBLE: 64}
NUMERIC_TAGS = {**INTEGRAL_TAGS, **FLOAT_TAGS}


def tag_of(t: StreamType) -> SymTag:
    """The tag a value of static type ``t`` must carry."""
    if isinstance(t, BoolType):
        return SymTag.BOOL
    if isinstance(t, IntType):
        return SymTag[f"INT{t.bits}"]
    if isinstance(t, WordType):
        return SymTag[f"WORD{t.bits}"]
    if isinstance(t, FloatingType):
        return SymTag.FLOAT if t.bits == 32 else SymTag.DOUBLE
    if isinstance(t, ArrayType):
        return SymTag.EMPTY_ARRAY if t.length == 0 else SymTag.ARRAY
    if isinstance(t, StructType):
        return SymTag.STRUCT
    raise TypeMismatchError("tag_of", "a stream type", repr(t))


# ---------------------------------------------------------------------------
# Symbolic values
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class SymValue:
    """A tagged symbolic value. Compared by identity; see ``same_as``."""
    tag: SymTag
    term: Optional[z3.ExprRef] = None   # scalar tags
    elems: tuple[SymValue, ...] = ()    # ARRAY, STRUCT

    @property
    def is_scalar(self) -> bool:
        return self.term is not None

    def same_as(self, other: SymValue) -> bool:
        """Structural equality of tags and solver terms."""
        if self.tag != other.tag:
            return False
        if self.is_scalar:
            return other.is_scalar and self.term.eq(other.term)
        return len(self.elems) == len(other.elems) and all(
            a.same_as(b) for a, b in zip(self.elems, other.elems)
        )

    def __str__(self) -> str:
        if self.is_scalar:
            return f"{self.tag.name}({self.term})"
        if self.tag == SymTag.EMPTY_ARRAY:
            return "[]"
        inner = ", ".join(str(e) for e in self.elems)
        if self.tag == SymTag.ARRAY:
            return f"[{inner}]"
        return f"{{{inner}}}"


EMPTY_ARRAY = SymValue(tag=SymTag.EMPTY_ARRAY)


def X_SCALAR(tag: SymTag, term: z3.ExprRef) -> SymValue:
    return SymValue(tag=tag, term=term)

def X_BOOL(term: z3.BoolRef) -> SymValue:
    return SymValue(tag=SymTag.BOOL, term=term)

def X_ARRAY(elems: Sequence[SymValue]) -> SymValue:
    if not elems:
        return EMPTY_ARRAY
    return SymValue(tag=SymTag.ARRAY, elems=tuple(elems))

def X_STRUCT(elems: Sequence[SymValue]) -> SymValue:
    return SymValue(tag=SymTag.STRUCT, elems=tuple(elems))


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

_UNSAFE_NAME_CHARS = re.compile(r"[\s|\\]+")


def _to_single(value: float) -> float:
    """Round a Python float to the nearest binary32 value.

    Magnitudes past the binary32 range round to infinity of the same sign.
    """
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


class SymbolicBuilder:
    """Allocates solver terms: literals, fresh constants and structural ite.

    One builder lives for a whole proof run so that fresh-constant names are
    unique across every property proved in that run.
    """

    def __init__(self) -> None:
        self._fresh_count = 0
        self.rounding_mode = z3.RNE()

    @property
    def fresh_count(self) -> int:
        return self._fresh_count

    # -- literals ----------------------------------------------------------

    def encode_constant(self, t: StreamType, value: Any) -> SymValue:
        if isinstance(t, BoolType):
            if not isinstance(value, bool):
                raise TypeMismatchError("encode_constant", "bool", repr(value))
            return X_BOOL(z3.BoolVal(value))

        if isinstance(t, (IntType, WordType)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeMismatchError("encode_constant", str(t), repr(value))
            if isinstance(t, IntType):
                lo, hi = -(1 << (t.bits - 1)), (1 << (t.bits - 1)) - 1
            else:
                lo, hi = 0, (1 << t.bits) - 1
            if not lo <= value <= hi:
                raise TypeMismatchError("encode_constant", f"{t} in [{lo}, {hi}]", str(value))
            # z3 stores the two's-complement bit pattern for negative values.
            return X_SCALAR(tag_of(t), z3.BitVecVal(value % (1 << t.bits), t.bits))

        if isinstance(t, FloatingType):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeMismatchError("encode_constant", str(t), repr(value))
            try:
                v = float(value)
            except OverflowError:
                v = math.inf if value > 0 else -math.inf
            if t.bits == 32:
                v = _to_single(v)
            return X_SCALAR(tag_of(t), z3.FPVal(v, z3_sort(t)))

        if isinstance(t, ArrayType):
            if t.length == 0:
                return EMPTY_ARRAY
            if isinstance(value, (str, bytes)) or not isinstance(value, Sequence) \
                    or len(value) != t.length:
                raise TypeMismatchError("encode_constant", str(t), repr(value))
            return X_ARRAY([self.encode_constant(t.element_type, v) for v in value])

        if isinstance(t, StructType):
            if isinstance(value, Mapping):
                missing = [name for name, _ in t.fields if name not in value]
                if missing:
                    raise TypeMismatchError("encode_constant", str(t), f"missing fields {missing}")
                values = [value[name] for name, _ in t.fields]
            elif isinstance(value, Sequence) and len(value) == len(t.fields):
                values = list(value)
            else:
                raise TypeMismatchError("encode_constant", str(t), repr(value))
            return X_STRUCT([
                self.encode_constant(ft, v) for (_, ft), v in zip(t.fields, values)
            ])

        raise TypeMismatchError("encode_constant", "a stream type", repr(t))

    # -- fresh unknowns ----------------------------------------------------

    def fresh_constant(self, t: StreamType, debug_name: str = "") -> SymValue:
        if isinstance(t, ArrayType):
            if t.length == 0:
                return EMPTY_ARRAY
            return X_ARRAY([
                self.fresh_constant(t.element_type, f"{debug_name}[{i}]")
                for i in range(t.length)
            ])

        if isinstance(t, StructType):
            return X_STRUCT([
                self.fresh_constant(ft, f"{debug_name}.{name}") for name, ft in t.fields
            ])

        tag = tag_of(t)
        name = f"{_UNSAFE_NAME_CHARS.sub('_', debug_name) or 'fresh'}!{self._fresh_count}"
        self._fresh_count += 1
        logger.debug("fresh constant %s : %s", name, t)
        return X_SCALAR(tag, z3.Const(name, z3_sort(t)))

    # -- structural if-then-else --------------------------------------------

    def ite(self, cond: z3.BoolRef, then: SymValue, other: SymValue) -> SymValue:
        if then.tag != other.tag:
            raise TypeMismatchError("ite", then.tag.name, other.tag.name)
        if then.tag == SymTag.EMPTY_ARRAY:
            return EMPTY_ARRAY
        if then.is_scalar:
            return X_SCALAR(then.tag, z3.If(cond, then.term, other.term))
        if len(then.elems) != len(other.elems):
            raise TypeMismatchError(
                "ite", f"{len(then.elems)} elements", f"{len(other.elems)} elements",
            )
        elems = [self.ite(cond, a, b) for a, b in zip(then.elems, other.elems)]
        return X_ARRAY(elems) if then.tag == SymTag.ARRAY else X_STRUCT(elems)
