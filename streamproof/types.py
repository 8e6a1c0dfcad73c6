"""Stream Type System.

Scalar types: Bool, Int8..Int64, Word8..Word64, Float, Double
Aggregate types: Array<n, T> (n may be 0), Struct (ordered named fields)
Every symbolic value produced by the translator carries a tag matching one
of these types.
"""

from __future__ import annotations

from dataclasses import dataclass

import z3


# ---------------------------------------------------------------------------
# Type Representations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StreamType:
    """Base type."""
    def __str__(self) -> str:
        return "Unknown"


@dataclass(frozen=True)
class BoolType(StreamType):
    def __str__(self) -> str:
        return "Bool"


@dataclass(frozen=True)
class IntType(StreamType):
    """Fixed-width two's-complement integer."""
    bits: int = 32

    def __str__(self) -> str:
        return f"Int{self.bits}"


@dataclass(frozen=True)
class WordType(StreamType):
    """Fixed-width unsigned integer."""
    bits: int = 32

    def __str__(self) -> str:
        return f"Word{self.bits}"


@dataclass(frozen=True)
class FloatingType(StreamType):
    """IEEE-754 binary32 (Float) or binary64 (Double)."""
    bits: int = 64

    def __str__(self) -> str:
        return "Float" if self.bits == 32 else "Double"


@dataclass(frozen=True)
class ArrayType(StreamType):
    length: int = 0
    element_type: StreamType = BoolType()

    def __post_init__(self) -> None:
        if self.length < 0:
            raise ValueError(f"Array length must be non-negative, got {self.length}")

    def __str__(self) -> str:
        return f"Array<{self.length}, {self.element_type}>"


@dataclass(frozen=True)
class StructType(StreamType):
    name: str = ""
    fields: tuple[tuple[str, StreamType], ...] = ()

    def __str__(self) -> str:
        return self.name or "Struct"

    def field_index(self, field_name: str) -> int:
        for i, (name, _) in enumerate(self.fields):
            if name == field_name:
                return i
        raise KeyError(f"Struct '{self.name}' has no field '{field_name}'")

    def get_field_type(self, field_name: str) -> StreamType:
        return self.fields[self.field_index(field_name)][1]


# ---------------------------------------------------------------------------
# Built-in Types
# ---------------------------------------------------------------------------

BOOL = BoolType()
INT8 = IntType(8)
INT16 = IntType(16)
INT32 = IntType(32)
INT64 = IntType(64)
WORD8 = WordType(8)
WORD16 = WordType(16)
WORD32 = WordType(32)
WORD64 = WordType(64)
FLOAT = FloatingType(32)
DOUBLE = FloatingType(64)

BUILTIN_TYPES: dict[str, StreamType] = {
    "Bool": BOOL,
    "Int8": INT8,
    "Int16": INT16,
    "Int32": INT32,
    "Int64": INT64,
    "Word8": WORD8,
    "Word16": WORD16,
    "Word32": WORD32,
    "Word64": WORD64,
    "Float": FLOAT,
    "Double": DOUBLE,
}

_WIDTHS = (8, 16, 32, 64)


def array_of(length: int, element_type: StreamType) -> ArrayType:
    return ArrayType(length=length, element_type=element_type)


def struct_of(name: str, *fields: tuple[str, StreamType]) -> StructType:
    return StructType(name=name, fields=tuple(fields))


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_integral(t: StreamType) -> bool:
    return isinstance(t, (IntType, WordType)) and t.bits in _WIDTHS


def is_floating(t: StreamType) -> bool:
    return isinstance(t, FloatingType) and t.bits in (32, 64)


def is_numeric(t: StreamType) -> bool:
    return is_integral(t) or is_floating(t)


def is_scalar(t: StreamType) -> bool:
    return isinstance(t, BoolType) or is_numeric(t)


def z3_sort(t: StreamType) -> z3.SortRef:
    """The solver sort used for a scalar type."""
    if isinstance(t, BoolType):
        return z3.BoolSort()
    if is_integral(t):
        return z3.BitVecSort(t.bits)  # type: ignore[attr-defined]
    if is_floating(t):
        return z3.Float32() if t.bits == 32 else z3.Float64()  # type: ignore[attr-defined]
    raise ValueError(f"Type {t} is not a scalar type")
