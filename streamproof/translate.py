"""Expression Translator — stream expressions to symbolic values.

``translate(expr, offset)`` yields the value of ``expr`` evaluated
|offset| steps before the instant under test (offset <= 0).

A reference to stream s dropped by k is resolved against the combined
offset o + k:

  o + k < 0   the value lies in the past: an opaque free symbol from the
              cache. The recurrence is never unrolled into the past.
  o + k >= 0  the value is the stream's recurrence E evaluated at
              o + k - L, where L is the length of the literal buffer.
              The shift by -L aligns E's own drops with the stream's
              timeline, since the first L values come from the buffer.

External inputs have no recurrence, so every reference to one is a free
symbol, including at offset 0.
"""

from __future__ import annotations

import logging

import z3

from streamproof.ast_nodes import (
    Expr, Const, Drop, ExternVar, Local, Var, Label, Op1, Op2, Op3,
)
from streamproof.cache import ConstantCache
from streamproof.errors import TypeMismatchError, UnsupportedConstructError
from streamproof.operators import OperatorEncoder
from streamproof.registry import StreamRegistry
from streamproof.symbolic import SymbolicBuilder, SymValue, SymTag, tag_of
from streamproof.types import StructType

logger = logging.getLogger(__name__)


def _describe_node(expr: Expr) -> str:
    if isinstance(expr, (Op1, Op2, Op3)):
        return f"{type(expr).__name__}({expr.op})"
    if isinstance(expr, Drop):
        return f"Drop(s{expr.stream_id}, {expr.drop})"
    if isinstance(expr, ExternVar):
        return f"ExternVar({expr.name})"
    return type(expr).__name__


class Translator:
    """Translates expressions for one property, against one cache."""

    def __init__(self, builder: SymbolicBuilder, registry: StreamRegistry,
                 cache: ConstantCache, operators: OperatorEncoder | None = None):
        self.builder = builder
        self.registry = registry
        self.cache = cache
        self.operators = operators or OperatorEncoder(builder)

    def translate_property(self, expr: Expr) -> z3.BoolRef:
        """Translate a property at the present instant; the result must be Bool."""
        value = self.translate(expr, 0)
        if value.tag != SymTag.BOOL:
            raise TypeMismatchError("property", "BOOL", value.tag.name)
        return value.term

    def translate(self, expr: Expr, offset: int = 0) -> SymValue:
        if offset > 0:
            raise ValueError(f"Translation offset must be <= 0, got {offset}")

        if isinstance(expr, Const):
            return self.builder.encode_constant(expr.type, expr.value)

        if isinstance(expr, Drop):
            total = offset + expr.drop
            if total < 0:
                return self._checked(expr, self.cache.resolve_past_stream(expr.stream_id, total))
            stream = self.registry.get(expr.stream_id)
            logger.debug("unrolling s%d at offset %d (buffer length %d)",
                         expr.stream_id, total, len(stream.buffer))
            return self._checked(expr, self.translate(stream.expr, total - len(stream.buffer)))

        if isinstance(expr, ExternVar):
            return self._checked(expr, self.cache.resolve_external(expr.name, expr.type, offset))

        if isinstance(expr, Op1):
            x = self.translate(expr.arg, offset)
            field_index = None
            if expr.op == "get_field":
                field_index = self._field_index(expr)
            return self._checked(expr, self.operators.op1(expr.op, x, expr.type, field_index))

        if isinstance(expr, Op2):
            x = self.translate(expr.left, offset)
            y = self.translate(expr.right, offset)
            return self._checked(expr, self.operators.op2(
                expr.op, x, y, expr.type, index_default=self.cache.resolve_index_default,
            ))

        if isinstance(expr, Op3):
            x = self.translate(expr.first, offset)
            y = self.translate(expr.second, offset)
            z = self.translate(expr.third, offset)
            return self._checked(expr, self.operators.op3(expr.op, x, y, z))

        if isinstance(expr, Local):
            raise UnsupportedConstructError("local", {"name": expr.name})
        if isinstance(expr, Var):
            raise UnsupportedConstructError("var", {"name": expr.name})
        if isinstance(expr, Label):
            raise UnsupportedConstructError("label", {"label": expr.label})
        raise UnsupportedConstructError(type(expr).__name__)

    def _field_index(self, expr: Op1) -> int:
        struct_type = expr.arg.type
        if not isinstance(struct_type, StructType):
            raise TypeMismatchError("get_field", "a struct operand", str(struct_type))
        try:
            return struct_type.field_index(expr.field_name)
        except KeyError:
            raise TypeMismatchError(
                "get_field", f"a field of {struct_type}", expr.field_name,
            ) from None

    def _checked(self, expr: Expr, value: SymValue) -> SymValue:
        expected = tag_of(expr.type)
        if value.tag != expected:
            raise TypeMismatchError(_describe_node(expr), expected.name, value.tag.name)
        return value
