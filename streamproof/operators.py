"""Operator Encoder — native solver semantics for every stream operator.

Dispatch is two-level: the operator name selects a handler, the handler
matches on the operand tags. Any combination not handled below raises
TypeMismatchError; a well-typed specification never reaches one.

Numeric semantics:
  - Int/Word arithmetic is modular bit-vector arithmetic of the exact width.
    Signedness only matters for comparison, division, remainder, right shift
    and widening casts.
  - Float/Double arithmetic is IEEE-754 with round-to-nearest-even.
  - Transcendental functions have no exact SMT encoding; they are
    uninterpreted functions, which keeps proofs sound.
"""

from __future__ import annotations

from typing import Callable, Optional

import z3

from streamproof.errors import TypeMismatchError
from streamproof.symbolic import (
    SymbolicBuilder, SymValue, SymTag,
    SIGNED_TAGS, UNSIGNED_TAGS, INTEGRAL_TAGS, FLOAT_TAGS, NUMERIC_TAGS,
    X_BOOL, X_SCALAR, tag_of,
)
from streamproof.types import StreamType, is_scalar, z3_sort


_UNINTERPRETED_OP1 = frozenset({
    "exp", "log", "sin", "cos", "tan", "asin", "acos", "atan",
    "sinh", "cosh", "tanh", "asinh", "acosh", "atanh",
})
_UNINTERPRETED_OP2 = frozenset({"pow", "logb", "atan2"})

# (element type, array, index) -> value of an out-of-range lookup
IndexDefault = Callable[[StreamType, SymValue, SymValue], SymValue]


def _describe(*values: SymValue) -> str:
    return ", ".join(v.tag.name for v in values)


class OperatorEncoder:
    """Encodes operator applications over already-translated operands."""

    def __init__(self, builder: SymbolicBuilder):
        self.builder = builder
        self.rm = builder.rounding_mode
        self._functions: dict[tuple[str, int], z3.FuncDeclRef] = {}

        self._op1: dict[str, Callable[..., SymValue]] = {
            "not": self._not,
            "abs": self._abs,
            "sign": self._sign,
            "recip": self._recip,
            "sqrt": self._sqrt,
            "ceiling": lambda x: self._round(x, z3.RTP(), "ceiling"),
            "floor": lambda x: self._round(x, z3.RTN(), "floor"),
            "bw_not": self._bw_not,
        }
        for name in _UNINTERPRETED_OP1:
            self._op1[name] = self._make_uninterpreted(name, 1)

        self._op2: dict[str, Callable[[SymValue, SymValue], SymValue]] = {
            "and": lambda x, y: self._bool2("and", z3.And, x, y),
            "or": lambda x, y: self._bool2("or", z3.Or, x, y),
            "add": lambda x, y: self._arith("add", lambda a, b: a + b, z3.fpAdd, x, y),
            "sub": lambda x, y: self._arith("sub", lambda a, b: a - b, z3.fpSub, x, y),
            "mul": lambda x, y: self._arith("mul", lambda a, b: a * b, z3.fpMul, x, y),
            "div": lambda x, y: self._integral_div("div", lambda a, b: a / b, z3.UDiv, x, y),
            "mod": lambda x, y: self._integral_div("mod", z3.SRem, z3.URem, x, y),
            "fdiv": self._fdiv,
            "eq": self._eq,
            "ne": lambda x, y: X_BOOL(z3.Not(self._eq(x, y).term)),
            "lt": lambda x, y: self._compare("lt", lambda a, b: a < b, z3.ULT, z3.fpLT, x, y),
            "le": lambda x, y: self._compare("le", lambda a, b: a <= b, z3.ULE, z3.fpLEQ, x, y),
            "gt": lambda x, y: self._compare("gt", lambda a, b: a > b, z3.UGT, z3.fpGT, x, y),
            "ge": lambda x, y: self._compare("ge", lambda a, b: a >= b, z3.UGE, z3.fpGEQ, x, y),
            "bw_and": lambda x, y: self._bitwise("bw_and", lambda a, b: a & b, x, y),
            "bw_or": lambda x, y: self._bitwise("bw_or", lambda a, b: a | b, x, y),
            "bw_xor": lambda x, y: self._bitwise("bw_xor", lambda a, b: a ^ b, x, y),
            "bw_shift_l": lambda x, y: self._shift("bw_shift_l", x, y),
            "bw_shift_r": lambda x, y: self._shift("bw_shift_r", x, y),
        }
        for name in _UNINTERPRETED_OP2:
            self._op2[name] = self._make_uninterpreted(name, 2)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def op1(self, op: str, x: SymValue, result_type: StreamType,
            field_index: Optional[int] = None) -> SymValue:
        if op == "cast":
            return self._cast(x, result_type)
        if op == "get_field":
            return self._get_field(x, field_index)
        handler = self._op1.get(op)
        if handler is None:
            raise TypeMismatchError(op, "a unary operator", op)
        return handler(x)

    def op2(self, op: str, x: SymValue, y: SymValue, result_type: StreamType,
            index_default: Optional[IndexDefault] = None) -> SymValue:
        if op == "index":
            return self._index(x, y, result_type, index_default)
        handler = self._op2.get(op)
        if handler is None:
            raise TypeMismatchError(op, "a binary operator", op)
        return handler(x, y)

    def op3(self, op: str, x: SymValue, y: SymValue, z: SymValue) -> SymValue:
        if op != "mux":
            raise TypeMismatchError(op, "a ternary operator", op)
        if x.tag != SymTag.BOOL:
            raise TypeMismatchError("mux", "BOOL condition", x.tag.name)
        return self.builder.ite(x.term, y, z)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _zero(self, x: SymValue) -> z3.ExprRef:
        if x.tag in INTEGRAL_TAGS:
            return z3.BitVecVal(0, INTEGRAL_TAGS[x.tag])
        return z3.FPVal(0.0, x.term.sort())

    def _literal(self, x: SymValue, value: int) -> z3.ExprRef:
        if x.tag in INTEGRAL_TAGS:
            return z3.BitVecVal(value, INTEGRAL_TAGS[x.tag])
        return z3.FPVal(float(value), x.term.sort())

    def _require(self, op: str, tags, *values: SymValue) -> None:
        if any(v.tag not in tags for v in values):
            expected = "/".join(t.name for t in tags) if len(tags) < 4 else "numeric"
            raise TypeMismatchError(op, expected, _describe(*values))

    def _require_same(self, op: str, x: SymValue, y: SymValue) -> None:
        if x.tag != y.tag:
            raise TypeMismatchError(op, "matching operands", _describe(x, y))

    # ------------------------------------------------------------------
    # Unary
    # ------------------------------------------------------------------

    def _not(self, x: SymValue) -> SymValue:
        self._require("not", (SymTag.BOOL,), x)
        return X_BOOL(z3.Not(x.term))

    def _abs(self, x: SymValue) -> SymValue:
        self._require("abs", NUMERIC_TAGS, x)
        e, zero = x.term, self._zero(x)
        if x.tag in SIGNED_TAGS:
            return X_SCALAR(x.tag, z3.If(e < zero, zero - e, e))
        if x.tag in UNSIGNED_TAGS:
            return X_SCALAR(x.tag, z3.If(z3.ULT(e, zero), zero - e, e))
        return X_SCALAR(x.tag, z3.If(z3.fpLT(e, zero), z3.fpSub(self.rm, zero, e), e))

    def _sign(self, x: SymValue) -> SymValue:
        self._require("sign", NUMERIC_TAGS, x)
        e = x.term
        zero, neg_one, pos_one = self._zero(x), self._literal(x, -1), self._literal(x, 1)
        if x.tag in SIGNED_TAGS:
            is_zero, is_neg = e == zero, e < zero
        elif x.tag in UNSIGNED_TAGS:
            is_zero, is_neg = e == zero, z3.ULT(e, zero)
        else:
            is_zero, is_neg = z3.fpEQ(e, zero), z3.fpLT(e, zero)
        return X_SCALAR(x.tag, z3.If(is_zero, zero, z3.If(is_neg, neg_one, pos_one)))

    def _recip(self, x: SymValue) -> SymValue:
        self._require("recip", FLOAT_TAGS, x)
        return X_SCALAR(x.tag, z3.fpDiv(self.rm, self._literal(x, 1), x.term))

    def _sqrt(self, x: SymValue) -> SymValue:
        self._require("sqrt", FLOAT_TAGS, x)
        return X_SCALAR(x.tag, z3.fpSqrt(self.rm, x.term))

    def _round(self, x: SymValue, mode: z3.FPRMRef, op: str) -> SymValue:
        self._require(op, FLOAT_TAGS, x)
        return X_SCALAR(x.tag, z3.fpRoundToIntegral(mode, x.term))

    def _bw_not(self, x: SymValue) -> SymValue:
        self._require("bw_not", INTEGRAL_TAGS, x)
        return X_SCALAR(x.tag, ~x.term)

    def _get_field(self, x: SymValue, field_index: Optional[int]) -> SymValue:
        if x.tag != SymTag.STRUCT:
            raise TypeMismatchError("get_field", "STRUCT", x.tag.name)
        if field_index is None or not 0 <= field_index < len(x.elems):
            raise TypeMismatchError("get_field", f"field index < {len(x.elems)}", str(field_index))
        return x.elems[field_index]

    def _make_uninterpreted(self, name: str, arity: int) -> Callable[..., SymValue]:
        def apply(*args: SymValue) -> SymValue:
            self._require(name, FLOAT_TAGS, *args)
            if arity == 2:
                self._require_same(name, *args)
            x = args[0]
            key = (name, FLOAT_TAGS[x.tag])
            fn = self._functions.get(key)
            if fn is None:
                sort = x.term.sort()
                fn = z3.Function(f"{name}_f{key[1]}", *([sort] * arity), sort)
                self._functions[key] = fn
            return X_SCALAR(x.tag, fn(*(a.term for a in args)))
        return apply

    def _cast(self, x: SymValue, target: StreamType) -> SymValue:
        if not is_scalar(target):
            raise TypeMismatchError("cast", "scalar target type", str(target))
        tag = tag_of(target)
        if x.tag == tag:
            return x
        e = x.term

        if x.tag == SymTag.BOOL:
            if tag in INTEGRAL_TAGS:
                w = INTEGRAL_TAGS[tag]
                return X_SCALAR(tag, z3.If(e, z3.BitVecVal(1, w), z3.BitVecVal(0, w)))
            if tag in FLOAT_TAGS:
                sort = z3_sort(target)
                return X_SCALAR(tag, z3.If(e, z3.FPVal(1.0, sort), z3.FPVal(0.0, sort)))

        if x.tag in INTEGRAL_TAGS:
            src = INTEGRAL_TAGS[x.tag]
            if tag in INTEGRAL_TAGS:
                dst = INTEGRAL_TAGS[tag]
                if dst > src:
                    ext = z3.SignExt if x.tag in SIGNED_TAGS else z3.ZeroExt
                    return X_SCALAR(tag, ext(dst - src, e))
                if dst < src:
                    return X_SCALAR(tag, z3.Extract(dst - 1, 0, e))
                return X_SCALAR(tag, e)
            if tag in FLOAT_TAGS:
                to_fp = z3.fpSignedToFP if x.tag in SIGNED_TAGS else z3.fpUnsignedToFP
                return X_SCALAR(tag, to_fp(self.rm, e, z3_sort(target)))

        if x.tag in FLOAT_TAGS:
            if tag in FLOAT_TAGS:
                return X_SCALAR(tag, z3.fpFPToFP(self.rm, e, z3_sort(target)))
            if tag in INTEGRAL_TAGS:
                to_bv = z3.fpToSBV if tag in SIGNED_TAGS else z3.fpToUBV
                return X_SCALAR(tag, to_bv(z3.RTZ(), e, z3_sort(target)))

        raise TypeMismatchError("cast", f"castable to {target}", x.tag.name)

    # ------------------------------------------------------------------
    # Binary
    # ------------------------------------------------------------------

    def _bool2(self, op: str, fn, x: SymValue, y: SymValue) -> SymValue:
        self._require(op, (SymTag.BOOL,), x, y)
        return X_BOOL(fn(x.term, y.term))

    def _arith(self, op: str, bv_fn, fp_fn, x: SymValue, y: SymValue) -> SymValue:
        self._require(op, NUMERIC_TAGS, x, y)
        self._require_same(op, x, y)
        if x.tag in INTEGRAL_TAGS:
            return X_SCALAR(x.tag, bv_fn(x.term, y.term))
        return X_SCALAR(x.tag, fp_fn(self.rm, x.term, y.term))

    def _integral_div(self, op: str, signed_fn, unsigned_fn, x: SymValue, y: SymValue) -> SymValue:
        self._require(op, INTEGRAL_TAGS, x, y)
        self._require_same(op, x, y)
        fn = signed_fn if x.tag in SIGNED_TAGS else unsigned_fn
        return X_SCALAR(x.tag, fn(x.term, y.term))

    def _fdiv(self, x: SymValue, y: SymValue) -> SymValue:
        self._require("fdiv", FLOAT_TAGS, x, y)
        self._require_same("fdiv", x, y)
        return X_SCALAR(x.tag, z3.fpDiv(self.rm, x.term, y.term))

    def _eq(self, x: SymValue, y: SymValue) -> SymValue:
        self._require_same("eq", x, y)
        if x.tag == SymTag.BOOL or x.tag in INTEGRAL_TAGS:
            return X_BOOL(x.term == y.term)
        if x.tag in FLOAT_TAGS:
            return X_BOOL(z3.fpEQ(x.term, y.term))
        raise TypeMismatchError("eq", "scalar operands", _describe(x, y))

    def _compare(self, op: str, signed_fn, unsigned_fn, fp_fn, x: SymValue, y: SymValue) -> SymValue:
        self._require(op, NUMERIC_TAGS, x, y)
        self._require_same(op, x, y)
        if x.tag in SIGNED_TAGS:
            return X_BOOL(signed_fn(x.term, y.term))
        if x.tag in UNSIGNED_TAGS:
            return X_BOOL(unsigned_fn(x.term, y.term))
        return X_BOOL(fp_fn(x.term, y.term))

    def _bitwise(self, op: str, fn, x: SymValue, y: SymValue) -> SymValue:
        self._require(op, INTEGRAL_TAGS, x, y)
        self._require_same(op, x, y)
        return X_SCALAR(x.tag, fn(x.term, y.term))

    def _shift(self, op: str, x: SymValue, y: SymValue) -> SymValue:
        # The amount may have any integral type. Both operands are widened to
        # a common width first so an amount >= the value's width still shifts
        # every bit out instead of wrapping.
        self._require(op, INTEGRAL_TAGS, x, y)
        wx, wy = INTEGRAL_TAGS[x.tag], INTEGRAL_TAGS[y.tag]
        w = max(wx, wy)
        signed = x.tag in SIGNED_TAGS
        value = x.term
        if w > wx:
            value = (z3.SignExt if signed else z3.ZeroExt)(w - wx, value)
        amount = y.term if w == wy else z3.ZeroExt(w - wy, y.term)
        if op == "bw_shift_l":
            shifted = value << amount
        elif signed:
            shifted = value >> amount
        else:
            shifted = z3.LShR(value, amount)
        if w > wx:
            shifted = z3.Extract(wx - 1, 0, shifted)
        return X_SCALAR(x.tag, shifted)

    def _index(self, x: SymValue, i: SymValue, element_type: StreamType,
               index_default: Optional[IndexDefault] = None) -> SymValue:
        if x.tag not in (SymTag.ARRAY, SymTag.EMPTY_ARRAY):
            raise TypeMismatchError("index", "ARRAY", x.tag.name)
        self._require("index", INTEGRAL_TAGS, i)
        # An out-of-range index yields an unconstrained element, shared by
        # every lookup with the same array and index when a memo is given.
        if index_default is not None:
            result = index_default(element_type, x, i)
        else:
            result = self.builder.fresh_constant(element_type, "index_out_of_range")
        w = INTEGRAL_TAGS[i.tag]
        limit = 1 << (w - 1) if i.tag in SIGNED_TAGS else 1 << w
        for pos in reversed(range(len(x.elems))):
            if pos >= limit:
                continue
            elem = x.elems[pos]
            if elem.tag != result.tag:
                raise TypeMismatchError("index", result.tag.name, elem.tag.name)
            result = self.builder.ite(i.term == z3.BitVecVal(pos, w), elem, result)
        return result
