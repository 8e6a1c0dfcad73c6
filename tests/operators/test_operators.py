"""streamproof Operator Encoder Tests — OPS-001 through OPS-010.

Concrete operands are encoded, the operator applied, and the resulting
term evaluated with z3.simplify, so these check the exact bit-level and
IEEE semantics of each case.
"""

import math

import pytest
import z3
from hypothesis import given, assume, strategies as st

from streamproof.errors import TypeMismatchError
from streamproof.operators import OperatorEncoder
from streamproof.symbolic import SymbolicBuilder, SymTag, EMPTY_ARRAY
from streamproof.types import (
    BOOL, INT8, INT16, INT32, WORD8, WORD16, WORD32, FLOAT, DOUBLE, array_of,
)


@pytest.fixture
def enc():
    return OperatorEncoder(SymbolicBuilder())


def c(enc, t, v):
    return enc.builder.encode_constant(t, v)


def signed(v):
    return z3.simplify(v.term).as_signed_long()


def unsigned(v):
    return z3.simplify(v.term).as_long()


def truth(v):
    r = z3.simplify(v.term)
    assert z3.is_true(r) or z3.is_false(r)
    return z3.is_true(r)


def fp_is(v, expected):
    sort = v.term.sort()
    if math.isnan(expected):
        return z3.is_true(z3.simplify(z3.fpIsNaN(v.term)))
    return z3.is_true(z3.simplify(z3.fpEQ(v.term, z3.FPVal(expected, sort))))


def wrap8(n):
    return (n + 128) % 256 - 128


def trunc_div(a, b):
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


int8s = st.integers(min_value=-128, max_value=127)
word8s = st.integers(min_value=0, max_value=255)


class TestLogic:
    """OPS-001: not / and / or over Bool."""

    @pytest.mark.parametrize("a,b", [(True, True), (True, False), (False, True), (False, False)])
    def test_truth_tables(self, enc, a, b):
        x, y = c(enc, BOOL, a), c(enc, BOOL, b)
        assert truth(enc.op1("not", x, BOOL)) == (not a)
        assert truth(enc.op2("and", x, y, BOOL)) == (a and b)
        assert truth(enc.op2("or", x, y, BOOL)) == (a or b)

    def test_not_rejects_numbers(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op1("not", c(enc, INT8, 1), BOOL)


class TestAbsSign:
    """OPS-002: abs and sign over every numeric tag."""

    @given(int8s)
    def test_abs_int8_wraps_like_twos_complement(self, n):
        e = OperatorEncoder(SymbolicBuilder())
        assert signed(e.op1("abs", c(e, INT8, n), INT8)) == wrap8(abs(n))

    def test_abs_min_int_stays_negative(self, enc):
        assert signed(enc.op1("abs", c(enc, INT8, -128), INT8)) == -128

    @given(word8s)
    def test_abs_word_is_identity(self, n):
        e = OperatorEncoder(SymbolicBuilder())
        assert unsigned(e.op1("abs", c(e, WORD8, n), WORD8)) == n

    @given(int8s)
    def test_sign_int8(self, n):
        e = OperatorEncoder(SymbolicBuilder())
        expected = 0 if n == 0 else (-1 if n < 0 else 1)
        assert signed(e.op1("sign", c(e, INT8, n), INT8)) == expected

    def test_sign_word(self, enc):
        assert unsigned(enc.op1("sign", c(enc, WORD16, 0), WORD16)) == 0
        assert unsigned(enc.op1("sign", c(enc, WORD16, 40000), WORD16)) == 1

    @pytest.mark.parametrize("v,expected", [(-2.5, 2.5), (3.0, 3.0), (0.0, 0.0)])
    def test_abs_double(self, enc, v, expected):
        assert fp_is(enc.op1("abs", c(enc, DOUBLE, v), DOUBLE), expected)

    @pytest.mark.parametrize("v,expected", [(-7.0, -1.0), (0.5, 1.0), (0.0, 0.0), (-0.0, 0.0)])
    def test_sign_float(self, enc, v, expected):
        assert fp_is(enc.op1("sign", c(enc, FLOAT, v), FLOAT), expected)

    def test_abs_keeps_tag(self, enc):
        assert enc.op1("abs", c(enc, INT32, -5), INT32).tag == SymTag.INT32

    def test_abs_rejects_bool(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op1("abs", c(enc, BOOL, True), BOOL)

    def test_abs_symbolic_int_can_be_negative(self, enc):
        # abs(MIN_INT) overflows, so "abs x >= 0" is not a theorem
        x = enc.builder.fresh_constant(INT8, "x")
        s = z3.Solver()
        s.add(z3.Not(enc.op1("abs", x, INT8).term >= 0))
        assert s.check() == z3.sat


class TestArithmetic:
    """OPS-003: modular integer arithmetic and IEEE float arithmetic."""

    @given(int8s, int8s)
    def test_int8_add_sub_mul_wrap(self, a, b):
        e = OperatorEncoder(SymbolicBuilder())
        x, y = c(e, INT8, a), c(e, INT8, b)
        assert signed(e.op2("add", x, y, INT8)) == wrap8(a + b)
        assert signed(e.op2("sub", x, y, INT8)) == wrap8(a - b)
        assert signed(e.op2("mul", x, y, INT8)) == wrap8(a * b)

    @given(int8s, int8s)
    def test_int8_div_mod_truncate_toward_zero(self, a, b):
        assume(b != 0)
        e = OperatorEncoder(SymbolicBuilder())
        x, y = c(e, INT8, a), c(e, INT8, b)
        q = trunc_div(a, b)
        assert signed(e.op2("div", x, y, INT8)) == wrap8(q)
        assert signed(e.op2("mod", x, y, INT8)) == wrap8(a - b * q)

    @given(word8s, word8s)
    def test_word8_div_mod(self, a, b):
        assume(b != 0)
        e = OperatorEncoder(SymbolicBuilder())
        x, y = c(e, WORD8, a), c(e, WORD8, b)
        assert unsigned(e.op2("div", x, y, WORD8)) == a // b
        assert unsigned(e.op2("mod", x, y, WORD8)) == a % b

    def test_double_arithmetic(self, enc):
        x, y = c(enc, DOUBLE, 1.5), c(enc, DOUBLE, 0.25)
        assert fp_is(enc.op2("add", x, y, DOUBLE), 1.75)
        assert fp_is(enc.op2("sub", x, y, DOUBLE), 1.25)
        assert fp_is(enc.op2("mul", x, y, DOUBLE), 0.375)
        assert fp_is(enc.op2("fdiv", x, y, DOUBLE), 6.0)

    def test_float_rounding_is_single_precision(self, enc):
        x, y = c(enc, FLOAT, 16777216.0), c(enc, FLOAT, 1.0)
        # 2^24 + 1 is not representable in binary32; ties round to even
        assert fp_is(enc.op2("add", x, y, FLOAT), 16777216.0)

    def test_recip_sqrt(self, enc):
        assert fp_is(enc.op1("recip", c(enc, DOUBLE, 4.0), DOUBLE), 0.25)
        assert fp_is(enc.op1("sqrt", c(enc, DOUBLE, 9.0), DOUBLE), 3.0)
        assert fp_is(enc.op1("sqrt", c(enc, DOUBLE, -1.0), DOUBLE), math.nan)

    def test_ceiling_floor(self, enc):
        assert fp_is(enc.op1("ceiling", c(enc, DOUBLE, 1.2), DOUBLE), 2.0)
        assert fp_is(enc.op1("floor", c(enc, DOUBLE, -1.2), DOUBLE), -2.0)

    def test_mixed_widths_rejected(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op2("add", c(enc, INT8, 1), c(enc, INT16, 1), INT8)

    def test_div_on_floats_rejected(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op2("div", c(enc, DOUBLE, 1.0), c(enc, DOUBLE, 2.0), DOUBLE)


class TestTranscendental:
    """OPS-004: transcendental functions are uninterpreted."""

    def test_same_function_for_same_sort(self, enc):
        x = enc.builder.fresh_constant(DOUBLE, "x")
        a = enc.op1("sin", x, DOUBLE)
        b = enc.op1("sin", x, DOUBLE)
        assert a.term.eq(b.term)

    def test_nothing_is_assumed(self, enc):
        # sin x == 0.5 is satisfiable without any trigonometry
        x = enc.builder.fresh_constant(DOUBLE, "x")
        s = z3.Solver()
        s.add(z3.fpEQ(enc.op1("sin", x, DOUBLE).term, z3.FPVal(0.5, z3.Float64())))
        assert s.check() == z3.sat

    def test_pow_binary(self, enc):
        v = enc.op2("pow", c(enc, FLOAT, 2.0), c(enc, FLOAT, 3.0), FLOAT)
        assert v.tag == SymTag.FLOAT

    def test_rejects_integers(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op1("exp", c(enc, INT32, 1), INT32)


class TestComparisons:
    """OPS-005: signed, unsigned and IEEE comparisons."""

    def test_signed_vs_unsigned_order(self, enc):
        # same bit pattern 0xFF: -1 as Int8, 255 as Word8
        assert truth(enc.op2("lt", c(enc, INT8, -1), c(enc, INT8, 1), BOOL))
        assert not truth(enc.op2("lt", c(enc, WORD8, 255), c(enc, WORD8, 1), BOOL))

    @given(int8s, int8s)
    def test_int8_relations(self, a, b):
        e = OperatorEncoder(SymbolicBuilder())
        x, y = c(e, INT8, a), c(e, INT8, b)
        assert truth(e.op2("eq", x, y, BOOL)) == (a == b)
        assert truth(e.op2("ne", x, y, BOOL)) == (a != b)
        assert truth(e.op2("le", x, y, BOOL)) == (a <= b)
        assert truth(e.op2("gt", x, y, BOOL)) == (a > b)
        assert truth(e.op2("ge", x, y, BOOL)) == (a >= b)

    def test_nan_is_not_equal_to_itself(self, enc):
        nan = c(enc, DOUBLE, math.nan)
        assert not truth(enc.op2("eq", nan, nan, BOOL))
        assert truth(enc.op2("ne", nan, nan, BOOL))
        assert not truth(enc.op2("lt", nan, nan, BOOL))

    def test_signed_zeros_are_equal(self, enc):
        assert truth(enc.op2("eq", c(enc, FLOAT, 0.0), c(enc, FLOAT, -0.0), BOOL))

    def test_bool_equality(self, enc):
        assert truth(enc.op2("eq", c(enc, BOOL, True), c(enc, BOOL, True), BOOL))

    def test_eq_on_arrays_rejected(self, enc):
        t = array_of(1, INT8)
        with pytest.raises(TypeMismatchError):
            enc.op2("eq", c(enc, t, [1]), c(enc, t, [1]), BOOL)


class TestBitwise:
    """OPS-006: bitwise operators and shifts."""

    @given(word8s, word8s)
    def test_and_or_xor_not(self, a, b):
        e = OperatorEncoder(SymbolicBuilder())
        x, y = c(e, WORD8, a), c(e, WORD8, b)
        assert unsigned(e.op2("bw_and", x, y, WORD8)) == a & b
        assert unsigned(e.op2("bw_or", x, y, WORD8)) == a | b
        assert unsigned(e.op2("bw_xor", x, y, WORD8)) == a ^ b
        assert unsigned(e.op1("bw_not", x, WORD8)) == (~a) & 0xFF

    def test_shift_left_drops_high_bits(self, enc):
        v = enc.op2("bw_shift_l", c(enc, WORD8, 200), c(enc, WORD8, 1), WORD8)
        assert unsigned(v) == 144

    def test_shift_right_signed_is_arithmetic(self, enc):
        v = enc.op2("bw_shift_r", c(enc, INT8, -128), c(enc, WORD8, 1), INT8)
        assert signed(v) == -64

    def test_shift_right_unsigned_is_logical(self, enc):
        v = enc.op2("bw_shift_r", c(enc, WORD8, 128), c(enc, WORD8, 1), WORD8)
        assert unsigned(v) == 64

    def test_wide_shift_amount_does_not_wrap(self, enc):
        left = enc.op2("bw_shift_l", c(enc, WORD8, 1), c(enc, WORD16, 256), WORD8)
        right = enc.op2("bw_shift_r", c(enc, INT8, -1), c(enc, WORD16, 300), INT8)
        assert unsigned(left) == 0
        assert signed(right) == -1

    def test_narrow_shift_amount(self, enc):
        v = enc.op2("bw_shift_l", c(enc, WORD32, 1), c(enc, WORD8, 31), WORD32)
        assert unsigned(v) == 1 << 31

    def test_bitwise_on_floats_rejected(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op2("bw_and", c(enc, DOUBLE, 1.0), c(enc, DOUBLE, 1.0), DOUBLE)


class TestCasts:
    """OPS-007: widening, narrowing and cross-domain casts."""

    def test_sign_extension(self, enc):
        assert signed(enc.op1("cast", c(enc, INT8, -1), INT32)) == -1

    def test_zero_extension(self, enc):
        assert signed(enc.op1("cast", c(enc, WORD8, 255), INT16)) == 255

    def test_truncation(self, enc):
        assert unsigned(enc.op1("cast", c(enc, INT32, 300), WORD8)) == 44

    def test_bool_to_word(self, enc):
        assert unsigned(enc.op1("cast", c(enc, BOOL, True), WORD8)) == 1
        assert unsigned(enc.op1("cast", c(enc, BOOL, False), WORD8)) == 0

    def test_int_to_double(self, enc):
        assert fp_is(enc.op1("cast", c(enc, INT32, -3), DOUBLE), -3.0)

    def test_word_to_float_is_unsigned(self, enc):
        assert fp_is(enc.op1("cast", c(enc, WORD8, 255), FLOAT), 255.0)

    def test_double_to_int_truncates(self, enc):
        assert signed(enc.op1("cast", c(enc, DOUBLE, 2.7), INT32)) == 2
        assert signed(enc.op1("cast", c(enc, DOUBLE, -2.7), INT32)) == -2

    def test_float_to_double(self, enc):
        v = enc.op1("cast", c(enc, FLOAT, 0.5), DOUBLE)
        assert v.tag == SymTag.DOUBLE
        assert fp_is(v, 0.5)

    def test_identity_cast_returns_operand(self, enc):
        x = c(enc, INT16, 7)
        assert enc.op1("cast", x, INT16) is x

    def test_cast_to_array_rejected(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op1("cast", c(enc, INT8, 1), array_of(1, INT8))


class TestIndexing:
    """OPS-008: array indexing."""

    def test_in_range(self, enc):
        arr = c(enc, array_of(3, INT32), [10, 20, 30])
        for i, expected in enumerate([10, 20, 30]):
            assert signed(enc.op2("index", arr, c(enc, WORD32, i), INT32)) == expected

    def test_out_of_range_is_unconstrained(self, enc):
        arr = c(enc, array_of(3, INT32), [10, 20, 30])
        v = z3.simplify(enc.op2("index", arr, c(enc, WORD32, 5), INT32).term)
        assert z3.is_const(v) and not z3.is_bv_value(v)
        assert str(v).startswith("index_out_of_range")

    def test_symbolic_index(self, enc):
        arr = c(enc, array_of(2, BOOL), [True, False])
        i = enc.builder.fresh_constant(WORD8, "i")
        v = enc.op2("index", arr, i, BOOL)
        s = z3.Solver()
        s.add(i.term == 0, z3.Not(v.term))
        assert s.check() == z3.unsat

    def test_negative_signed_index_out_of_range(self, enc):
        arr = c(enc, array_of(2, INT32), [1, 2])
        v = z3.simplify(enc.op2("index", arr, c(enc, INT8, -1), INT32).term)
        assert not z3.is_bv_value(v)

    def test_index_empty_array(self, enc):
        v = enc.op2("index", EMPTY_ARRAY, c(enc, WORD32, 0), INT32)
        assert v.tag == SymTag.INT32

    def test_index_non_array(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op2("index", c(enc, INT32, 1), c(enc, WORD32, 0), INT32)

    def test_supplied_default_used_for_out_of_range(self, enc):
        arr = c(enc, array_of(2, INT32), [1, 2])
        default = c(enc, INT32, 99)
        calls = []

        def index_default(element_type, array, index):
            calls.append((element_type, array, index))
            return default

        v = enc.op2("index", arr, c(enc, WORD8, 7), INT32, index_default=index_default)
        assert signed(v) == 99
        [(element_type, array, _)] = calls
        assert element_type == INT32 and array is arr

    def test_default_not_requested_for_bad_operands(self, enc):
        calls = []
        with pytest.raises(TypeMismatchError):
            enc.op2("index", c(enc, INT32, 1), c(enc, WORD32, 0), INT32,
                    index_default=lambda *args: calls.append(args))
        assert calls == []


class TestMux:
    """OPS-009: if-then-else."""

    def test_scalar(self, enc):
        v = enc.op3("mux", c(enc, BOOL, True), c(enc, WORD16, 1), c(enc, WORD16, 2))
        assert unsigned(v) == 1

    def test_condition_must_be_bool(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op3("mux", c(enc, INT8, 1), c(enc, INT8, 1), c(enc, INT8, 2))

    def test_branches_must_agree(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op3("mux", c(enc, BOOL, True), c(enc, INT8, 1), c(enc, WORD8, 2))


class TestUnknownOperators:
    """OPS-010: anything outside the table is an internal error."""

    def test_unknown_unary(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op1("frobnicate", c(enc, BOOL, True), BOOL)

    def test_unknown_binary(self, enc):
        with pytest.raises(TypeMismatchError):
            enc.op2("implies", c(enc, BOOL, True), c(enc, BOOL, True), BOOL)

    def test_unknown_ternary(self, enc):
        b = c(enc, BOOL, True)
        with pytest.raises(TypeMismatchError):
            enc.op3("select", b, b, b)
