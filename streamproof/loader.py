"""Load elaborated stream specifications from JSON or YAML documents.

Document shape::

    streams:
      - id: 0
        type: Bool
        buffer: [true]
        expr: {drop: 0, stream: 0}
    properties:
      - name: always_true
        expr: {op: or, args: [{drop: 0, stream: 0}, {const: true, type: Bool}]}

Types are scalar names ("Bool", "Int8" .. "Word64", "Float", "Double") or
mappings ``{array: 4, of: Int32}`` / ``{struct: Point, fields: [[x, Int32],
[y, Int32]]}``.

Expressions are mappings with one discriminating key:

    {const: v, type: T}
    {drop: k, stream: id}              type defaults to the stream's type
    {extern: name, type: T}
    {op: name, args: [...], type: T}   type inferred where unambiguous;
                                       get_field also takes ``field``
    {local: name, bound: e, body: e}, {var: name}, {label: l, expr: e}

The loader decodes structure only; it does not type-check. Local, var and
label nodes decode so that the prover can report them per property.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Optional

import yaml

from streamproof.ast_nodes import (
    Expr, Const, Drop, ExternVar, Local, Var, Label, Op1, Op2, Op3,
    Stream, Property, Spec,
    OP1_NAMES, OP2_NAMES, OP3_NAMES,
)
from streamproof.errors import SpecFormatError
from streamproof.types import (
    StreamType, ArrayType, StructType, FloatingType, BOOL,
    BUILTIN_TYPES,
)


_BOOL_RESULT_OPS = frozenset({"not", "and", "or", "eq", "ne", "lt", "le", "gt", "ge"})
_FLOAT_SPECIALS = {"nan": math.nan, "inf": math.inf, "+inf": math.inf, "-inf": -math.inf}


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

def type_from_json(d: Any, path: str = "type") -> StreamType:
    if isinstance(d, str):
        if d not in BUILTIN_TYPES:
            raise SpecFormatError(f"unknown type '{d}'", path)
        return BUILTIN_TYPES[d]
    if isinstance(d, dict):
        if "array" in d:
            length = d["array"]
            if not isinstance(length, int) or isinstance(length, bool) or length < 0:
                raise SpecFormatError("array length must be a non-negative integer", path)
            if "of" not in d:
                raise SpecFormatError("array type needs an element type under 'of'", path)
            return ArrayType(length=length, element_type=type_from_json(d["of"], f"{path}.of"))
        if "struct" in d:
            fields = []
            for i, entry in enumerate(d.get("fields", [])):
                if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                    raise SpecFormatError("struct field must be [name, type]", f"{path}.fields[{i}]")
                fields.append((str(entry[0]), type_from_json(entry[1], f"{path}.fields[{i}]")))
            return StructType(name=str(d["struct"]), fields=tuple(fields))
    raise SpecFormatError(f"cannot decode type {d!r}", path)


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

def _value_from_json(t: StreamType, v: Any) -> Any:
    if isinstance(t, FloatingType) and isinstance(v, str):
        special = _FLOAT_SPECIALS.get(v.lower())
        if special is not None:
            return special
        return float(v)
    if isinstance(t, ArrayType) and isinstance(v, list):
        return tuple(_value_from_json(t.element_type, x) for x in v)
    if isinstance(t, StructType) and isinstance(v, dict):
        return {name: _value_from_json(ft, v[name]) for name, ft in t.fields if name in v}
    return v


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

class _ExprDecoder:

    def __init__(self, stream_types: dict[int, StreamType]):
        self.stream_types = stream_types

    def decode(self, d: Any, path: str) -> Expr:
        if not isinstance(d, dict):
            raise SpecFormatError(f"expression must be a mapping, got {d!r}", path)

        if "const" in d:
            t = self._type(d, path, required=True)
            try:
                value = _value_from_json(t, d["const"])
            except ValueError as e:
                raise SpecFormatError(str(e), path) from None
            return Const(type=t, value=value)

        if "drop" in d:
            k, sid = d["drop"], d.get("stream")
            if not isinstance(k, int) or isinstance(k, bool) or k < 0:
                raise SpecFormatError("drop must be a non-negative integer", path)
            if not isinstance(sid, int) or isinstance(sid, bool):
                raise SpecFormatError("drop needs an integer 'stream'", path)
            t = self._type(d, path) or self.stream_types.get(sid)
            if t is None:
                raise SpecFormatError(f"reference to undefined stream {sid}", path)
            return Drop(type=t, drop=k, stream_id=sid)

        if "extern" in d:
            return ExternVar(type=self._type(d, path, required=True), name=str(d["extern"]))

        if "op" in d:
            return self._decode_op(d, path)

        if "local" in d:
            bound = self.decode(d.get("bound"), f"{path}.bound")
            body = self.decode(d.get("body"), f"{path}.body")
            return Local(type=self._type(d, path) or body.type, name=str(d["local"]),
                         bound_type=bound.type, bound=bound, body=body)
        if "var" in d:
            return Var(type=self._type(d, path) or BOOL, name=str(d["var"]))
        if "label" in d:
            inner = self.decode(d.get("expr"), f"{path}.expr")
            return Label(type=inner.type, label=str(d["label"]), expr=inner)

        raise SpecFormatError(f"unrecognised expression keys {sorted(d)}", path)

    def _type(self, d: dict, path: str, required: bool = False) -> Optional[StreamType]:
        if "type" in d:
            return type_from_json(d["type"], f"{path}.type")
        if required:
            raise SpecFormatError("missing 'type'", path)
        return None

    def _decode_op(self, d: dict, path: str) -> Expr:
        op = d["op"]
        raw_args = d.get("args", [])
        if not isinstance(raw_args, list):
            raise SpecFormatError("'args' must be a list", path)
        args = [self.decode(a, f"{path}.args[{i}]") for i, a in enumerate(raw_args)]
        arity = len(args)
        names = {1: OP1_NAMES, 2: OP2_NAMES, 3: OP3_NAMES}.get(arity, frozenset())
        if op not in names:
            raise SpecFormatError(f"unknown {arity}-ary operator '{op}'", path)

        t = self._type(d, path)
        if t is None:
            t = self._infer_type(op, args, d, path)

        if arity == 1:
            return Op1(type=t, op=op, arg=args[0], field_name=str(d.get("field", "")))
        if arity == 2:
            return Op2(type=t, op=op, left=args[0], right=args[1])
        return Op3(type=t, op=op, first=args[0], second=args[1], third=args[2])

    def _infer_type(self, op: str, args: list[Expr], d: dict, path: str) -> StreamType:
        if op in _BOOL_RESULT_OPS:
            return BOOL
        if op == "mux":
            return args[1].type
        if op == "index":
            if not isinstance(args[0].type, ArrayType):
                raise SpecFormatError("index needs an array operand", path)
            return args[0].type.element_type
        if op == "get_field":
            struct = args[0].type
            if not isinstance(struct, StructType):
                raise SpecFormatError("get_field needs a struct operand", path)
            try:
                return struct.get_field_type(str(d.get("field", "")))
            except KeyError as e:
                raise SpecFormatError(str(e.args[0]), path) from None
        if op == "cast":
            raise SpecFormatError("cast needs an explicit target 'type'", path)
        return args[0].type


# ---------------------------------------------------------------------------
# Specifications
# ---------------------------------------------------------------------------

def spec_from_dict(data: Any) -> Spec:
    if not isinstance(data, dict):
        raise SpecFormatError("specification must be a mapping")

    raw_streams = data.get("streams", []) or []
    raw_props = data.get("properties", []) or []
    if not isinstance(raw_streams, list) or not isinstance(raw_props, list):
        raise SpecFormatError("'streams' and 'properties' must be lists")

    stream_types: dict[int, StreamType] = {}
    for i, s in enumerate(raw_streams):
        if not isinstance(s, dict) or "id" not in s or "type" not in s:
            raise SpecFormatError("stream needs 'id' and 'type'", f"streams[{i}]")
        sid = s["id"]
        if not isinstance(sid, int) or isinstance(sid, bool):
            raise SpecFormatError("stream id must be an integer", f"streams[{i}].id")
        if sid in stream_types:
            raise SpecFormatError(f"duplicate stream id {sid}", f"streams[{i}].id")
        stream_types[sid] = type_from_json(s["type"], f"streams[{i}].type")

    decoder = _ExprDecoder(stream_types)
    streams = []
    for i, s in enumerate(raw_streams):
        t = stream_types[s["id"]]
        buffer = s.get("buffer", []) or []
        if not isinstance(buffer, list):
            raise SpecFormatError("buffer must be a list", f"streams[{i}].buffer")
        if "expr" not in s:
            raise SpecFormatError("stream needs 'expr'", f"streams[{i}]")
        streams.append(Stream(
            stream_id=s["id"],
            buffer=tuple(_value_from_json(t, v) for v in buffer),
            expr=decoder.decode(s["expr"], f"streams[{i}].expr"),
            type=t,
        ))

    properties = []
    for i, p in enumerate(raw_props):
        if not isinstance(p, dict) or "name" not in p or "expr" not in p:
            raise SpecFormatError("property needs 'name' and 'expr'", f"properties[{i}]")
        properties.append(Property(
            name=str(p["name"]),
            expr=decoder.decode(p["expr"], f"properties[{i}].expr"),
        ))

    return Spec(streams=streams, properties=properties)


def load_spec(source: str | Path) -> Spec:
    """Load a specification from a .json, .yml or .yaml file."""
    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecFormatError(f"cannot read specification: {e}", str(path)) from e
    try:
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SpecFormatError(f"malformed document: {e}", str(path)) from e
    return spec_from_dict(data)
