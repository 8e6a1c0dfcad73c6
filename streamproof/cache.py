"""Per-property memo of free symbols standing for unknown values.

Two tables:
  (stream id, negative offset) -> value of that stream |offset| steps ago
  (extern name, offset)        -> value of that external input at offset

plus the unconstrained results of out-of-range array lookups, keyed by the
element type and the solver terms of the array and the index. The solver
hash-conses terms, so repeating a lookup yields the same unknown.

Entries are inserted once and never overwritten, so every lookup with the
same key returns the very same SymValue. Nothing is ever asserted about
these symbols: a property proved with them holds for every possible past
and every possible input.

A cache is created empty for each property and dropped once that
property's verdict is known; it is never shared between properties.
"""

from __future__ import annotations

import logging

from streamproof.registry import StreamRegistry
from streamproof.symbolic import SymbolicBuilder, SymValue
from streamproof.types import StreamType

logger = logging.getLogger(__name__)


def _term_ids(value: SymValue) -> tuple:
    if value.is_scalar:
        return (value.tag, value.term.get_id())
    return (value.tag, tuple(_term_ids(e) for e in value.elems))


class ConstantCache:

    def __init__(self, builder: SymbolicBuilder, registry: StreamRegistry):
        self.builder = builder
        self.registry = registry
        self._stream_constants: dict[tuple[int, int], SymValue] = {}
        self._extern_constants: dict[tuple[str, int], SymValue] = {}
        # values also hold the array and index so their term ids stay live
        self._index_defaults: dict[tuple, tuple[SymValue, SymValue, SymValue]] = {}
        self.hits = 0
        self.misses = 0

    def resolve_past_stream(self, stream_id: int, offset: int) -> SymValue:
        """Free symbol for stream ``stream_id`` at ``offset`` (strictly < 0)."""
        if offset >= 0:
            raise ValueError(f"Past-stream offset must be negative, got {offset}")
        key = (stream_id, offset)
        found = self._stream_constants.get(key)
        if found is not None:
            self.hits += 1
            return found
        self.misses += 1
        stream_type = self.registry.type_of(stream_id)
        value = self.builder.fresh_constant(stream_type, f"s{stream_id}_{offset}")
        self._stream_constants[key] = value
        logger.debug("stream s%d at offset %d is a free symbol", stream_id, offset)
        return value

    def resolve_external(self, name: str, t: StreamType, offset: int) -> SymValue:
        """Free symbol for external input ``name`` at ``offset`` (<= 0)."""
        if offset > 0:
            raise ValueError(f"External offset must not be positive, got {offset}")
        key = (name, offset)
        found = self._extern_constants.get(key)
        if found is not None:
            self.hits += 1
            return found
        self.misses += 1
        value = self.builder.fresh_constant(t, f"{name}_{offset}")
        self._extern_constants[key] = value
        return value

    def resolve_index_default(self, element_type: StreamType, array: SymValue,
                              index: SymValue) -> SymValue:
        """Unknown element for an out-of-range ``array[index]``."""
        key = (element_type, _term_ids(array), index.term.get_id())
        found = self._index_defaults.get(key)
        if found is not None:
            self.hits += 1
            return found[0]
        self.misses += 1
        value = self.builder.fresh_constant(element_type, "index_out_of_range")
        self._index_defaults[key] = (value, array, index)
        return value

    @property
    def stream_keys(self) -> list[tuple[int, int]]:
        return list(self._stream_constants)

    @property
    def extern_keys(self) -> list[tuple[str, int]]:
        return list(self._extern_constants)

    def __len__(self) -> int:
        return (len(self._stream_constants) + len(self._extern_constants)
                + len(self._index_defaults))
