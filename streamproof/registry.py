"""Read-only stream lookup shared by every property of a proof run."""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from streamproof.ast_nodes import Stream
from streamproof.errors import MissingStreamError
from streamproof.types import StreamType


class StreamRegistry:
    """Immutable ``stream_id -> Stream`` map built once per run."""

    def __init__(self, streams: Iterable[Stream]):
        table: dict[int, Stream] = {}
        for s in streams:
            if s.stream_id in table:
                raise ValueError(f"Duplicate stream id {s.stream_id}")
            table[s.stream_id] = s
        self._streams: Mapping[int, Stream] = MappingProxyType(table)

    def get(self, stream_id: int) -> Stream:
        try:
            return self._streams[stream_id]
        except KeyError:
            raise MissingStreamError(stream_id) from None

    def type_of(self, stream_id: int) -> StreamType:
        return self.get(stream_id).type

    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self._streams

    def __iter__(self) -> Iterator[int]:
        return iter(self._streams)

    def __len__(self) -> int:
        return len(self._streams)
