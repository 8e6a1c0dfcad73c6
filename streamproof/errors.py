"""Structured errors for the streamproof translator and prover.

Every error carries a machine-readable kind and a details dict so the CLI can
report failures as JSON. Unsupported constructs are the only errors the
prover isolates per property; everything else is a contract violation and
propagates to the caller.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    UNSUPPORTED_CONSTRUCT = "unsupported_construct"
    TYPE_MISMATCH = "type_mismatch"
    MISSING_STREAM = "missing_stream"
    SOLVER_ERROR = "solver_error"
    SPEC_FORMAT = "spec_format"


class StreamProofError(Exception):
    """Base exception carrying a kind, a message and structured details."""

    kind: ErrorKind = ErrorKind.TYPE_MISMATCH

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __str__(self) -> str:
        return f"[{self.kind.value}]: {self.message}"


class UnsupportedConstructError(StreamProofError):
    """Raised when the translator meets an expression node it cannot encode."""

    kind = ErrorKind.UNSUPPORTED_CONSTRUCT

    def __init__(self, construct: str, details: Optional[dict[str, Any]] = None):
        self.construct = construct
        super().__init__(
            f"Unsupported construct '{construct}'",
            {"construct": construct, **(details or {})},
        )


class TypeMismatchError(StreamProofError):
    """An operand's symbolic tag disagrees with what an operation expects.

    Unreachable for well-typed specifications.
    """

    kind = ErrorKind.TYPE_MISMATCH

    def __init__(self, operation: str, expected: str, actual: str):
        self.operation = operation
        super().__init__(
            f"{operation}: expected {expected}, got {actual}",
            {"operation": operation, "expected": expected, "actual": actual},
        )


class MissingStreamError(StreamProofError):
    kind = ErrorKind.MISSING_STREAM

    def __init__(self, stream_id: int):
        self.stream_id = stream_id
        super().__init__(f"Undefined stream id {stream_id}", {"stream_id": stream_id})


class SolverError(StreamProofError):
    """The solver could not be run or produced output we cannot interpret."""

    kind = ErrorKind.SOLVER_ERROR


class SpecFormatError(StreamProofError):
    kind = ErrorKind.SPEC_FORMAT

    def __init__(self, message: str, path: str = ""):
        details = {"path": path} if path else {}
        super().__init__(f"{path}: {message}" if path else message, details)
