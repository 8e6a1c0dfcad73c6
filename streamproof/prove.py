"""Proof Driver — one-step, non-inductive proofs of stream properties.

For each property, independently and in specification order:

  1. start an empty ConstantCache (caches are never shared between
     properties)
  2. translate the property at offset 0 against the shared registry
  3. negate the resulting Bool term
  4. open a solver session, assert the negation, check once
  5. UNSAT -> VALID, SAT -> INVALID (with the satisfying assignment),
     solver unknown -> UNKNOWN

The technique is sound but incomplete. Values from the past are free
symbols with nothing asserted about them, so a VALID verdict holds for
every possible history. Properties that need induction, such as

    a = [True] ++ a        -- property: a

are never proved: ``a`` at the present instant is just the free symbol
"a one step ago". By contrast

    a = True
    b = not a              -- property: a || b

reduces to ``True || not True`` and is VALID.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import z3

from streamproof.ast_nodes import Property, Spec
from streamproof.cache import ConstantCache
from streamproof.config import ProverConfig
from streamproof.errors import UnsupportedConstructError
from streamproof.operators import OperatorEncoder
from streamproof.registry import StreamRegistry
from streamproof.solver import SatStatus, open_session
from streamproof.symbolic import SymbolicBuilder
from streamproof.translate import Translator

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    VALID = "valid"        # negation UNSAT: proved
    INVALID = "invalid"    # negation SAT: counterexample found
    UNKNOWN = "unknown"    # solver gave up, or the property could not be translated


@dataclass
class ProofResult:
    """The outcome for one property.

    ``counterexample`` maps free-symbol names to values when INVALID.
    ``error`` is set when translation failed on an unsupported construct;
    the verdict is then UNKNOWN.
    """
    name: str
    verdict: Verdict
    counterexample: Dict[str, str] = field(default_factory=dict)
    reason: str = ""
    error: Optional[Dict[str, Any]] = None
    duration_ms: float = 0.0

    @property
    def proved(self) -> bool:
        return self.verdict == Verdict.VALID

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "verdict": self.verdict.value}
        if self.counterexample:
            d["counterexample"] = self.counterexample
        if self.reason:
            d["reason"] = self.reason
        if self.error:
            d["error"] = self.error
        d["duration_ms"] = round(self.duration_ms, 3)
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


class Prover:
    """Holds the per-run state: registry, symbolic builder and config."""

    def __init__(self, spec: Spec, config: Optional[ProverConfig] = None,
                 solver_path: Optional[str] = None):
        self.spec = spec
        self.config = config or ProverConfig()
        self.solver_path = solver_path
        self.registry = StreamRegistry(spec.streams)
        self.builder = SymbolicBuilder()
        self.operators = OperatorEncoder(self.builder)

    def new_translator(self) -> Translator:
        """A translator with an empty cache, for exactly one property."""
        cache = ConstantCache(self.builder, self.registry)
        return Translator(self.builder, self.registry, cache, self.operators)

    def prove_all(self) -> List[ProofResult]:
        return [self.prove_property(p) for p in self.spec.properties]

    def prove_property(self, prop: Property) -> ProofResult:
        start = time.time()
        translator = self.new_translator()
        try:
            p = translator.translate_property(prop.expr)
        except UnsupportedConstructError as e:
            logger.warning("property %s: %s", prop.name, e)
            return ProofResult(
                name=prop.name, verdict=Verdict.UNKNOWN, error=e.to_dict(),
                reason=e.message, duration_ms=(time.time() - start) * 1000,
            )
        logger.debug("property %s uses %d free symbols", prop.name, len(translator.cache))

        with open_session(self.config, self.solver_path) as session:
            session.configure(self.config.session_options())
            session.assert_formula(z3.Not(p))
            sat = session.check_sat()

        if sat.status == SatStatus.UNSAT:
            verdict = Verdict.VALID
        elif sat.status == SatStatus.SAT:
            verdict = Verdict.INVALID
        else:
            verdict = Verdict.UNKNOWN
        result = ProofResult(
            name=prop.name,
            verdict=verdict,
            counterexample=sat.model if self.config.include_counterexamples else {},
            reason=sat.reason,
            duration_ms=(time.time() - start) * 1000,
        )
        logger.info("property %s: %s", prop.name, verdict.value)
        return result


def prove(spec: Spec, config: Optional[ProverConfig] = None,
          solver_path: Optional[str] = None) -> List[ProofResult]:
    """Prove every property of ``spec``; results keep specification order."""
    return Prover(spec, config, solver_path).prove_all()
