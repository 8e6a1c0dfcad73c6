"""Solver sessions — the one I/O boundary of the prover.

A session is opened for exactly one assert-and-check cycle and released
on every exit path; use it as a context manager.

  Z3Session              in-process z3 bindings
  ExternalSolverSession  any SMT-LIB2 executable fed on stdin

Both report SatResult(status, model, reason). The model maps free-symbol
names to printed values and is only filled in on SAT.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import z3

from streamproof.config import ProverConfig
from streamproof.errors import SolverError

logger = logging.getLogger(__name__)


class SatStatus(str, Enum):
    SAT = "sat"
    UNSAT = "unsat"
    UNKNOWN = "unknown"


@dataclass
class SatResult:
    status: SatStatus
    model: Dict[str, str] = field(default_factory=dict)
    reason: str = ""


class SolverSession:
    """Base session: configure, assert, check once, close."""

    def configure(self, options: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def assert_formula(self, formula: z3.BoolRef) -> None:
        raise NotImplementedError

    def check_sat(self) -> SatResult:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> SolverSession:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


# ---------------------------------------------------------------------------
# In-process z3
# ---------------------------------------------------------------------------

class Z3Session(SolverSession):

    def __init__(self) -> None:
        self._solver: Optional[z3.Solver] = z3.Solver()

    @property
    def solver(self) -> z3.Solver:
        if self._solver is None:
            raise SolverError("Session already closed")
        return self._solver

    def configure(self, options: Mapping[str, Any]) -> None:
        for key, value in options.items():
            self.solver.set(key, value)

    def assert_formula(self, formula: z3.BoolRef) -> None:
        self.solver.add(formula)

    def check_sat(self) -> SatResult:
        result = self.solver.check()
        if result == z3.sat:
            model = self.solver.model()
            values = {d.name(): str(model[d]) for d in model.decls()}
            return SatResult(SatStatus.SAT, dict(sorted(values.items())))
        if result == z3.unsat:
            return SatResult(SatStatus.UNSAT)
        return SatResult(SatStatus.UNKNOWN, reason=self.solver.reason_unknown())

    def close(self) -> None:
        if self._solver is not None:
            self._solver.reset()
            self._solver = None


# ---------------------------------------------------------------------------
# External SMT-LIB2 executable
# ---------------------------------------------------------------------------

def _smt_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ExternalSolverSession(SolverSession):
    """Runs ``path args...`` once, writing an SMT-LIB2 script to its stdin."""

    def __init__(self, path: str, args: Sequence[str] = ("-in", "-smt2"),
                 timeout_ms: int = 0):
        self.path = path
        self.args = list(args)
        self.timeout_ms = timeout_ms
        self._options: List[str] = []
        self._assertions: List[z3.BoolRef] = []

    def configure(self, options: Mapping[str, Any]) -> None:
        for key, value in options.items():
            self._options.append(f"(set-option :{key} {_smt_literal(value)})")

    def assert_formula(self, formula: z3.BoolRef) -> None:
        self._assertions.append(formula)

    def script(self) -> str:
        """The full SMT-LIB2 script sent to the solver."""
        s = z3.Solver()
        s.add(*self._assertions)
        # to_smt2 ends the script with (check-sat)
        body = s.to_smt2()
        lines = ["(set-option :produce-models true)", *self._options, body.rstrip(), "(get-model)", "(exit)"]
        return "\n".join(lines) + "\n"

    def check_sat(self) -> SatResult:
        script = self.script()
        logger.debug("SMT-LIB2 script for %s:\n%s", self.path, script)
        timeout = self.timeout_ms / 1000.0 + 5.0 if self.timeout_ms > 0 else None
        try:
            proc = subprocess.run(
                [self.path, *self.args],
                input=script, capture_output=True, text=True, timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return SatResult(SatStatus.UNKNOWN, reason="timeout")
        except OSError as e:
            raise SolverError(f"Cannot run solver '{self.path}': {e}") from e
        return parse_solver_output(proc.stdout, proc.stderr)

    def close(self) -> None:
        self._assertions.clear()


def parse_solver_output(stdout: str, stderr: str = "") -> SatResult:
    """Interpret the response to a (check-sat) (get-model) script."""
    lines = [ln.strip() for ln in stdout.splitlines() if ln.strip()]
    if not lines:
        raise SolverError(f"Solver produced no output: {stderr.strip()}")
    status = lines[0]
    if status == "unsat":
        return SatResult(SatStatus.UNSAT)
    if status == "unknown":
        return SatResult(SatStatus.UNKNOWN, reason="\n".join(lines[1:]))
    if status == "sat":
        return SatResult(SatStatus.SAT, parse_model("\n".join(lines[1:])))
    raise SolverError(f"Unexpected solver response: {status}", {"stderr": stderr.strip()})


# ---------------------------------------------------------------------------
# Model parsing
# ---------------------------------------------------------------------------

_TOKEN = re.compile(r"\(|\)|\|[^|]*\||\"(?:[^\"]|\"\")*\"|[^\s()]+")


def _parse_sexprs(text: str) -> List[Any]:
    stack: List[List[Any]] = [[]]
    for tok in _TOKEN.findall(text):
        if tok == "(":
            stack.append([])
        elif tok == ")":
            if len(stack) == 1:
                raise SolverError("Unbalanced parentheses in solver model")
            done = stack.pop()
            stack[-1].append(done)
        else:
            stack[-1].append(tok)
    if len(stack) != 1:
        raise SolverError("Unbalanced parentheses in solver model")
    return stack[0]


def _render(sexpr: Any) -> str:
    if isinstance(sexpr, list):
        return "(" + " ".join(_render(s) for s in sexpr) + ")"
    return sexpr


def parse_model(text: str) -> Dict[str, str]:
    """Nullary ``define-fun`` entries of a (get-model) response."""
    model: Dict[str, str] = {}
    for top in _parse_sexprs(text):
        if not isinstance(top, list):
            continue
        # z3 omits the enclosing "model" keyword in recent releases
        entries = top[1:] if top and top[0] == "model" else top
        if entries and entries[0] == "define-fun":
            entries = [entries]
        for entry in entries:
            if (isinstance(entry, list) and len(entry) == 5
                    and entry[0] == "define-fun" and entry[2] == []):
                name = entry[1].strip("|")
                model[name] = _render(entry[4])
    return dict(sorted(model.items()))


def open_session(config: Optional[ProverConfig] = None,
                 solver_path: Optional[str] = None) -> SolverSession:
    """Open the session described by ``config``; ``solver_path`` overrides it."""
    config = config or ProverConfig()
    path = solver_path or config.solver_path
    if solver_path or config.uses_external_solver:
        if not path:
            raise SolverError("External solver selected but no solver_path configured")
        return ExternalSolverSession(path, config.solver_args, config.timeout_ms)
    if config.solver != "z3":
        raise SolverError(f"Unknown solver backend '{config.solver}'")
    return Z3Session()
