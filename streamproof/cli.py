"""streamproof CLI — prove stream specification properties.

Commands:
  streamproof prove <spec.yml|spec.json>   — Prove every property, print verdicts
  streamproof smt <spec> <property>        — Print the SMT-LIB2 query for one property

Exit status of ``prove``: 0 when every property is valid, 1 otherwise,
2 when the specification or solver cannot be used.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

import z3

from streamproof import __version__
from streamproof.config import load_config
from streamproof.errors import StreamProofError
from streamproof.loader import load_spec
from streamproof.prove import Prover, ProofResult, Verdict

_MARKS = {
    Verdict.VALID: "✓ VALID",
    Verdict.INVALID: "✗ INVALID",
    Verdict.UNKNOWN: "? UNKNOWN",
}


def _format_pretty(results: list[ProofResult]) -> str:
    lines = []
    for r in results:
        lines.append(f"  {_MARKS[r.verdict]:12s} {r.name}")
        if r.error:
            lines.append(f"      error: {r.error['message']}")
        elif r.reason:
            lines.append(f"      reason: {r.reason}")
        for name, value in r.counterexample.items():
            lines.append(f"      {name} = {value}")
    proved = sum(1 for r in results if r.proved)
    lines.append(f"\n  {proved}/{len(results)} properties proved")
    return "\n".join(lines)


def cmd_prove(args: argparse.Namespace) -> int:
    """Prove every property of a specification file."""
    if not os.path.exists(args.file):
        print(json.dumps({"error": f"File not found: {args.file}"}))
        return 2

    config = load_config(args.config, start_dir=os.path.dirname(os.path.abspath(args.file)))
    if args.timeout is not None:
        config.timeout_ms = args.timeout
    if args.format:
        config.format = args.format
    if args.no_counterexamples:
        config.include_counterexamples = False

    try:
        spec = load_spec(args.file)
        results = Prover(spec, config, args.solver_path).prove_all()
    except StreamProofError as e:
        print(e.to_json())
        return 2

    if config.format == "json":
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        print(_format_pretty(results))

    return 0 if all(r.proved for r in results) else 1


def cmd_smt(args: argparse.Namespace) -> int:
    """Print the negated SMT-LIB2 query for one property."""
    try:
        spec = load_spec(args.file)
        prover = Prover(spec)
        matches = [p for p in spec.properties if p.name == args.property]
        if not matches:
            print(json.dumps({"error": f"No property named '{args.property}'"}))
            return 2
        p = prover.new_translator().translate_property(matches[0].expr)
    except StreamProofError as e:
        print(e.to_json())
        return 2

    solver = z3.Solver()
    solver.add(z3.Not(p))
    print(solver.to_smt2(), end="")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="streamproof",
        description="streamproof — one-step SMT proofs of stream properties",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Log progress (-v) or translation details (-vv) to stderr")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # prove
    p_prove = subparsers.add_parser("prove", help="Prove every property of a specification")
    p_prove.add_argument("file", help="Specification file (.json, .yml, .yaml)")
    p_prove.add_argument("--solver-path", dest="solver_path", default=None,
                         help="Run this SMT-LIB2 executable instead of the z3 bindings")
    p_prove.add_argument("--timeout", type=int, default=None, help="Solver timeout in milliseconds")
    p_prove.add_argument("--format", choices=["pretty", "json"], default=None,
                         help="Output format (default: pretty, or the config file's)")
    p_prove.add_argument("--config", default=None, help="Config file (default: nearest .streamproofrc.yml)")
    p_prove.add_argument("--no-counterexamples", action="store_true", dest="no_counterexamples",
                         help="Omit counterexample assignments from the output")
    p_prove.set_defaults(func=cmd_prove)

    # smt
    p_smt = subparsers.add_parser("smt", help="Print the SMT-LIB2 query for one property")
    p_smt.add_argument("file", help="Specification file (.json, .yml, .yaml)")
    p_smt.add_argument("property", help="Property name")
    p_smt.set_defaults(func=cmd_smt)

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
        )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
