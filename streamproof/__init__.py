"""streamproof — one-step SMT proofs of safety properties over stream specifications."""

__version__ = "0.1.0"

from streamproof.ast_nodes import Spec, Stream, Property
from streamproof.prove import prove, Prover, ProofResult, Verdict
