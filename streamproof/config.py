"""streamproof Configuration — project-level .streamproofrc.yml support.

Loads configuration from .streamproofrc.yml (or .streamproofrc.yaml,
.streamproofrc.json) in the project root or any parent directory.

Example .streamproofrc.yml:
    solver: external          # "z3" (in-process bindings) or "external"
    solver_path: /usr/bin/z3
    solver_args: ["-in", "-smt2"]
    timeout_ms: 10000
    solver_options:
      random_seed: 7
    format: json
    include_counterexamples: true
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class ProverConfig:
    """Settings for one proof run."""
    # "z3" runs the in-process bindings, "external" an SMT-LIB2 executable
    solver: str = "z3"
    solver_path: str = ""
    solver_args: List[str] = field(default_factory=lambda: ["-in", "-smt2"])
    timeout_ms: int = 0  # 0 = no limit
    solver_options: Dict[str, Any] = field(default_factory=dict)
    # Output
    format: str = "pretty"  # "pretty", "json"
    include_counterexamples: bool = True

    @property
    def uses_external_solver(self) -> bool:
        return self.solver == "external" or bool(self.solver_path)

    def session_options(self) -> Dict[str, Any]:
        """Options handed to SolverSession.configure."""
        options = dict(self.solver_options)
        if self.timeout_ms > 0:
            options.setdefault("timeout", self.timeout_ms)
        return options


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".streamproofrc.yml",
    ".streamproofrc.yaml",
    ".streamproofrc.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in _CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".") -> ProverConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found, or it cannot be read, returns defaults.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return ProverConfig()

    try:
        with open(path, "r") as f:
            content = f.read()
    except OSError as e:
        logger.warning("cannot read config %s: %s", path, e)
        return ProverConfig()

    try:
        if path.endswith(".json"):
            data = json.loads(content)
        else:
            data = yaml.safe_load(content) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        logger.warning("malformed config %s: %s", path, e)
        return ProverConfig()

    if not isinstance(data, dict):
        logger.warning("config %s is not a mapping; using defaults", path)
        return ProverConfig()

    logger.debug("loaded config from %s", path)
    return _dict_to_config(data)


def _dict_to_config(data: Dict[str, Any]) -> ProverConfig:
    """Convert a parsed dict to ProverConfig."""
    config = ProverConfig()

    if "solver" in data:
        config.solver = str(data["solver"])
    if "solver_path" in data and data["solver_path"]:
        config.solver_path = str(data["solver_path"])
    if "solver_args" in data and isinstance(data["solver_args"], list):
        config.solver_args = [str(a) for a in data["solver_args"]]
    if "timeout_ms" in data:
        config.timeout_ms = int(data["timeout_ms"])
    if "solver_options" in data and isinstance(data["solver_options"], dict):
        config.solver_options = dict(data["solver_options"])
    if "format" in data:
        config.format = str(data["format"])
    if "include_counterexamples" in data:
        config.include_counterexamples = bool(data["include_counterexamples"])

    return config
