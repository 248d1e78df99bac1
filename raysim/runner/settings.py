"""
Simulation settings: run configuration for the Monte Carlo runner.

The editor sends these explicitly with each run request. Python defines
defaults here (overridable via raysim/defaults/simulation.yaml) for tests,
the dev server and documentation; request-supplied values win at runtime.

The variable-sweep fields are accepted and carried but not acted on.
"""

import logging
import math
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULTS_PATH = Path(__file__).resolve().parent.parent / "defaults" / "simulation.yaml"


@dataclass
class SimulationSettings:
    """
    Tuning for one simulation run.

    Wire names (camelCase, as sent by the editor) are mapped in WIRE_NAMES.
    """

    # ── Run ───────────────────────────────────────────────────

    rays: int = 10000
    """Number of independent trials."""

    frontier_size: int = 200
    """Max nodes processed per trial. 0 = unbounded (may not terminate on cycles)."""

    workers: int = 1
    """Reserved for parallel batches. Only one worker is used."""

    # ── Progress ──────────────────────────────────────────────

    max_checkpoint_interval: int = 16384
    """Cap on the doubling gap between progress snapshots."""

    poll_interval: float = 0.05
    """Seconds the facade waits on the worker queue before re-checking liveness."""

    start_method: str = "spawn"
    """multiprocessing start method for the worker process."""

    # ── Variable sweep (unused) ───────────────────────────────

    variable: Optional[str] = None
    v_start: float = 0.0
    v_end: float = 1.0
    v_step_count: int = 10

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


WIRE_NAMES = {
    "rays": "rays",
    "frontierSize": "frontier_size",
    "workers": "workers",
    "maxCheckpointInterval": "max_checkpoint_interval",
    "pollInterval": "poll_interval",
    "startMethod": "start_method",
    "variable": "variable",
    "vStart": "v_start",
    "vEnd": "v_end",
    "vStepCount": "v_step_count",
}

_INT_FIELDS = {"rays", "frontier_size", "workers", "max_checkpoint_interval", "v_step_count"}
_NON_NEGATIVE = {"rays", "frontier_size"}
_POSITIVE = {"workers", "max_checkpoint_interval", "v_step_count", "poll_interval"}


def settings_from_dict(
    d: Optional[Dict[str, Any]],
    base: Optional[SimulationSettings] = None,
) -> SimulationSettings:
    """
    Construct SimulationSettings from a dict (API request body or YAML).

    Accepts both wire names (frontierSize) and field names (frontier_size).
    Missing fields keep the `base` values. Invalid and unknown values are
    ignored.
    """
    base = base or SimulationSettings()
    if not d:
        return base

    known = {f.name for f in fields(SimulationSettings)}
    kwargs: Dict[str, Any] = {}
    for key, val in d.items():
        name = WIRE_NAMES.get(key, key)
        if name not in known:
            continue
        coerced = _coerce(name, val)
        if coerced is None and val is not None:
            logger.warning("Ignoring invalid setting %s=%r", key, val)
            continue
        kwargs[name] = coerced
    return replace(base, **kwargs)


def _coerce(name: str, val: Any) -> Any:
    if name in ("variable", "start_method"):
        return str(val) if val is not None else None
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        return None
    if not math.isfinite(val):
        return None
    if name in _NON_NEGATIVE and val < 0:
        return None
    if name in _POSITIVE and val <= 0:
        return None
    return int(val) if name in _INT_FIELDS else float(val)


def load_default_settings(path: Optional[Path] = None) -> SimulationSettings:
    """
    Load defaults from simulation.yaml.

    Falls back to dataclass defaults when the file is missing or unreadable.
    """
    path = Path(path) if path else DEFAULTS_PATH
    if not path.exists():
        logger.warning("simulation defaults not found at %s", path)
        return SimulationSettings()

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Failed to load simulation defaults: %s", e)
        return SimulationSettings()

    return settings_from_dict(data.get("simulation", data))
