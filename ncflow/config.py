"""
Central configuration for ncflow tunables and shared constants.

Every numeric tunable can be overridden through an ``NCFLOW_*`` environment
variable. Controller profiles describe the machine envelope and feed limits
used by the optimizer and its safety validation.
"""

import logging
import os
from dataclasses import dataclass

TRACE: int = 5
logging.addLevelName(TRACE, "TRACE")
# Add Logger.trace if missing
if not hasattr(logging.Logger, "trace"):

    def _trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    logging.Logger.trace = _trace  # type: ignore[attr-defined]
    logging.TRACE = TRACE  # type: ignore[attr-defined]

TRACE_ENABLED = str(os.getenv("NCFLOW_TRACE", "0")).lower() in ("1", "true", "yes", "on")

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


# Arc interpolation (length units per generated segment)
ARC_RESOLUTION: float = _env_float("NCFLOW_ARC_RESOLUTION", 10.0)
ARC_MIN_SEGMENTS: int = 4
# Degenerate R-format arcs are clamped to chord/2 + this epsilon
ARC_RADIUS_EPSILON: float = _env_float("NCFLOW_ARC_RADIUS_EPSILON", 0.001)
# Start/end distance below which an I/J/K arc is a full circle.
# Half of the last digit printed at 3-decimal output precision.
COORDINATE_PRECISION: int = _env_int("NCFLOW_COORDINATE_PRECISION", 3)
FULL_CIRCLE_TOLERANCE: float = _env_float("NCFLOW_FULL_CIRCLE_TOLERANCE", 10.0**-COORDINATE_PRECISION)
# End point may drift this far off the start radius before a warning is recorded
ARC_RADIUS_MISMATCH_TOL: float = _env_float("NCFLOW_ARC_RADIUS_MISMATCH_TOL", 0.01)

# Shape expansion
SHAPE_MIN_RING_SEGMENTS: int = 16
SHAPE_MIN_CONE_LAYERS: int = 4

# Lateral shift used by back boring when neither the block nor the tool provides one
BACK_BORING_SHIFT: float = _env_float("NCFLOW_BACK_BORING_SHIFT", 2.0)

# Optimizer heuristics
AVERAGE_BLOCK_LENGTH: float = _env_float("NCFLOW_AVERAGE_BLOCK_LENGTH", 10.0)
ARC_FIT_MIN_POINTS: int = _env_int("NCFLOW_ARC_FIT_MIN_POINTS", 5)
ARC_FIT_TOLERANCE: float = _env_float("NCFLOW_ARC_FIT_TOLERANCE", 0.01)
ARC_FIT_MAX_RADIUS: float = _env_float("NCFLOW_ARC_FIT_MAX_RADIUS", 5000.0)
CORNER_ROUNDING_RADIUS: float = _env_float("NCFLOW_CORNER_ROUNDING_RADIUS", 0.5)
FANUC_MAX_BLOCK_LENGTH: int = 128

LOG_LEVEL_DEFAULT: str = "INFO"


@dataclass(frozen=True)
class ControllerProfile:
    """Machine limits for one controller family (units per minute, units)."""

    max_feed: float
    min_feed: float
    rapid_rate: float
    travel_min: tuple[float, float, float]
    travel_max: tuple[float, float, float]


_DEFAULT_TRAVEL = _env_float("NCFLOW_TRAVEL_LIMIT", 1000.0)

CONTROLLER_PROFILES: dict[str, ControllerProfile] = {
    "fanuc": ControllerProfile(
        max_feed=_env_float("NCFLOW_FANUC_MAX_FEED", 20000.0),
        min_feed=1.0,
        rapid_rate=24000.0,
        travel_min=(-_DEFAULT_TRAVEL, -_DEFAULT_TRAVEL, -_DEFAULT_TRAVEL),
        travel_max=(_DEFAULT_TRAVEL, _DEFAULT_TRAVEL, _DEFAULT_TRAVEL),
    ),
    "heidenhain": ControllerProfile(
        max_feed=_env_float("NCFLOW_HEIDENHAIN_MAX_FEED", 15000.0),
        min_feed=1.0,
        rapid_rate=20000.0,
        travel_min=(-_DEFAULT_TRAVEL, -_DEFAULT_TRAVEL, -_DEFAULT_TRAVEL),
        travel_max=(_DEFAULT_TRAVEL, _DEFAULT_TRAVEL, _DEFAULT_TRAVEL),
    ),
    "generic": ControllerProfile(
        max_feed=_env_float("NCFLOW_GENERIC_MAX_FEED", 10000.0),
        min_feed=1.0,
        rapid_rate=10000.0,
        travel_min=(-_DEFAULT_TRAVEL, -_DEFAULT_TRAVEL, -_DEFAULT_TRAVEL),
        travel_max=(_DEFAULT_TRAVEL, _DEFAULT_TRAVEL, _DEFAULT_TRAVEL),
    ),
}


def controller_profile(name: str) -> ControllerProfile:
    """Return the profile for a controller, falling back to the generic one."""
    return CONTROLLER_PROFILES.get(name, CONTROLLER_PROFILES["generic"])
