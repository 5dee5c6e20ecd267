"""
Canned cycle expansion

A single G81-G89 block implies several physical moves. Each CycleType has
an entry in EXPANSIONS that turns the cycle parameters into explicit phases;
the approach rapid to (X, Y, R) is emitted by the caller before the phases.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ncflow import config

logger = logging.getLogger(__name__)


class CycleType(Enum):
    DRILLING = "G81"
    DRILLING_DWELL = "G82"
    PECK_DRILLING = "G83"
    RIGHT_TAPPING = "G84"
    BORING = "G85"
    BORING_DWELL = "G86"
    BACK_BORING = "G87"
    BORING_MANUAL_RETRACT = "G88"
    BORING_FEED_RETRACT = "G89"

    @classmethod
    def from_code(cls, code: str) -> "CycleType | None":
        try:
            return cls(code)
        except ValueError:
            return None


# Recognized cycle codes without a dedicated expansion
UNHANDLED_CYCLE_CODES = ("G73", "G76")


class PhaseKind(Enum):
    RAPID = "rapid"
    FEED = "feed"
    DWELL = "dwell"


@dataclass(frozen=True)
class CycleParams:
    x: float
    y: float
    z: float
    r: float
    peck_increment: float | None = None
    dwell_time: float | None = None
    shift: tuple[float, float] | None = None


@dataclass(frozen=True)
class FixedCycle:
    """One canned-cycle invocation. ``cycle_type`` is None for unhandled codes."""

    code: str
    cycle_type: CycleType | None
    params: CycleParams
    source: str
    line_range: tuple[int, int]


@dataclass(frozen=True)
class CyclePhase:
    kind: PhaseKind
    x: float
    y: float
    z: float
    dwell: float | None = None

    @property
    def position(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


def approach_phase(cycle: FixedCycle) -> CyclePhase:
    """Rapid to the R plane above the hole."""
    p = cycle.params
    return CyclePhase(PhaseKind.RAPID, p.x, p.y, p.r)


def _feed(p: CycleParams, z: float) -> CyclePhase:
    return CyclePhase(PhaseKind.FEED, p.x, p.y, z)


def _rapid(p: CycleParams, z: float) -> CyclePhase:
    return CyclePhase(PhaseKind.RAPID, p.x, p.y, z)


def _dwell(p: CycleParams) -> CyclePhase:
    return CyclePhase(PhaseKind.DWELL, p.x, p.y, p.z, dwell=p.dwell_time)


def _drilling(p: CycleParams, warnings: list[str]) -> list[CyclePhase]:
    return [_feed(p, p.z), _rapid(p, p.r)]


def _drilling_dwell(p: CycleParams, warnings: list[str]) -> list[CyclePhase]:
    return [_feed(p, p.z), _dwell(p), _rapid(p, p.r)]


def _peck_drilling(p: CycleParams, warnings: list[str]) -> list[CyclePhase]:
    q = p.peck_increment
    if q is None or q <= 0:
        warnings.append("peck drilling without a positive Q increment; drilled in one peck")
        return [_feed(p, p.z), _rapid(p, p.r)]

    pecks = max(1, math.ceil(abs(p.r - p.z) / q))
    phases: list[CyclePhase] = []
    for i in range(pecks):
        depth = max(p.z, p.r - (i + 1) * q)
        phases.append(_feed(p, depth))
        if i < pecks - 1:
            phases.append(_rapid(p, p.r))
    phases.append(_rapid(p, p.r))
    return phases


def _right_tapping(p: CycleParams, warnings: list[str]) -> list[CyclePhase]:
    # Spindle reverses and backs out at feed
    return [_feed(p, p.z), _feed(p, p.r)]


def _boring(p: CycleParams, warnings: list[str]) -> list[CyclePhase]:
    return [_feed(p, p.z), _feed(p, p.r)]


def _boring_dwell(p: CycleParams, warnings: list[str]) -> list[CyclePhase]:
    return [_feed(p, p.z), _dwell(p), _rapid(p, p.r)]


def _back_boring(p: CycleParams, warnings: list[str]) -> list[CyclePhase]:
    sx, sy = p.shift if p.shift is not None else (config.BACK_BORING_SHIFT, 0.0)
    ox, oy = p.x + sx, p.y + sy
    cut_top = max(p.z, p.r - math.hypot(sx, sy))
    return [
        CyclePhase(PhaseKind.RAPID, ox, oy, p.r),
        CyclePhase(PhaseKind.RAPID, ox, oy, p.z),
        _feed(p, p.z),
        _feed(p, cut_top),
        CyclePhase(PhaseKind.RAPID, ox, oy, cut_top),
        CyclePhase(PhaseKind.RAPID, ox, oy, p.r),
        _rapid(p, p.r),
    ]


def _boring_manual_retract(p: CycleParams, warnings: list[str]) -> list[CyclePhase]:
    # Operator retracts by hand; shown as a rapid
    return [_feed(p, p.z), _dwell(p), _rapid(p, p.r)]


def _boring_feed_retract(p: CycleParams, warnings: list[str]) -> list[CyclePhase]:
    return [_feed(p, p.z), _dwell(p), _feed(p, p.r)]


Expansion = Callable[[CycleParams, list[str]], list[CyclePhase]]

EXPANSIONS: dict[CycleType, Expansion] = {
    CycleType.DRILLING: _drilling,
    CycleType.DRILLING_DWELL: _drilling_dwell,
    CycleType.PECK_DRILLING: _peck_drilling,
    CycleType.RIGHT_TAPPING: _right_tapping,
    CycleType.BORING: _boring,
    CycleType.BORING_DWELL: _boring_dwell,
    CycleType.BACK_BORING: _back_boring,
    CycleType.BORING_MANUAL_RETRACT: _boring_manual_retract,
    CycleType.BORING_FEED_RETRACT: _boring_feed_retract,
}

_missing = set(CycleType) - set(EXPANSIONS)
if _missing:
    raise RuntimeError(f"No expansion registered for cycle types: {sorted(m.name for m in _missing)}")


def expand_cycle(cycle: FixedCycle) -> tuple[list[CyclePhase], list[str]]:
    """
    Phases that follow the approach rapid.

    Unhandled cycle codes degrade to feed-to-Z plus rapid retract and report
    a warning instead of failing.
    """
    warnings: list[str] = []
    if cycle.cycle_type is None:
        warnings.append(f"unhandled cycle type {cycle.code}; expanded as plain drilling")
        return _drilling(cycle.params, warnings), warnings
    phases = EXPANSIONS[cycle.cycle_type](cycle.params, warnings)
    logger.debug(f"{cycle.code} at ({cycle.params.x:g}, {cycle.params.y:g}): {len(phases)} phases")
    return phases, warnings


def cycle_points(cycle: FixedCycle) -> tuple[list[CyclePhase], list[str]]:
    """Approach rapid followed by the expansion phases."""
    phases, warnings = expand_cycle(cycle)
    return [approach_phase(cycle), *phases], warnings
