"""
Motion resolution

Combines a tokenized block with the current ModalState and classifies it
into one Motion variant, a FixedCycle for the cycle expander, or nothing
for modal-only blocks.
"""

import logging
from dataclasses import dataclass, replace

from ncflow import config

from .arcs import ArcGeometry, Direction, resolve_arc
from .cycles import CycleParams, CycleType, FixedCycle
from .shapes import ShapeKind
from .state import CycleModal, ModalState, Plane, Position, apply_modal_codes, has_axis_words, resolve_target
from .tokenizer import CYCLE_CODES, SHAPE_CODES, ProgramLine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpansionSettings:
    """Caller-tunable knobs for resolution and expansion."""

    arc_resolution: float = config.ARC_RESOLUTION
    full_circle_tolerance: float = config.FULL_CIRCLE_TOLERANCE
    radius_epsilon: float = config.ARC_RADIUS_EPSILON
    # Lateral shift for back boring, normally the tool's bar offset
    back_boring_shift: float = config.BACK_BORING_SHIFT

    def __post_init__(self):
        if self.arc_resolution <= 0:
            raise ValueError(f"arc_resolution must be positive, got {self.arc_resolution}")


@dataclass(frozen=True)
class RapidMotion:
    start: Position
    end: Position
    line_number: int
    feed_rate: float | None = None


@dataclass(frozen=True)
class LinearMotion:
    start: Position
    end: Position
    line_number: int
    feed_rate: float | None = None


@dataclass(frozen=True)
class ArcMotion:
    start: Position
    end: Position
    line_number: int
    geometry: ArcGeometry
    feed_rate: float | None = None

    @property
    def center(self) -> tuple[float, float]:
        return self.geometry.center

    @property
    def radius(self) -> float:
        return self.geometry.radius

    @property
    def start_angle(self) -> float:
        return self.geometry.start_angle

    @property
    def end_angle(self) -> float:
        return self.geometry.end_angle

    @property
    def direction(self) -> Direction:
        return self.geometry.direction

    @property
    def plane(self) -> Plane:
        return self.geometry.plane

    @property
    def helical_end(self) -> float | None:
        """End height along the plane normal when the arc is a helix."""
        normal = self.geometry.plane.axes[2]
        if self.end[normal] != self.start[normal]:
            return self.end[normal]
        return None


@dataclass(frozen=True)
class DwellMotion:
    start: Position
    end: Position
    line_number: int
    seconds: float | None = None
    feed_rate: float | None = None


@dataclass(frozen=True)
class ShapeMotion:
    start: Position
    end: Position
    line_number: int
    kind: ShapeKind
    line: ProgramLine
    feed_rate: float | None = None


Motion = RapidMotion | LinearMotion | ArcMotion | DwellMotion | ShapeMotion


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one block: the new state plus what it produced."""

    state: ModalState
    motion: Motion | None = None
    cycle: FixedCycle | None = None
    warnings: tuple[str, ...] = ()


def _resolve_cycle(
    code: str, line: ProgramLine, before: ModalState, state: ModalState, settings: ExpansionSettings
) -> Resolution:
    warnings: list[str] = []
    sticky = state.cycle if state.cycle is not None and state.cycle.code == code else None

    x, y, _ = resolve_target(state, line)

    r = line.value("R")
    if r is None:
        r = sticky.r if sticky else None
    z = line.value("Z")
    if z is None:
        z = sticky.z if sticky else None
    if r is None:
        r = before.z
        warnings.append(f"{code} without R; retract plane defaults to current Z {r:g}")
    if z is None:
        z = r
        warnings.append(f"{code} without Z; depth defaults to R {r:g}")

    q = line.value("Q")
    if q is None and sticky:
        q = sticky.q
    if q is not None and q <= 0:
        q = None
    p = line.value("P")
    if p is None and sticky:
        p = sticky.p

    shift = None
    if line.has("I", "J"):
        shift = (line.value("I") or 0.0, line.value("J") or 0.0)
    elif code == CycleType.BACK_BORING.value:
        shift = (settings.back_boring_shift, 0.0)

    cycle = FixedCycle(
        code=code,
        cycle_type=CycleType.from_code(code),
        params=CycleParams(x=x, y=y, z=z, r=r, peck_increment=q, dwell_time=p, shift=shift),
        source=line.raw,
        line_range=(line.line_number, line.line_number),
    )
    new_state = replace(state, cycle=CycleModal(code=code, z=z, r=r, q=q, p=p), motion_code=None)
    return Resolution(new_state.moved_to((x, y, r)), cycle=cycle, warnings=tuple(warnings))


def resolve_line(line: ProgramLine, state: ModalState, settings: ExpansionSettings | None = None) -> Resolution:
    """
    Resolve one block against the current modal state.

    Modal words on the block apply before its motion. A block with axis
    words but no motion code repeats the active motion mode, or the active
    canned cycle at the new X/Y. Blocks without axis words or motion codes
    leave the position unchanged.
    """
    settings = settings or ExpansionSettings()
    new = apply_modal_codes(state, line)
    code = line.dominant_code()

    if code is None:
        if not has_axis_words(line):
            return Resolution(new)
        if new.cycle is not None:
            return _resolve_cycle(new.cycle.code, line, state, new, settings)
        code = new.motion_code
        if code is None:
            code = "G0"
            new = replace(new, motion_code=code)
            return _rapid(line, state, new, warnings=("axis words without an active motion mode; treated as rapid",))

    if code in CYCLE_CODES:
        return _resolve_cycle(code, line, state, new, settings)

    if code == "G0":
        return _rapid(line, state, new)

    target = resolve_target(new, line)
    if code == "G1":
        motion = LinearMotion(state.position, target, line.line_number, new.feed_rate)
        return Resolution(new.moved_to(target), motion)

    if code in ("G2", "G3"):
        geometry, warnings = resolve_arc(
            state.position,
            target,
            line,
            new.plane,
            Direction(code),
            full_circle_tolerance=settings.full_circle_tolerance,
            radius_epsilon=settings.radius_epsilon,
        )
        if geometry is None:
            motion = LinearMotion(state.position, target, line.line_number, new.feed_rate)
        else:
            motion = ArcMotion(state.position, target, line.line_number, geometry, new.feed_rate)
        return Resolution(new.moved_to(target), motion, warnings=tuple(warnings))

    if code == "G4":
        seconds = line.value("P")
        if seconds is None:
            seconds = line.value("X")
        dwell = DwellMotion(state.position, state.position, line.line_number, seconds, new.feed_rate)
        return Resolution(new, dwell)

    if code in SHAPE_CODES:
        motion = ShapeMotion(state.position, target, line.line_number, ShapeKind(code), line, new.feed_rate)
        return Resolution(new.moved_to(target), motion)

    logger.debug(f"Line {line.line_number}: no motion for {code}")
    return Resolution(new)


def _rapid(line: ProgramLine, before: ModalState, new: ModalState, warnings: tuple[str, ...] = ()) -> Resolution:
    target = resolve_target(new, line)
    motion = RapidMotion(before.position, target, line.line_number)
    return Resolution(new.moved_to(target), motion, warnings=warnings)
