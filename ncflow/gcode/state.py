"""
Modal state tracking

Persistent program context (positioning mode, plane, position, feed, active
motion and canned cycle) carried across blocks. ModalState is an immutable
value: every transition returns a new state, so a parse pass threads one
chain of values in document order.
"""

from dataclasses import dataclass, replace
from enum import Enum

from .tokenizer import AXIS_LETTERS, CYCLE_CODES, ProgramLine

Position = tuple[float, float, float]


class PositioningMode(Enum):
    ABSOLUTE = "G90"
    INCREMENTAL = "G91"


class Plane(Enum):
    """Active interpolation plane and its (first, second, normal) axis indices."""

    XY = "G17"
    ZX = "G18"
    YZ = "G19"

    @property
    def axes(self) -> tuple[int, int, int]:
        return _PLANE_AXES[self]

    @property
    def offset_letters(self) -> tuple[str, str]:
        """Arc center offset words for the in-plane axes."""
        return _PLANE_OFFSETS[self]


_PLANE_AXES = {Plane.XY: (0, 1, 2), Plane.ZX: (2, 0, 1), Plane.YZ: (1, 2, 0)}
_PLANE_OFFSETS = {Plane.XY: ("I", "J"), Plane.ZX: ("K", "I"), Plane.YZ: ("J", "K")}

MOTION_MODE_CODES = ("G0", "G1", "G2", "G3")


@dataclass(frozen=True)
class CycleModal:
    """Canned-cycle words that stay active until G80."""

    code: str
    z: float
    r: float
    q: float | None = None
    p: float | None = None


@dataclass(frozen=True)
class ModalState:
    positioning: PositioningMode = PositioningMode.ABSOLUTE
    plane: Plane = Plane.XY
    position: Position = (0.0, 0.0, 0.0)
    feed_rate: float | None = None
    motion_code: str | None = None
    cycle: CycleModal | None = None

    @property
    def x(self) -> float:
        return self.position[0]

    @property
    def y(self) -> float:
        return self.position[1]

    @property
    def z(self) -> float:
        return self.position[2]

    @property
    def is_incremental(self) -> bool:
        return self.positioning is PositioningMode.INCREMENTAL

    def moved_to(self, position: Position) -> "ModalState":
        return replace(self, position=(float(position[0]), float(position[1]), float(position[2])))


def has_axis_words(line: ProgramLine) -> bool:
    return line.has(*AXIS_LETTERS)


def apply_modal_codes(state: ModalState, line: ProgramLine) -> ModalState:
    """
    Apply the block's modal words without moving.

    G90/G91 set positioning, G17/G18/G19 select the plane, F sets the feed,
    G0-G3 set the motion mode and cancel a canned cycle, G80 cancels the
    cycle and leaves no motion mode active.
    """
    changes: dict = {}
    for code in line.codes("G"):
        if code == "G90":
            changes["positioning"] = PositioningMode.ABSOLUTE
        elif code == "G91":
            changes["positioning"] = PositioningMode.INCREMENTAL
        elif code in ("G17", "G18", "G19"):
            changes["plane"] = Plane(code)
        elif code == "G80":
            changes["cycle"] = None
            changes["motion_code"] = None
        elif code in MOTION_MODE_CODES:
            changes["motion_code"] = code
            changes["cycle"] = None
        elif code in CYCLE_CODES:
            changes["motion_code"] = None

    # The code that moves the block is the one left modal
    dominant = line.dominant_code()
    if dominant in MOTION_MODE_CODES:
        changes["motion_code"] = dominant
        changes["cycle"] = None

    feed = line.value("F")
    if feed is not None:
        changes["feed_rate"] = feed

    return replace(state, **changes) if changes else state


def resolve_target(state: ModalState, line: ProgramLine) -> Position:
    """
    Resolve the block's X/Y/Z target.

    Absolute: an axis word is the literal coordinate, a missing one keeps the
    current value. Incremental: an axis word is a delta, a missing one is zero.
    """
    words = line.axis_words
    target = []
    for index, axis in enumerate(AXIS_LETTERS):
        current = state.position[index]
        value = words.get(axis)
        if value is None:
            target.append(current)
        elif state.is_incremental:
            target.append(current + value)
        else:
            target.append(value)
    return (target[0], target[1], target[2])
