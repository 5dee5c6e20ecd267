"""
Toolpath assembly

Walks a program block by block, threading ModalState through the resolver
and expanding arcs, canned cycles and shapes into one ordered sequence of
ToolpathPoints. ``iter_toolpath`` streams points for long programs;
``assemble_toolpath`` materializes them together with warnings and bounds.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

import numpy as np

from ncflow.utils.errors import EmptyProgramError

from .arcs import Direction, interpolate_arc
from .cycles import CycleParams, CycleType, FixedCycle, PhaseKind, cycle_points
from .motion import (
    ArcMotion,
    DwellMotion,
    ExpansionSettings,
    LinearMotion,
    RapidMotion,
    ShapeMotion,
    resolve_line,
)
from .shapes import ShapeInfo, ShapeKind, expand_shape
from .state import ModalState, Plane
from .tokenizer import tokenize

logger = logging.getLogger(__name__)


class MotionKind(Enum):
    RAPID = "rapid"
    FEED = "feed"
    ARC = "arc"
    DWELL = "dwell"
    SHAPE = "shape"


@dataclass(frozen=True)
class ArcInfo:
    center: tuple[float, float]
    radius: float
    start_angle: float
    end_angle: float
    direction: Direction
    plane: Plane


@dataclass(frozen=True)
class CycleInfo:
    code: str
    cycle_type: CycleType | None
    params: CycleParams


@dataclass(frozen=True)
class ToolpathPoint:
    x: float
    y: float
    z: float
    kind: MotionKind
    line_number: int
    feed_rate: float | None = None
    is_rapid: bool = False
    arc: ArcInfo | None = None
    cycle: CycleInfo | None = None
    shape: ShapeInfo | None = None
    shape_kind: ShapeKind | None = None
    is_marker: bool = False
    dwell: float | None = None

    @property
    def position(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class Bounds:
    minimum: tuple[float, float, float]
    maximum: tuple[float, float, float]

    @classmethod
    def from_points(cls, points: np.ndarray) -> "Bounds | None":
        if len(points) == 0:
            return None
        lo = points.min(axis=0)
        hi = points.max(axis=0)
        return cls(tuple(float(v) for v in lo), tuple(float(v) for v in hi))  # type: ignore[arg-type]

    def contains(self, point, tol: float = 1e-9) -> bool:
        return all(lo - tol <= v <= hi + tol for v, lo, hi in zip(point, self.minimum, self.maximum))


@dataclass(frozen=True)
class Toolpath:
    points: tuple[ToolpathPoint, ...]
    warnings: tuple[str, ...]
    cycles: tuple[FixedCycle, ...]
    bounds: Bounds | None

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def as_array(self) -> np.ndarray:
        """(n, 3) array of point coordinates."""
        if not self.points:
            return np.empty((0, 3))
        return np.array([p.position for p in self.points], dtype=float)


class ProgramInterpreter:
    """
    Streaming interpreter for one program text.

    Iterating yields ToolpathPoints in program order. Warnings and detected
    cycles accumulate on the instance as iteration proceeds; ``state`` is the
    modal state after the last block consumed.
    """

    def __init__(self, text: str | None, settings: ExpansionSettings | None = None):
        if text is None or not text.strip():
            raise EmptyProgramError()
        self.text = text
        self.settings = settings or ExpansionSettings()
        self.state = ModalState()
        self.warnings: list[str] = []
        self.cycles: list[FixedCycle] = []

    def _warn(self, line_number: int, message: str) -> None:
        entry = f"Line {line_number}: {message}"
        logger.debug(entry)
        self.warnings.append(entry)

    def __iter__(self) -> Iterator[ToolpathPoint]:
        blocks = 0
        for index, raw in enumerate(self.text.splitlines(), start=1):
            line = tokenize(raw, index)
            if line is None:
                continue
            blocks += 1
            resolution = resolve_line(line, self.state, self.settings)
            for message in resolution.warnings:
                self._warn(index, message)

            if resolution.cycle is not None:
                yield from self._cycle_points(resolution.cycle, resolution.state.feed_rate)
            elif resolution.motion is not None:
                yield from self._motion_points(resolution.motion)
            self.state = resolution.state

        if blocks == 0:
            raise EmptyProgramError("program holds only comments")

    def _cycle_points(self, cycle: FixedCycle, feed: float | None) -> Iterator[ToolpathPoint]:
        self.cycles.append(cycle)
        phases, warnings = cycle_points(cycle)
        for message in warnings:
            self._warn(cycle.line_range[0], message)
        info = CycleInfo(cycle.code, cycle.cycle_type, cycle.params)
        kinds = {PhaseKind.RAPID: MotionKind.RAPID, PhaseKind.FEED: MotionKind.FEED, PhaseKind.DWELL: MotionKind.DWELL}
        for phase in phases:
            rapid = phase.kind is PhaseKind.RAPID
            yield ToolpathPoint(
                phase.x,
                phase.y,
                phase.z,
                kind=kinds[phase.kind],
                line_number=cycle.line_range[0],
                feed_rate=None if rapid else feed,
                is_rapid=rapid,
                cycle=info,
                dwell=phase.dwell,
            )

    def _motion_points(self, motion) -> Iterator[ToolpathPoint]:
        n = motion.line_number
        if isinstance(motion, RapidMotion):
            yield ToolpathPoint(*motion.end, kind=MotionKind.RAPID, line_number=n, is_rapid=True)
        elif isinstance(motion, LinearMotion):
            yield ToolpathPoint(*motion.end, kind=MotionKind.FEED, line_number=n, feed_rate=motion.feed_rate)
        elif isinstance(motion, ArcMotion):
            g = motion.geometry
            info = ArcInfo(g.center, g.radius, g.start_angle, g.end_angle, g.direction, g.plane)
            points = interpolate_arc(motion.start, motion.end, g, self.settings.arc_resolution)
            for i, (x, y, z) in enumerate(points[1:]):
                yield ToolpathPoint(
                    float(x),
                    float(y),
                    float(z),
                    kind=MotionKind.ARC,
                    line_number=n,
                    feed_rate=motion.feed_rate,
                    arc=info if i == 0 else None,
                )
        elif isinstance(motion, DwellMotion):
            yield ToolpathPoint(
                *motion.end, kind=MotionKind.DWELL, line_number=n, feed_rate=motion.feed_rate, dwell=motion.seconds
            )
        elif isinstance(motion, ShapeMotion):
            yield from self._shape_points(motion)

    def _shape_points(self, motion: ShapeMotion) -> Iterator[ToolpathPoint]:
        n = motion.line_number
        info, points, warnings = expand_shape(
            motion.kind, motion.start, motion.end, motion.line, self.settings.arc_resolution
        )
        for message in warnings:
            self._warn(n, message)
        if info is None:
            if motion.end != motion.start:
                yield ToolpathPoint(*motion.end, kind=MotionKind.FEED, line_number=n, feed_rate=motion.feed_rate)
            return

        yield ToolpathPoint(
            *motion.start, kind=MotionKind.SHAPE, line_number=n, feed_rate=motion.feed_rate, shape=info, is_marker=True
        )
        for x, y, z in points:
            yield ToolpathPoint(
                float(x),
                float(y),
                float(z),
                kind=MotionKind.SHAPE,
                line_number=n,
                feed_rate=motion.feed_rate,
                shape_kind=motion.kind,
            )
        # Marker without shape metadata closes the shape
        yield ToolpathPoint(*motion.end, kind=MotionKind.SHAPE, line_number=n, feed_rate=motion.feed_rate, is_marker=True)


def iter_toolpath(text: str, settings: ExpansionSettings | None = None) -> Iterator[ToolpathPoint]:
    """Stream the toolpath of a program without materializing it."""
    return iter(ProgramInterpreter(text, settings))


def assemble_toolpath(text: str, settings: ExpansionSettings | None = None) -> Toolpath:
    """
    Resolve a whole program into a Toolpath.

    Raises:
        EmptyProgramError: text is None, blank or comment-only
    """
    interpreter = ProgramInterpreter(text, settings)
    points = tuple(interpreter)
    coords = np.array([p.position for p in points], dtype=float) if points else np.empty((0, 3))
    logger.info(f"Toolpath: {len(points)} points, {len(interpreter.warnings)} warnings")
    return Toolpath(
        points=points,
        warnings=tuple(interpreter.warnings),
        cycles=tuple(interpreter.cycles),
        bounds=Bounds.from_points(coords),
    )
