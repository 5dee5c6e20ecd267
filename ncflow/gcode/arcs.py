"""
Arc geometry and interpolation

Resolves the center of a circular move from I/J/K offsets or an R word and
expands it into a discrete point sequence in the active plane, with the
normal axis linearly interpolated for helical moves.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from ncflow import config

from .state import Plane, Position
from .tokenizer import ProgramLine

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi


class Direction(Enum):
    CW = "G2"
    CCW = "G3"


@dataclass(frozen=True)
class ArcGeometry:
    """Resolved arc in plane coordinates (first, second axis of ``plane``)."""

    center: tuple[float, float]
    radius: float
    start_angle: float
    end_angle: float
    direction: Direction
    plane: Plane
    end_radius: float
    full_circle: bool = False

    @property
    def sweep(self) -> float:
        return self.end_angle - self.start_angle

    @property
    def length(self) -> float:
        return self.radius * abs(self.sweep)


def _in_plane(point: Position, plane: Plane) -> tuple[float, float]:
    a, b, _ = plane.axes
    return point[a], point[b]


def radius_to_center(
    start: tuple[float, float],
    end: tuple[float, float],
    radius: float,
    direction: Direction,
    epsilon: float = config.ARC_RADIUS_EPSILON,
) -> tuple[tuple[float, float], float, str | None]:
    """
    Center of an R-format arc.

    A negative radius requests the long way round (> 180 degrees). A radius
    shorter than half the chord is clamped to chord/2 + epsilon.

    Returns:
        (center, radius used, warning or None)
    """
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    d = math.hypot(dx, dy)
    warning = None

    r = abs(radius)
    if r < d / 2:
        clamped = d / 2 + epsilon
        warning = f"arc radius {r:g} shorter than half chord {d / 2:g}; clamped to {clamped:g}"
        r = clamped

    h = math.sqrt(max(r * r - (d / 2) ** 2, 0.0))
    mid_x = (start[0] + end[0]) / 2
    mid_y = (start[1] + end[1]) / 2
    # Left of the chord for a short counter-clockwise arc
    side = 1.0 if direction is Direction.CCW else -1.0
    if radius < 0:
        side = -side
    center = (mid_x - side * h * dy / d, mid_y + side * h * dx / d)
    return center, r, warning


def _sweep_angles(start_angle: float, end_angle: float, direction: Direction, full_circle: bool) -> float:
    if full_circle:
        return start_angle - TWO_PI if direction is Direction.CW else start_angle + TWO_PI
    if direction is Direction.CW and end_angle >= start_angle:
        end_angle -= TWO_PI
    elif direction is Direction.CCW and end_angle <= start_angle:
        end_angle += TWO_PI
    return end_angle


def resolve_arc(
    start: Position,
    target: Position,
    line: ProgramLine,
    plane: Plane,
    direction: Direction,
    full_circle_tolerance: float = config.FULL_CIRCLE_TOLERANCE,
    radius_epsilon: float = config.ARC_RADIUS_EPSILON,
) -> tuple[ArcGeometry | None, list[str]]:
    """
    Resolve the geometry of a G2/G3 block.

    Offsets are always relative to the start point, whatever the positioning
    mode. Returns (None, warnings) when no usable center can be derived; the
    caller then falls back to a straight feed move.
    """
    warnings: list[str] = []
    s = _in_plane(start, plane)
    e = _in_plane(target, plane)
    first, second = plane.offset_letters

    if line.has(first, second):
        off_a = line.value(first) or 0.0
        off_b = line.value(second) or 0.0
        center = (s[0] + off_a, s[1] + off_b)
        radius = math.hypot(off_a, off_b)
        if radius <= 0:
            return None, ["arc center offsets are zero; treated as linear move"]
        full_circle = math.hypot(e[0] - s[0], e[1] - s[1]) < full_circle_tolerance
    elif line.has("R"):
        if math.hypot(e[0] - s[0], e[1] - s[1]) < full_circle_tolerance:
            return None, ["R-format arc with coincident end points; treated as linear move"]
        center, radius, warning = radius_to_center(s, e, line.value("R"), direction, radius_epsilon)
        if warning:
            warnings.append(warning)
        full_circle = False
    else:
        return None, ["arc without I/J/K or R words; treated as linear move"]

    start_angle = math.atan2(s[1] - center[1], s[0] - center[0])
    raw_end = math.atan2(e[1] - center[1], e[0] - center[0])
    end_angle = _sweep_angles(start_angle, raw_end, direction, full_circle)

    end_radius = math.hypot(e[0] - center[0], e[1] - center[1])
    if not full_circle and abs(end_radius - radius) > config.ARC_RADIUS_MISMATCH_TOL:
        warnings.append(
            f"arc end point is {end_radius:.4f} from center but start radius is {radius:.4f}; "
            "radius interpolated to reach the programmed end"
        )
    if full_circle:
        end_radius = radius

    geometry = ArcGeometry(
        center=center,
        radius=radius,
        start_angle=start_angle,
        end_angle=end_angle,
        direction=direction,
        plane=plane,
        end_radius=end_radius,
        full_circle=full_circle,
    )
    return geometry, warnings


def arc_segment_count(radius: float, sweep: float, resolution: float = config.ARC_RESOLUTION) -> int:
    """Number of chords for an arc: max(4, ceil(arc length / resolution))."""
    if resolution <= 0:
        raise ValueError(f"arc resolution must be positive, got {resolution}")
    return max(config.ARC_MIN_SEGMENTS, math.ceil(radius * abs(sweep) / resolution))


def interpolate_arc(
    start: Position,
    end: Position,
    geometry: ArcGeometry,
    resolution: float = config.ARC_RESOLUTION,
) -> np.ndarray:
    """
    Expand an arc into points.

    Returns:
        (n+1, 3) array of XYZ points; row 0 is ``start`` and the last row is
        ``end``. The normal axis is interpolated linearly (helix).
    """
    n = arc_segment_count(geometry.radius, geometry.sweep, resolution)
    t = np.linspace(0.0, 1.0, n + 1)
    angles = geometry.start_angle + t * geometry.sweep
    radii = geometry.radius + t * (geometry.end_radius - geometry.radius)

    a, b, normal = geometry.plane.axes
    start_np = np.asarray(start, dtype=float)
    end_np = np.asarray(end, dtype=float)

    points = np.empty((n + 1, 3))
    points[:, a] = geometry.center[0] + radii * np.cos(angles)
    points[:, b] = geometry.center[1] + radii * np.sin(angles)
    points[:, normal] = start_np[normal] + t * (end_np[normal] - start_np[normal])

    # Pin the ends to the programmed coordinates
    points[0] = start_np
    points[-1] = end_np
    return points
