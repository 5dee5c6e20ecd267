"""
Volumetric shape milling extensions (G12/G13 circle, G13.1 sphere,
G13.2 cone, G13.3 extrusion).

Each expander turns the shape words of one block into a dense point set
around the current tool position.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from ncflow import config

from .state import Position
from .tokenizer import ProgramLine

logger = logging.getLogger(__name__)


class ShapeKind(Enum):
    CIRCLE_CW = "G12"
    CIRCLE_CCW = "G13"
    SPHERE = "G13.1"
    CONE = "G13.2"
    EXTRUSION = "G13.3"

    @property
    def family(self) -> str:
        return _FAMILIES[self]


_FAMILIES = {
    ShapeKind.CIRCLE_CW: "circle",
    ShapeKind.CIRCLE_CCW: "circle",
    ShapeKind.SPHERE: "sphere",
    ShapeKind.CONE: "cone",
    ShapeKind.EXTRUSION: "extrude",
}


@dataclass(frozen=True)
class ShapeInfo:
    kind: ShapeKind
    params: dict[str, float] = field(default_factory=dict)


def _ring(cx: float, cy: float, z: float, radius: float, segments: int, clockwise: bool = False) -> np.ndarray:
    angles = np.arange(segments + 1) * (2.0 * np.pi / segments)
    if clockwise:
        angles = -angles
    ring = np.empty((segments + 1, 3))
    ring[:, 0] = cx + radius * np.cos(angles)
    ring[:, 1] = cy + radius * np.sin(angles)
    ring[:, 2] = z
    return ring


def _ring_segments(radius: float, resolution: float) -> int:
    return max(config.SHAPE_MIN_RING_SEGMENTS, math.ceil(2.0 * math.pi * radius / resolution))


def _circle(kind: ShapeKind, origin: Position, end: Position, line: ProgramLine, resolution: float):
    diameter = line.value("D")
    if diameter is None and line.value("R") is not None:
        diameter = 2.0 * line.value("R")
    if diameter is None or diameter <= 0:
        return None, "circle milling needs a positive D (diameter) or R word"

    radius = diameter / 2.0
    passes = max(1, int(line.value("P") or 1))
    segments = _ring_segments(radius, resolution)
    clockwise = kind is ShapeKind.CIRCLE_CW
    rings = [
        _ring(origin[0], origin[1], origin[2], radius * (1.0 - p / passes), segments, clockwise)
        for p in range(passes)
    ]
    info = ShapeInfo(kind, {"diameter": diameter, "radius": radius, "passes": float(passes)})
    return info, np.vstack(rings)


def _sphere(kind: ShapeKind, origin: Position, end: Position, line: ProgramLine, resolution: float):
    diameter = line.value("D")
    if diameter is None or diameter <= 0:
        return None, "sphere milling needs a positive D (diameter) word"

    radius = diameter / 2.0
    height = line.value("H")
    if height is None:
        height = radius
    latitude_steps = max(1, math.ceil(height / (resolution / 2.0)))
    longitude_steps = _ring_segments(radius, resolution)

    rings = []
    for lat in range(latitude_steps):
        phi = (lat / latitude_steps) * math.pi * 0.5
        z = origin[2] - radius + radius * math.sin(phi)
        # Layers below the requested cap height are not cut
        if z < origin[2] - height:
            continue
        rings.append(_ring(origin[0], origin[1], z, radius * math.cos(phi), longitude_steps))

    info = ShapeInfo(kind, {"diameter": diameter, "radius": radius, "height": height})
    return info, (np.vstack(rings) if rings else np.empty((0, 3)))


def _cone(kind: ShapeKind, origin: Position, end: Position, line: ProgramLine, resolution: float):
    diameter = line.value("D")
    if diameter is None or diameter <= 0:
        return None, "cone milling needs a positive D (base diameter) word"

    base_radius = diameter / 2.0
    height = line.value("H")
    angle = line.value("A")
    if height is None and angle is not None and 0 < angle < 90:
        height = base_radius / math.tan(math.radians(angle))
    if height is None:
        # 45 degree cone
        height = base_radius

    layers = max(config.SHAPE_MIN_CONE_LAYERS, math.ceil(height / (resolution / 2.0)))
    rings = []
    for layer in range(layers + 1):
        layer_radius = base_radius * (1.0 - layer / layers)
        z = origin[2] - layer * (height / layers)
        rings.append(_ring(origin[0], origin[1], z, layer_radius, _ring_segments(layer_radius, resolution)))

    info = ShapeInfo(kind, {"base_diameter": diameter, "base_radius": base_radius, "height": height})
    return info, np.vstack(rings)


def _extrusion(kind: ShapeKind, origin: Position, end: Position, line: ProgramLine, resolution: float):
    width = line.value("W")
    height = line.value("H")
    if width is None or height is None or not line.has("X") or not line.has("Y"):
        return None, "extrusion needs W, H, X and Y words"

    start = np.asarray(origin, dtype=float)
    stop = np.asarray(end, dtype=float)
    travel = stop[:2] - start[:2]
    distance = float(np.hypot(*travel))
    if distance == 0:
        return None, "extrusion rail has zero length"

    length = line.value("L")
    if length is None:
        length = distance
    perp = np.array([-travel[1], travel[0]]) / distance * (width / 2.0)

    corners = np.array(
        [
            [start[0] + perp[0], start[1] + perp[1], start[2]],
            [start[0] - perp[0], start[1] - perp[1], start[2]],
            [stop[0] - perp[0], stop[1] - perp[1], stop[2]],
            [stop[0] + perp[0], stop[1] + perp[1], stop[2]],
        ]
    )
    info = ShapeInfo(kind, {"width": width, "height": height, "length": length})
    return info, np.vstack([corners, corners[:1]])


_EXPANDERS = {
    ShapeKind.CIRCLE_CW: _circle,
    ShapeKind.CIRCLE_CCW: _circle,
    ShapeKind.SPHERE: _sphere,
    ShapeKind.CONE: _cone,
    ShapeKind.EXTRUSION: _extrusion,
}

_missing = set(ShapeKind) - set(_EXPANDERS)
if _missing:
    raise RuntimeError(f"No expander registered for shape kinds: {sorted(m.name for m in _missing)}")


def expand_shape(
    kind: ShapeKind,
    origin: Position,
    end: Position,
    line: ProgramLine,
    resolution: float = config.ARC_RESOLUTION,
) -> tuple[ShapeInfo | None, np.ndarray, list[str]]:
    """
    Expand one shape block.

    Args:
        kind: Shape selected by the block's G code
        origin: Tool position when the block starts (shape center / rail start)
        end: Resolved X/Y/Z target of the block (rail end for extrusion)
        line: Tokenized block carrying the shape words
        resolution: Length units per generated segment

    Returns:
        (ShapeInfo or None, (n, 3) point array, warnings). A block missing a
        required word yields no info, no points and one warning.
    """
    if resolution <= 0:
        raise ValueError(f"shape resolution must be positive, got {resolution}")
    info, result = _EXPANDERS[kind](kind, origin, end, line, resolution)
    if info is None:
        return None, np.empty((0, 3)), [f"{kind.value} skipped: {result}"]
    logger.debug(f"{kind.value} expanded to {len(result)} points")
    return info, result, []
