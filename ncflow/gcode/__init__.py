"""
G-code interpretation core

Turns program text into resolved tool motion.

Main components:
- tokenizer.py: block lexing into address words
- state.py: immutable modal state and target resolution
- motion.py: classification of blocks into motions, cycles and shapes
- arcs.py: arc center resolution and interpolation
- cycles.py: canned cycle expansion table
- shapes.py: circle/sphere/cone/extrusion milling extensions
- toolpath.py: assembly of the ordered waypoint sequence
"""

from .arcs import ArcGeometry, Direction, interpolate_arc, resolve_arc
from .cycles import CycleParams, CyclePhase, CycleType, FixedCycle, PhaseKind, cycle_points, expand_cycle
from .motion import (
    ArcMotion,
    DwellMotion,
    ExpansionSettings,
    LinearMotion,
    Motion,
    RapidMotion,
    Resolution,
    ShapeMotion,
    resolve_line,
)
from .shapes import ShapeInfo, ShapeKind, expand_shape
from .state import ModalState, Plane, PositioningMode, apply_modal_codes, resolve_target
from .tokenizer import ProgramLine, Word, tokenize, tokenize_program
from .toolpath import (
    Bounds,
    MotionKind,
    ProgramInterpreter,
    Toolpath,
    ToolpathPoint,
    assemble_toolpath,
    iter_toolpath,
)

__all__ = [
    "ArcGeometry",
    "ArcMotion",
    "Bounds",
    "CycleParams",
    "CyclePhase",
    "CycleType",
    "Direction",
    "DwellMotion",
    "ExpansionSettings",
    "FixedCycle",
    "LinearMotion",
    "ModalState",
    "Motion",
    "MotionKind",
    "PhaseKind",
    "Plane",
    "PositioningMode",
    "ProgramInterpreter",
    "ProgramLine",
    "RapidMotion",
    "Resolution",
    "ShapeInfo",
    "ShapeKind",
    "ShapeMotion",
    "Toolpath",
    "ToolpathPoint",
    "Word",
    "apply_modal_codes",
    "assemble_toolpath",
    "cycle_points",
    "expand_cycle",
    "expand_shape",
    "interpolate_arc",
    "iter_toolpath",
    "resolve_arc",
    "resolve_line",
    "resolve_target",
    "tokenize",
    "tokenize_program",
]
