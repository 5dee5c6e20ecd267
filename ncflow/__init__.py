"""
ncflow Python Package

Interprets numerically-controlled machine programs into resolved tool
motion and rewrites them for specific controller dialects.

Key components:
- assemble_toolpath / iter_toolpath: program text to ordered waypoints
- optimize: dialect-aware rewrite with statistics and validation
- OptionsBuilder / preset_options: optimizer configuration
"""

from ._version import __version__
from .gcode import ExpansionSettings, Toolpath, ToolpathPoint, assemble_toolpath, iter_toolpath, tokenize
from .optimizer import (
    Controller,
    OptimizationOptions,
    OptimizationResult,
    OptionsBuilder,
    default_options,
    optimize,
    preset_options,
)
from .utils.errors import EmptyProgramError, OptionsError, UnknownControllerError

__all__ = [
    "__version__",
    "Controller",
    "EmptyProgramError",
    "ExpansionSettings",
    "OptimizationOptions",
    "OptimizationResult",
    "OptionsBuilder",
    "OptionsError",
    "Toolpath",
    "ToolpathPoint",
    "UnknownControllerError",
    "assemble_toolpath",
    "default_options",
    "iter_toolpath",
    "optimize",
    "preset_options",
    "tokenize",
]
