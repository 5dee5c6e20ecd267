"""
Dialect optimizer

Rewrites a program for a target controller through an ordered, toggleable
rule pipeline and reports statistics and safety validation.

Main components:
- options.py: option values, builder and presets
- registry.py: rule registration and lookup
- rules.py: controller-independent rules
- fanuc.py / heidenhain.py: controller branches
- validation.py: safety validation
- pipeline.py: optimize() entry point
"""

from .options import (
    PRESETS,
    Controller,
    Envelope,
    FanucOptions,
    HeidenhainOptions,
    OptimizationOptions,
    OptionsBuilder,
    default_options,
    preset_options,
)
from .pipeline import OptimizationResult, OptimizationStats, optimize
from .registry import RuleContext, Stage, register_rule
from .validation import ValidationReport, validate_program

__all__ = [
    "PRESETS",
    "Controller",
    "Envelope",
    "FanucOptions",
    "HeidenhainOptions",
    "OptimizationOptions",
    "OptimizationResult",
    "OptimizationStats",
    "OptionsBuilder",
    "RuleContext",
    "Stage",
    "ValidationReport",
    "default_options",
    "optimize",
    "preset_options",
    "register_rule",
    "validate_program",
]
