"""
Type definitions for serialized ncflow results.

Defines the literals and TypedDicts exchanged with callers that persist or
display optimization results.
"""

from typing import Literal, TypedDict

# Controller literals
ControllerName = Literal['fanuc', 'heidenhain', 'siemens', 'haas', 'mazak', 'okuma', 'generic']

# Preset literals
PresetName = Literal['basic', 'speed', 'quality', 'advanced']


class OptimizationStatsDict(TypedDict):
    """Line counts and estimated savings."""
    originalLines: int
    optimizedLines: int
    reductionPercent: float
    estimatedTimeReduction: float  # seconds


class ValidationDict(TypedDict):
    """Safety validation outcome."""
    isValid: bool
    errors: list[str]
    warnings: list[str]


class OptimizationResultDict(TypedDict):
    """Serialized OptimizationResult."""
    code: str
    stats: OptimizationStatsDict
    validation: ValidationDict
    improvements: list[str]
