"""
Optimization pipeline

Runs the registered rewrite rules for a controller in stage order, records
which rules changed the program, computes statistics and validates the
result.
"""

import logging
from dataclasses import dataclass

from ncflow import config
from ncflow.config import TRACE
from ncflow.gcode.tokenizer import tokenize
from ncflow.protocol.types import OptimizationResultDict
from ncflow.utils.errors import EmptyProgramError

from .heidenhain import is_klartext
from .options import Controller, OptimizationOptions, default_options
from .registry import RuleContext, Stage, _registry
from .rules import count_motion_lines, dominant_feed
from .validation import ValidationReport, validate_program

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptimizationStats:
    original_lines: int
    optimized_lines: int
    reduction_percent: float
    estimated_time_reduction: float  # seconds


@dataclass(frozen=True)
class OptimizationResult:
    code: str
    stats: OptimizationStats
    validation: ValidationReport
    improvements: tuple[str, ...]

    def to_dict(self) -> OptimizationResultDict:
        return {
            "code": self.code,
            "stats": {
                "originalLines": self.stats.original_lines,
                "optimizedLines": self.stats.optimized_lines,
                "reductionPercent": self.stats.reduction_percent,
                "estimatedTimeReduction": self.stats.estimated_time_reduction,
            },
            "validation": {
                "isValid": self.validation.is_valid,
                "errors": list(self.validation.errors),
                "warnings": list(self.validation.warnings),
            },
            "improvements": list(self.improvements),
        }


def _statistics(original: list[str], optimized: list[str], gcode: list[str], controller: Controller) -> OptimizationStats:
    original_count = len(original)
    optimized_count = len(optimized)
    reduction = 0.0
    if original_count:
        reduction = max(0.0, (1.0 - optimized_count / original_count) * 100.0)

    removed = 0
    if not is_klartext(original) and not is_klartext(gcode):
        removed = max(0, count_motion_lines(original) - count_motion_lines(gcode))
    feed = dominant_feed(original) or config.controller_profile(controller.value).rapid_rate
    seconds = removed * config.AVERAGE_BLOCK_LENGTH / feed * 60.0
    return OptimizationStats(original_count, optimized_count, round(reduction, 2), round(seconds, 3))


def optimize(
    source: str | None, controller: "str | Controller", options: OptimizationOptions | None = None
) -> OptimizationResult:
    """
    Rewrite a program for a target controller.

    Args:
        source: Program text
        controller: Target controller name or Controller member
        options: Rule toggles; defaults to ``default_options(controller)``

    Returns:
        OptimizationResult with the rewritten text, statistics, validation
        report and one improvement entry per rule that changed the program

    Raises:
        EmptyProgramError: Source is empty, blank or holds only comments
        UnknownControllerError: Controller name is not accepted
        OptionsError: Options carry a dialect block for another controller
    """
    if source is None or not source.strip():
        raise EmptyProgramError()
    target = Controller.parse(controller)
    options = options if options is not None else default_options(target)
    options.check_for(target)

    original = source.splitlines()
    if all(tokenize(raw, i) is None for i, raw in enumerate(original, start=1)):
        raise EmptyProgramError("program holds only comments")

    ctx = RuleContext(controller=target, options=options)
    klartext_input = is_klartext(original)
    if klartext_input and target is not Controller.HEIDENHAIN:
        ctx.warnings.append(f"conversational input cannot be rewritten for {target.value}; left unchanged")

    lines = list(original)
    snapshot: list[str] | None = None
    improvements: list[str] = []
    for rule in _registry.rules_for(target):
        if klartext_input and rule.stage is not Stage.CONTROLLER and rule.name != "remove_empty_lines":
            continue
        if klartext_input and target is not Controller.HEIDENHAIN:
            continue
        if not rule.enabled(ctx):
            logger.log(TRACE, f"Rule {rule.name} disabled")
            continue
        if rule.stage is Stage.CONTROLLER and snapshot is None:
            snapshot = list(lines)
        updated = rule.func(lines, ctx)
        if updated != lines:
            improvements.append(rule.description)
            logger.debug(f"Rule {rule.name}: {len(lines)} -> {len(updated)} lines")
        lines = updated

    gcode = lines
    if is_klartext(lines) and not klartext_input and snapshot is not None:
        gcode = snapshot

    stats = _statistics(original, lines, gcode, target)
    validation = validate_program(gcode, lines, target, options, ctx.warnings)
    logger.info(
        f"Optimized for {target.value}: {stats.original_lines} -> {stats.optimized_lines} lines, "
        f"{len(improvements)} improvements"
    )
    return OptimizationResult("\n".join(lines), stats, validation, tuple(improvements))
