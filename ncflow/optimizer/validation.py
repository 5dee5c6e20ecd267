"""
Safety validation of an optimized program.

The optimized G-code is re-resolved through the interpreter; every endpoint
is checked against the travel envelope and every feed word against the
controller ceiling. For conversational output the G-code snapshot taken
before conversion is checked, plus the structure of the converted program.
"""

import logging
from dataclasses import dataclass, field

from ncflow import config
from ncflow.gcode.toolpath import ProgramInterpreter
from ncflow.gcode.tokenizer import tokenize
from ncflow.utils.errors import EmptyProgramError

from .heidenhain import is_klartext
from .options import Controller, Envelope, OptimizationOptions

logger = logging.getLogger(__name__)

_PROGRAM_END_CODES = frozenset({"M2", "M30"})


@dataclass(frozen=True)
class ValidationReport:
    is_valid: bool
    errors: tuple[str, ...] = field(default_factory=tuple)
    warnings: tuple[str, ...] = field(default_factory=tuple)


def _envelope(controller: Controller, options: OptimizationOptions) -> Envelope:
    if options.envelope is not None:
        return options.envelope
    profile = config.controller_profile(controller.value)
    return Envelope(profile.travel_min, profile.travel_max)


def _check_motion(lines: list[str], envelope: Envelope, max_feed: float, errors: list[str], warnings: list[str]):
    interpreter = ProgramInterpreter("\n".join(lines))
    reported: set[int] = set()
    try:
        for point in interpreter:
            if point.line_number in reported or envelope.contains(point.position):
                continue
            reported.add(point.line_number)
            errors.append(
                f"Line {point.line_number}: position ({point.x:g}, {point.y:g}, {point.z:g}) "
                f"outside travel limits {envelope.minimum}..{envelope.maximum}"
            )
    except EmptyProgramError as e:
        errors.append(str(e))
        return
    warnings.extend(interpreter.warnings)

    for index, raw in enumerate(lines, start=1):
        token = tokenize(raw, index)
        if token is None:
            continue
        feed = token.value("F")
        if feed is None:
            continue
        if feed < 0:
            errors.append(f"Line {index}: negative feed rate F{feed:g}")
        elif feed > max_feed:
            errors.append(f"Line {index}: feed rate F{feed:g} exceeds controller maximum {max_feed:g}")


def _has_program_end(lines: list[str]) -> bool:
    for index, raw in enumerate(lines, start=1):
        token = tokenize(raw, index)
        if token is not None and set(token.codes("M")) & _PROGRAM_END_CODES:
            return True
    return False


def validate_program(
    gcode_lines: list[str],
    output_lines: list[str],
    controller: Controller,
    options: OptimizationOptions,
    extra_warnings: list[str] | None = None,
) -> ValidationReport:
    """
    Check an optimized program.

    Args:
        gcode_lines: G-code form of the result (pre-conversion snapshot for
            conversational output)
        output_lines: The text actually returned to the caller
        controller: Target controller
        options: Options of the run; ``safety_checks`` False skips all checks
        extra_warnings: Warnings raised by rewrite rules

    Returns:
        ValidationReport; ``is_valid`` is False exactly when errors were found
    """
    warnings: list[str] = list(extra_warnings or [])
    if not options.safety_checks:
        return ValidationReport(True, (), tuple(warnings))

    errors: list[str] = []
    klartext_output = is_klartext(output_lines)

    if is_klartext(gcode_lines):
        warnings.append("input is already in conversational format; motion checks skipped")
    else:
        profile = config.controller_profile(controller.value)
        _check_motion(gcode_lines, _envelope(controller, options), profile.max_feed, errors, warnings)
        if not klartext_output and not _has_program_end(gcode_lines):
            warnings.append("program has no end code (M30 or M2)")

    if controller is Controller.FANUC:
        for index, line in enumerate(output_lines, start=1):
            if len(line) > config.FANUC_MAX_BLOCK_LENGTH:
                warnings.append(
                    f"Line {index}: block is {len(line)} characters, over the {config.FANUC_MAX_BLOCK_LENGTH} limit"
                )

    if klartext_output:
        if not any("END PGM" in line for line in output_lines):
            errors.append("conversational program has no END PGM block")
        if not any("TOOL CALL" in line for line in output_lines):
            warnings.append("conversational program has no TOOL CALL block")
    elif controller is Controller.HEIDENHAIN and any("BEGIN PGM" in line for line in output_lines):
        errors.append("BEGIN PGM is not the first block of the conversational program")

    report = ValidationReport(not errors, tuple(errors), tuple(warnings))
    logger.info(f"Validation: {len(errors)} errors, {len(warnings)} warnings")
    return report
