"""
Fanuc rewrite branch: modal motion words, high-speed contour control,
corner rounding and compact/decimal formatting.
"""

import logging
import math
import re
from dataclasses import replace

from ncflow import config
from ncflow.gcode.motion import LinearMotion
from ncflow.gcode.state import MOTION_MODE_CODES
from ncflow.gcode.tokenizer import map_code_text, tokenize
from ncflow.utils.formatting import format_number

from .options import Controller
from .registry import RuleContext, Stage, register_rule
from .rules import walk_program

logger = logging.getLogger(__name__)

FANUC = (Controller.FANUC,)

_LEADING_ZERO = re.compile(r"(?<![A-Z])([GM])0+(\d)(?![\d.])")
_INTEGER_AXIS = re.compile(r"(?<![A-Z])([XYZIJKR])([+-]?\d+)(?![\d.])")
_SPACES = re.compile(r"[ \t]+")

_SETUP_CODES = frozenset({"G17", "G18", "G19", "G20", "G21", "G40", "G49", "G54", "G80", "G90", "G91"})
_SMOOTHING_CODES = frozenset({"G5.1", "G61.1", "G64"})


@register_rule(
    "fanuc_modal_g_codes",
    stage=Stage.CONTROLLER,
    description="Removed motion codes already in effect",
    enabled=lambda ctx: ctx.fanuc.use_modal_g_codes,
    controllers=FANUC,
)
def fanuc_modal_g_codes(lines: list[str], ctx: RuleContext) -> list[str]:
    result = []
    for raw, token, before, res in walk_program(lines):
        if token is None or before.cycle is not None:
            result.append(raw)
            continue
        motion = [code for code in token.codes("G") if code in MOTION_MODE_CODES]
        if len(motion) != 1 or motion[0] != before.motion_code:
            result.append(raw)
            continue
        trimmed = token.without(motion[0])
        if not trimmed.words and not trimmed.comment:
            continue
        result.append(trimmed.render())
    return result


def _insert_index(lines: list[str]) -> int:
    """Just after the setup block that precedes the first move."""
    index = 0
    for i, raw in enumerate(lines):
        token = tokenize(raw, i + 1)
        if token is None:
            continue
        if token.dominant_code() is not None or token.has("X", "Y", "Z"):
            break
        if set(token.codes("G")) & _SETUP_CODES:
            index = i + 1
    return index


def _labelled(block: str, label: str, ctx: RuleContext) -> str:
    """Block with its label comment, bare when comments are being stripped."""
    if ctx.options.remove_comments:
        return block
    return f"{block} ({label})"


@register_rule(
    "fanuc_high_speed_mode",
    stage=Stage.CONTROLLER,
    description="Enabled high-speed contour control",
    enabled=lambda ctx: ctx.options.use_high_speed_mode,
    controllers=FANUC,
)
def fanuc_high_speed_mode(lines: list[str], ctx: RuleContext) -> list[str]:
    for index, raw in enumerate(lines, start=1):
        token = tokenize(raw, index)
        if token is not None and set(token.codes("G")) & _SMOOTHING_CODES:
            return lines

    fanuc = ctx.fanuc
    header = []
    footer = []
    if fanuc.use_ai:
        header.append(_labelled("G05.1 Q1", "AI CONTOUR CONTROL ON", ctx))
    if fanuc.use_nano_smoothing:
        header.append(_labelled("G05.1 Q3", "NANO SMOOTHING ON", ctx))
    if fanuc.use_ai or fanuc.use_nano_smoothing:
        footer.append(_labelled("G05.1 Q0", "SMOOTHING OFF", ctx))
    if fanuc.use_high_precision_mode:
        header.append(_labelled("G61.1", "HIGH PRECISION", ctx))
        footer.append(_labelled("G64", "CUTTING MODE", ctx))
    else:
        header.append(_labelled("G64", "CUTTING MODE", ctx))

    result = list(lines)
    at = _insert_index(result)
    result[at:at] = header

    if footer:
        end = None
        for i in range(len(result) - 1, -1, -1):
            token = tokenize(result[i], i + 1)
            if token is not None and set(token.codes("M")) & {"M2", "M30"}:
                end = i
                break
        if end is None:
            result.extend(footer)
        else:
            result[end:end] = footer
    return result


def _xy_direction(motion: LinearMotion):
    dx = motion.end[0] - motion.start[0]
    dy = motion.end[1] - motion.start[1]
    length = math.hypot(dx, dy)
    if length < 1e-9 or motion.end[2] != motion.start[2]:
        return None
    return dx / length, dy / length, length


@register_rule(
    "fanuc_corner_rounding",
    stage=Stage.CONTROLLER,
    description="Added corner rounding between contour moves",
    enabled=lambda ctx: ctx.fanuc.use_corner_rounding,
    controllers=FANUC,
)
def fanuc_corner_rounding(lines: list[str], ctx: RuleContext) -> list[str]:
    entries = list(walk_program(lines))
    radius = config.CORNER_ROUNDING_RADIUS
    corner = f",R{format_number(radius)}"
    result = []
    for i, (raw, token, before, res) in enumerate(entries):
        if token is None or token.corner is not None or not isinstance(res.motion, LinearMotion):
            result.append(raw)
            continue
        nxt = next((e for e in entries[i + 1 :] if e[3] is not None and (e[3].motion or e[3].cycle)), None)
        if nxt is None or not isinstance(nxt[3].motion, LinearMotion):
            result.append(raw)
            continue
        a = _xy_direction(res.motion)
        b = _xy_direction(nxt[3].motion)
        if a is None or b is None or min(a[2], b[2]) < 2 * radius:
            result.append(raw)
            continue
        angle = math.degrees(math.acos(max(-1.0, min(1.0, a[0] * b[0] + a[1] * b[1]))))
        if 30.0 <= angle <= 150.0:
            result.append(replace(token, corner=corner).render())
        else:
            result.append(raw)
    return result


def _compact(code: str) -> str:
    return _SPACES.sub(" ", _LEADING_ZERO.sub(r"\1\2", code))


@register_rule(
    "fanuc_compact_gcode",
    stage=Stage.CONTROLLER,
    description="Compacted code words and spacing",
    enabled=lambda ctx: ctx.fanuc.use_compact_gcode,
    controllers=FANUC,
)
def fanuc_compact_gcode(lines: list[str], ctx: RuleContext) -> list[str]:
    return [map_code_text(line, _compact).strip() for line in lines]


def _decimal(code: str) -> str:
    return _INTEGER_AXIS.sub(r"\1\2.", code)


@register_rule(
    "fanuc_decimal_format",
    stage=Stage.CONTROLLER,
    description="Added decimal points to integer coordinates",
    enabled=lambda ctx: ctx.fanuc.use_decimal_format,
    controllers=FANUC,
)
def fanuc_decimal_format(lines: list[str], ctx: RuleContext) -> list[str]:
    return [map_code_text(line, _decimal) for line in lines]
