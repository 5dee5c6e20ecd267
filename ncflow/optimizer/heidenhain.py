"""
Heidenhain rewrite branch

Converts a G-code program into numbered conversational (Klartext) blocks:
BEGIN PGM, workpiece blank, L/CC/C/CR path blocks, CYCL DEF drilling
cycles with Q parameters and M99 calls, END PGM. Follow-up rules collapse
repeated cycle definitions and add TCPM.
"""

import logging
import re

from ncflow.gcode.arcs import Direction
from ncflow.gcode.cycles import CycleType, FixedCycle, PhaseKind, cycle_points
from ncflow.gcode.motion import ArcMotion, DwellMotion, LinearMotion, RapidMotion, ShapeMotion
from ncflow.gcode.state import ModalState, Plane
from ncflow.gcode.tokenizer import ProgramLine, split_comment
from ncflow.gcode.toolpath import assemble_toolpath
from ncflow.utils.errors import EmptyProgramError
from ncflow.utils.formatting import format_number, format_signed

from .options import Controller
from .registry import RuleContext, Stage, register_rule
from .rules import walk_program

logger = logging.getLogger(__name__)

HEIDENHAIN = (Controller.HEIDENHAIN,)

_BLOCK_NUMBER = re.compile(r"^\s*\d+\s+")
_BEGIN_PGM = re.compile(r"^\s*(\d+\s+)?BEGIN PGM\b")

TCPM_ON = "FUNCTION TCPM F TCP AXIS POS PATHCTRL AXIS"
TCPM_OFF = "FUNCTION RESET TCPM"

# (cycle number, name) per canned cycle
CYCLE_DEFINITIONS: dict[CycleType, tuple[int, str]] = {
    CycleType.DRILLING: (200, "DRILLING"),
    CycleType.DRILLING_DWELL: (200, "DRILLING"),
    CycleType.PECK_DRILLING: (203, "UNIVERSAL DRILLING"),
    CycleType.RIGHT_TAPPING: (207, "RIGID TAPPING"),
    CycleType.BORING: (201, "REAMING"),
    CycleType.BORING_DWELL: (202, "BORING"),
    CycleType.BACK_BORING: (204, "BACK BORING"),
    CycleType.BORING_MANUAL_RETRACT: (202, "BORING"),
    CycleType.BORING_FEED_RETRACT: (201, "REAMING"),
}

_missing = set(CycleType) - set(CYCLE_DEFINITIONS)
if _missing:
    raise RuntimeError(f"No cycle definition for: {sorted(m.name for m in _missing)}")

_PLANE_LETTERS = {Plane.XY: ("X", "Y"), Plane.ZX: ("Z", "X"), Plane.YZ: ("Y", "Z")}


def is_klartext(lines: list[str]) -> bool:
    """True when the first non-blank line opens a conversational program."""
    for line in lines:
        if line.strip():
            return bool(_BEGIN_PGM.match(line))
    return False


def renumber(lines: list[str]) -> list[str]:
    """Number every block from 0; indented continuation lines stay unnumbered."""
    result = []
    number = 0
    for line in lines:
        if line[:1].isspace():
            result.append(line)
            continue
        result.append(f"{number} {_BLOCK_NUMBER.sub('', line, count=1)}")
        number += 1
    return result


def _strip_numbers(lines: list[str]) -> list[str]:
    return [line if line[:1].isspace() else _BLOCK_NUMBER.sub("", line, count=1) for line in lines]


def _q(number: int, value: float, label: str) -> str:
    return f"Q{number}={format_signed(value)} ;{label}"


def _cycle_definition(cycle: FixedCycle, feed: float | None, spindle: float | None, ctx: RuleContext) -> list[str]:
    p = cycle.params
    number, name = CYCLE_DEFINITIONS[cycle.cycle_type]
    depth = p.z - p.r
    plunge = feed if feed is not None else 100.0
    dwell = (p.dwell_time or 0.0) / 1000.0
    params = [_q(200, 0.0, "SET-UP CLEARANCE"), _q(201, depth, "DEPTH")]

    if number == 200:
        params += [
            _q(206, plunge, "FEED RATE FOR PLNGNG"),
            _q(202, abs(depth), "PLUNGING DEPTH"),
            _q(210, 0.0, "DWELL TIME AT TOP"),
            _q(203, p.r, "SURFACE COORDINATE"),
            _q(204, 0.0, "2ND SET-UP CLEARANCE"),
            _q(211, dwell, "DWELL TIME AT DEPTH"),
        ]
    elif number == 203:
        params += [
            _q(206, plunge, "FEED RATE FOR PLNGNG"),
            _q(202, p.peck_increment or abs(depth), "PLUNGING DEPTH"),
            _q(210, 0.0, "DWELL TIME AT TOP"),
            _q(203, p.r, "SURFACE COORDINATE"),
            _q(204, 0.0, "2ND SET-UP CLEARANCE"),
            _q(212, 0.0, "DECREMENT"),
            _q(213, 0.0, "BREAKS"),
            _q(205, 0.0, "MIN. PLUNGING DEPTH"),
            _q(211, dwell, "DWELL TIME AT DEPTH"),
            _q(208, 0.0, "RETRACTION FEED RATE"),
            _q(256, 0.0, "DIST FOR CHIP BRKNG"),
        ]
    elif number == 207:
        pitch = 0.0
        if feed is not None and spindle:
            pitch = feed / spindle
        else:
            ctx.warnings.append(f"Line {cycle.line_range[0]}: tapping pitch unknown without F and S; Q239 set to 0")
        params += [
            _q(239, pitch, "THREAD PITCH"),
            _q(203, p.r, "SURFACE COORDINATE"),
            _q(204, 0.0, "2ND SET-UP CLEARANCE"),
        ]
    elif number in (201, 202):
        params += [
            _q(206, plunge, "FEED RATE FOR PLNGNG"),
            _q(211, dwell, "DWELL TIME AT DEPTH"),
            _q(208, plunge, "RETRACTION FEED RATE"),
            _q(203, p.r, "SURFACE COORDINATE"),
            _q(204, 0.0, "2ND SET-UP CLEARANCE"),
        ]
    else:
        shift = p.shift or (0.0, 0.0)
        params += [
            _q(251, (shift[0] ** 2 + shift[1] ** 2) ** 0.5, "OFF-CENTER DISTANCE"),
            _q(206, plunge, "FEED RATE FOR PLNGNG"),
            _q(203, p.r, "SURFACE COORDINATE"),
            _q(204, 0.0, "2ND SET-UP CLEARANCE"),
        ]

    block = [f"CYCL DEF {number} {name} ~"]
    for i, param in enumerate(params):
        block.append(f"  {param}" + (" ~" if i < len(params) - 1 else ""))
    return block


class _Converter:
    """Builds the conversational body for one program."""

    def __init__(self, ctx: RuleContext):
        self.ctx = ctx
        self.body: list[str] = []
        self.tool_called = False
        self.spindle: float | None = None
        self.first_spindle: float | None = None

    def _coords(self, token: ProgramLine, state: ModalState, start, end) -> list[str]:
        coords = []
        for index, axis in enumerate("XYZ"):
            if axis not in token.axis_words:
                continue
            if state.is_incremental:
                coords.append(f"I{axis}{format_signed(end[index] - start[index])}")
            else:
                coords.append(f"{axis}{format_signed(end[index])}")
        return coords

    def _feed(self, token: ProgramLine) -> list[str]:
        feed = token.value("F")
        return [f"F{format_number(feed)}"] if feed is not None else []

    def line(self, token: ProgramLine, res) -> None:
        extras = [code for code in token.codes("M") if code not in ("M2", "M30")]

        tool = token.value("T")
        speed = token.value("S")
        if speed is not None:
            self.spindle = speed
            if self.first_spindle is None:
                self.first_spindle = speed
        if tool is not None:
            # TOOL CALL performs the change
            extras = [code for code in extras if code != "M6"]
            self.body.append(f"TOOL CALL {int(tool)} Z" + (f" S{format_number(speed)}" if speed is not None else ""))
            self.tool_called = True
        elif speed is not None and self.tool_called and res.motion is None and res.cycle is None:
            self.body.append(f"TOOL CALL Z S{format_number(speed)}")

        motion = res.motion
        if res.cycle is not None:
            self.cycle(res.cycle, res.state.feed_rate, extras)
        elif isinstance(motion, RapidMotion):
            self.path(["L", *self._coords(token, res.state, motion.start, motion.end), "R0", "FMAX"], extras)
        elif isinstance(motion, LinearMotion):
            self.path(["L", *self._coords(token, res.state, motion.start, motion.end), "R0", *self._feed(token)], extras)
        elif isinstance(motion, ArcMotion):
            self.arc(token, motion, extras)
        elif isinstance(motion, DwellMotion):
            seconds = (motion.seconds or 0.0) / 1000.0
            self.body.append("CYCL DEF 9.0 DWELL TIME")
            self.body.append(f"CYCL DEF 9.1 DWELL {format_number(seconds)}")
        elif isinstance(motion, ShapeMotion):
            self.ctx.warnings.append(
                f"Line {token.line_number}: {motion.kind.value} has no conversational equivalent; left as comment"
            )
            self.body.append(f"; {token.render(include_comment=False)}")
        elif extras:
            self.body.append(" ".join(["L", *extras]))

        if token.comment:
            self.body.append(f"; {token.comment}")

    def path(self, words: list[str], extras: list[str]) -> None:
        # An L block needs at least one coordinate
        if len(words) > 1 and words[1][:1] in ("X", "Y", "Z", "I"):
            self.body.append(" ".join([*words, *extras]))
        elif extras:
            self.body.append(" ".join(["L", *extras]))

    def arc(self, token: ProgramLine, motion: ArcMotion, extras: list[str]) -> None:
        first, second = _PLANE_LETTERS[motion.plane]
        rotation = "DR-" if motion.direction is Direction.CW else "DR+"
        a, b, normal = motion.plane.axes
        end = motion.end
        coords = [f"{first}{format_signed(end[a])}", f"{second}{format_signed(end[b])}"]
        if motion.helical_end is not None:
            coords.append(f"{'XYZ'[normal]}{format_signed(end[normal])}")

        if token.has("R") and not token.has("I", "J", "K"):
            radius = motion.radius if (token.value("R") or 0.0) >= 0 else -motion.radius
            words = ["CR", *coords, f"R{format_signed(radius)}", rotation, "R0", *self._feed(token)]
        else:
            self.body.append(
                f"CC {first}{format_signed(motion.center[0])} {second}{format_signed(motion.center[1])}"
            )
            words = ["C", *coords, rotation, "R0", *self._feed(token)]
        self.body.append(" ".join([*words, *extras]))

    def cycle(self, cycle: FixedCycle, feed: float | None, extras: list[str]) -> None:
        p = cycle.params
        if self.ctx.heidenhain.use_cycle_define and cycle.cycle_type is not None:
            self.body.extend(_cycle_definition(cycle, feed, self.spindle, self.ctx))
            self.body.append(" ".join(["L", f"X{format_signed(p.x)}", f"Y{format_signed(p.y)}", "R0", "FMAX", "M99", *extras]))
            return

        if cycle.cycle_type is None:
            self.ctx.warnings.append(
                f"Line {cycle.line_range[0]}: {cycle.code} has no cycle definition; expanded to path blocks"
            )
        phases, _ = cycle_points(cycle)
        for phase in phases:
            position = [f"X{format_signed(phase.x)}", f"Y{format_signed(phase.y)}", f"Z{format_signed(phase.z)}"]
            if phase.kind is PhaseKind.RAPID:
                self.body.append(" ".join(["L", *position, "R0", "FMAX"]))
            elif phase.kind is PhaseKind.FEED:
                self.body.append(" ".join(["L", *position, "R0", *([f"F{format_number(feed)}"] if feed else [])]))
            else:
                self.body.append("CYCL DEF 9.0 DWELL TIME")
                self.body.append(f"CYCL DEF 9.1 DWELL {format_number((phase.dwell or 0.0) / 1000.0)}")
        if extras:
            self.body.append(" ".join(["L", *extras]))


def _blank_form(lines: list[str]) -> list[str]:
    try:
        bounds = assemble_toolpath("\n".join(lines)).bounds
    except EmptyProgramError:
        bounds = None
    lo = list(bounds.minimum) if bounds else [0.0, 0.0, 0.0]
    hi = list(bounds.maximum) if bounds else [0.0, 0.0, 0.0]
    for i in range(3):
        if hi[i] - lo[i] < 1e-6:
            hi[i] = lo[i] + 1.0
    return [
        f"BLK FORM 0.1 Z X{format_signed(lo[0])} Y{format_signed(lo[1])} Z{format_signed(lo[2])}",
        f"BLK FORM 0.2 X{format_signed(hi[0])} Y{format_signed(hi[1])} Z{format_signed(hi[2])}",
    ]


@register_rule(
    "heidenhain_conversational_format",
    stage=Stage.CONTROLLER,
    description="Converted to Heidenhain conversational format",
    enabled=lambda ctx: ctx.heidenhain.use_conversational_format,
    controllers=HEIDENHAIN,
)
def heidenhain_conversational_format(lines: list[str], ctx: RuleContext) -> list[str]:
    if is_klartext(lines):
        return lines

    converter = _Converter(ctx)
    for raw, token, _, res in walk_program(lines):
        if token is None:
            _, comment = split_comment(raw)
            if comment:
                converter.body.append(f"; {comment}")
            continue
        converter.line(token, res)

    name = ctx.options.program_name.strip()
    header = [f"BEGIN PGM {name} MM", *_blank_form(lines)]
    if not converter.tool_called:
        speed = f" S{format_number(converter.first_spindle)}" if converter.first_spindle is not None else ""
        header.append(f"TOOL CALL 1 Z{speed}")
    logger.info(f"Converted {len(lines)} lines into {len(converter.body)} conversational blocks")
    return renumber([*header, *converter.body, f"END PGM {name} MM"])


def _definition_blocks(lines: list[str]) -> list[tuple[int, int]]:
    """(start, stop) slices of every CYCL DEF block with its continuation lines."""
    spans = []
    i = 0
    while i < len(lines):
        stripped = _BLOCK_NUMBER.sub("", lines[i], count=1)
        if not lines[i][:1].isspace() and stripped.startswith("CYCL DEF") and stripped.rstrip().endswith("~"):
            j = i + 1
            while j < len(lines) and lines[j][:1].isspace():
                j += 1
            spans.append((i, j))
            i = j
        else:
            i += 1
    return spans


@register_rule(
    "heidenhain_function_blocks",
    stage=Stage.CONTROLLER,
    description="Collapsed repeated cycle definitions into cycle calls",
    enabled=lambda ctx: ctx.heidenhain.use_function_blocks,
    controllers=HEIDENHAIN,
)
def heidenhain_function_blocks(lines: list[str], ctx: RuleContext) -> list[str]:
    if not is_klartext(lines):
        return lines
    plain = _strip_numbers(lines)
    drop: set[int] = set()
    active: list[str] | None = None
    for start, stop in _definition_blocks(plain):
        block = plain[start:stop]
        if block == active:
            drop.update(range(start, stop))
        active = block
    if not drop:
        return lines
    return renumber([line for i, line in enumerate(plain) if i not in drop])


@register_rule(
    "heidenhain_tcpm",
    stage=Stage.CONTROLLER,
    description="Added TCPM tool centre point management",
    enabled=lambda ctx: ctx.heidenhain.use_tcp,
    controllers=HEIDENHAIN,
)
def heidenhain_tcpm(lines: list[str], ctx: RuleContext) -> list[str]:
    plain = _strip_numbers(lines)
    if not is_klartext(lines) or any(line.startswith("FUNCTION TCPM") for line in plain):
        return lines
    tool = next((i for i, line in enumerate(plain) if line.startswith("TOOL CALL")), None)
    end = next((i for i in range(len(plain) - 1, -1, -1) if plain[i].startswith("END PGM")), None)
    if tool is None or end is None:
        ctx.warnings.append("TCPM not added: program has no TOOL CALL or END PGM block")
        return lines
    plain.insert(end, TCPM_OFF)
    plain.insert(tool + 1, TCPM_ON)
    return renumber(plain)
