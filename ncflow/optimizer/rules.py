"""
Generic rewrite rules applied for every controller.

Each rule takes the program as a list of lines and returns a new list; it
never mutates its input. Rules must be idempotent: running one on its own
output changes nothing.
"""

import logging
import math
import re
from collections import Counter
from collections.abc import Iterator

import numpy as np
from scipy.optimize import least_squares

from ncflow import config
from ncflow.gcode.motion import LinearMotion, RapidMotion, Resolution, resolve_line
from ncflow.gcode.state import ModalState, Plane, PositioningMode
from ncflow.gcode.tokenizer import COMMENT_PATTERN, ProgramLine, Word, tokenize
from ncflow.utils.formatting import format_number

from .registry import RuleContext, Stage, register_rule

logger = logging.getLogger(__name__)

MODAL_GROUPS = {
    "G17": "plane",
    "G18": "plane",
    "G19": "plane",
    "G20": "units",
    "G21": "units",
    "G40": "cutter_comp",
    "G49": "length_comp",
    "G54": "wcs",
    "G55": "wcs",
    "G56": "wcs",
    "G57": "wcs",
    "G58": "wcs",
    "G59": "wcs",
    "G80": "cycle",
    "G90": "distance",
    "G91": "distance",
    "G94": "feed_mode",
    "G95": "feed_mode",
    "G98": "return_level",
    "G99": "return_level",
}

G0_WORD = Word("G", 0.0, "0")
G1_WORD = Word("G", 1.0, "1")


def walk_program(lines: list[str]) -> Iterator[tuple[str, ProgramLine | None, ModalState, Resolution | None]]:
    """
    Yield (raw, token, state before, resolution) for every line.

    Lines that do not tokenize (blank, comment-only) come through with
    token and resolution set to None.
    """
    state = ModalState()
    for index, raw in enumerate(lines, start=1):
        token = tokenize(raw, index)
        if token is None:
            yield raw, None, state, None
            continue
        resolution = resolve_line(token, state)
        yield raw, token, state, resolution
        state = resolution.state


def with_motion_word(token: ProgramLine, word: Word) -> ProgramLine:
    return token.with_words((word, *token.words))


def count_motion_lines(lines: list[str]) -> int:
    return sum(1 for _, _, _, res in walk_program(lines) if res is not None and (res.motion or res.cycle))


def dominant_feed(lines: list[str]) -> float | None:
    """Most frequent F value among the program's feed words."""
    feeds = Counter()
    for index, raw in enumerate(lines, start=1):
        token = tokenize(raw, index)
        if token is not None and token.value("F") is not None and token.value("F") > 0:
            feeds[token.value("F")] += 1
    if not feeds:
        return None
    return feeds.most_common(1)[0][0]


# ---------------------------------------------------------------------------
# Stage 1: normalize
# ---------------------------------------------------------------------------


@register_rule(
    "remove_empty_lines",
    stage=Stage.NORMALIZE,
    description="Removed empty lines",
    enabled=lambda ctx: ctx.options.remove_empty_lines,
)
def remove_empty_lines(lines: list[str], ctx: RuleContext) -> list[str]:
    return [line for line in lines if line.strip()]


@register_rule(
    "remove_comments",
    stage=Stage.NORMALIZE,
    description="Removed comments",
    enabled=lambda ctx: ctx.options.remove_comments,
)
def remove_comments(lines: list[str], ctx: RuleContext) -> list[str]:
    result = []
    for line in lines:
        if not COMMENT_PATTERN.search(line):
            result.append(line)
            continue
        code = re.sub(r"[ \t]{2,}", " ", COMMENT_PATTERN.sub("", line)).strip()
        if code:
            result.append(code)
    return result


# ---------------------------------------------------------------------------
# Stage 2: redundancy elimination
# ---------------------------------------------------------------------------

_PLAIN_MOVE_LETTERS = frozenset("GXYZF")


def _is_plain_move(token: ProgramLine) -> bool:
    return (
        token.letters <= _PLAIN_MOVE_LETTERS
        and set(token.codes("G")) <= {"G0", "G1"}
        and token.has("X", "Y", "Z")
        and token.corner is None
    )


@register_rule(
    "remove_redundant_moves",
    stage=Stage.REDUNDANCY,
    description="Removed moves that do not change the tool position",
    enabled=lambda ctx: ctx.options.remove_redundant_moves,
)
def remove_redundant_moves(lines: list[str], ctx: RuleContext) -> list[str]:
    result = []
    for raw, token, before, res in walk_program(lines):
        if (
            token is not None
            and _is_plain_move(token)
            and isinstance(res.motion, (RapidMotion, LinearMotion))
            and res.cycle is None
            and res.state == before
        ):
            logger.debug(f"Line {token.line_number}: dropping redundant move {raw.strip()!r}")
            continue
        result.append(raw)
    return result


@register_rule(
    "remove_redundant_codes",
    stage=Stage.REDUNDANCY,
    description="Removed restated modal codes and feed words",
    enabled=lambda ctx: ctx.options.remove_redundant_codes,
)
def remove_redundant_codes(lines: list[str], ctx: RuleContext) -> list[str]:
    result = []
    positioning: str | None = None
    plane: str | None = None
    for raw, token, before, res in walk_program(lines):
        if token is None:
            result.append(raw)
            continue

        drop: list[str] = []
        for code in token.codes("G"):
            if code in ("G90", "G91"):
                if code == positioning:
                    drop.append(code)
                positioning = code
            elif code in ("G17", "G18", "G19"):
                if code == plane:
                    drop.append(code)
                plane = code
        feed = token.value("F")
        if feed is not None and before.feed_rate is not None and feed == before.feed_rate:
            drop.append("F")

        if not drop:
            result.append(raw)
            continue
        trimmed = token.without(*drop)
        if not trimmed.words and not trimmed.comment and trimmed.corner is None:
            logger.debug(f"Line {token.line_number}: dropping restated {drop}")
            continue
        result.append(trimmed.render())
    return result


# ---------------------------------------------------------------------------
# Stage 3: consolidation
# ---------------------------------------------------------------------------


def _continues(p0, p1, p2) -> bool:
    """True when p0 -> p1 -> p2 is one straight run in a single direction."""
    v1 = np.subtract(p1, p0)
    v2 = np.subtract(p2, p1)
    n1 = np.linalg.norm(v1)
    n2 = np.linalg.norm(v2)
    if n1 < 1e-9 or n2 < 1e-9:
        return False
    return bool(np.linalg.norm(np.cross(v1, v2)) <= 1e-6 * n1 * n2 and np.dot(v1, v2) > 0)


def _is_plain_rapid(token: ProgramLine, before: ModalState, res: Resolution) -> bool:
    return (
        token.letters <= frozenset("GXYZ")
        and set(token.codes("G")) <= {"G0"}
        and isinstance(res.motion, RapidMotion)
        and res.cycle is None
        and not res.warnings
        and token.comment is None
        and token.block_number is None
        and before.positioning is PositioningMode.ABSOLUTE
        and res.state.positioning is PositioningMode.ABSOLUTE
    )


@register_rule(
    "optimize_rapid_moves",
    stage=Stage.CONSOLIDATION,
    description="Merged collinear rapid moves",
    enabled=lambda ctx: ctx.options.optimize_rapid_moves,
)
def optimize_rapid_moves(lines: list[str], ctx: RuleContext) -> list[str]:
    result: list[str] = []
    # (start, end) of the rapid that is currently the last output line
    pending: tuple | None = None
    for raw, token, before, res in walk_program(lines):
        if token is None or not _is_plain_rapid(token, before, res):
            result.append(raw)
            pending = None
            continue

        end = res.state.position
        if pending is not None:
            start, middle = pending
            omitted_fixed = all(
                abs(start[i] - middle[i]) < 1e-9 for i, axis in enumerate("XYZ") if axis not in token.axis_words
            )
            if omitted_fixed and _continues(start, middle, end):
                result.pop()
                merged = token if "G0" in token.codes("G") else with_motion_word(token, G0_WORD)
                result.append(merged.render())
                pending = (start, end)
                continue

        result.append(raw)
        pending = (before.position, end)
    return result


def _modal_only_codes(token: ProgramLine | None) -> list[str] | None:
    if token is None or not token.words or token.comment or token.block_number is not None:
        return None
    if token.letters != {"G"}:
        return None
    codes = list(token.codes("G"))
    if not all(code in MODAL_GROUPS for code in codes):
        return None
    groups = [MODAL_GROUPS[code] for code in codes]
    if len(groups) != len(set(groups)):
        return None
    return codes


@register_rule(
    "consolidate_gcodes",
    stage=Stage.CONSOLIDATION,
    description="Consolidated consecutive modal codes onto one line",
    enabled=lambda ctx: ctx.options.consolidate_gcodes,
)
def consolidate_gcodes(lines: list[str], ctx: RuleContext) -> list[str]:
    result: list[str] = []
    merged: list[str] | None = None
    for index, raw in enumerate(lines, start=1):
        codes = _modal_only_codes(tokenize(raw, index))
        if codes is None:
            merged = None
            result.append(raw)
            continue
        if merged is not None:
            used = {MODAL_GROUPS[code] for code in merged}
            if not used & {MODAL_GROUPS[code] for code in codes}:
                merged.extend(codes)
                result[-1] = " ".join(merged)
                continue
        merged = codes
        result.append(raw)
    return result


# ---------------------------------------------------------------------------
# Stage 4: feed and arc optimization
# ---------------------------------------------------------------------------


@register_rule(
    "optimize_feedrates",
    stage=Stage.FEED_ARC,
    description="Clamped feed rates to the controller range",
    enabled=lambda ctx: ctx.options.optimize_feedrates,
)
def optimize_feedrates(lines: list[str], ctx: RuleContext) -> list[str]:
    profile = ctx.profile
    per_revolution = False
    # Feed in effect after the previous output block
    active: float | None = None
    result = []
    for index, raw in enumerate(lines, start=1):
        token = tokenize(raw, index)
        if token is None:
            result.append(raw)
            continue
        codes = token.codes("G")
        if "G95" in codes:
            per_revolution = True
        elif "G94" in codes:
            per_revolution = False

        feed = token.value("F")
        if feed is None:
            result.append(raw)
            continue
        low = 0.0 if per_revolution else profile.min_feed
        clamped = min(max(feed, low), profile.max_feed)
        restated = clamped == active and ctx.options.remove_redundant_codes
        active = clamped
        if clamped == feed and not restated:
            result.append(raw)
            continue
        if clamped != feed:
            logger.info(f"Line {index}: feed {feed:g} clamped to {clamped:g}")
        if restated:
            logger.debug(f"Line {index}: feed {clamped:g} already active after clamping")
            trimmed = token.without("F")
            if trimmed.words or trimmed.comment or trimmed.corner is not None:
                result.append(trimmed.render())
            continue
        text = format_number(clamped)
        words = tuple(Word("F", clamped, text) if w.letter == "F" else w for w in token.words)
        result.append(token.with_words(words).render())
    return result


def _kasa_fit(points: np.ndarray) -> tuple[np.ndarray, float] | None:
    """Algebraic circle fit; None for (near) collinear points."""
    x, y = points[:, 0], points[:, 1]
    a = np.column_stack([x, y, np.ones_like(x)])
    b = -(x**2 + y**2)
    solution, _, rank, _ = np.linalg.lstsq(a, b, rcond=None)
    if rank < 3:
        return None
    center = np.array([-solution[0] / 2.0, -solution[1] / 2.0])
    r2 = center @ center - solution[2]
    if r2 <= 0:
        return None
    return center, math.sqrt(r2)


def _refine_fit(points: np.ndarray, center: np.ndarray, radius: float) -> tuple[np.ndarray, float]:
    def residual(params):
        return np.hypot(points[:, 0] - params[0], points[:, 1] - params[1]) - params[2]

    fit = least_squares(residual, x0=[center[0], center[1], radius])
    return fit.x[:2], float(fit.x[2])


def fit_arc(points: np.ndarray, refine: bool = False) -> tuple[np.ndarray, float, bool] | None:
    """
    Fit a circle through consecutive XY points.

    Returns:
        (center, radius, clockwise) when every point lies within
        ARC_FIT_TOLERANCE of one circle traversed monotonically by less
        than a full turn, else None.
    """
    if len(points) < 3:
        return None
    fitted = _kasa_fit(points)
    if fitted is None:
        return None
    center, radius = fitted
    if refine:
        center, radius = _refine_fit(points, center, radius)
    if radius > config.ARC_FIT_MAX_RADIUS:
        return None
    deviation = np.abs(np.hypot(points[:, 0] - center[0], points[:, 1] - center[1]) - radius)
    if deviation.max() > config.ARC_FIT_TOLERANCE:
        return None

    chords = np.diff(points, axis=0)
    turns = chords[:-1, 0] * chords[1:, 1] - chords[:-1, 1] * chords[1:, 0]
    if np.any(np.abs(turns) < 1e-12) or not (np.all(turns > 0) or np.all(turns < 0)):
        return None
    angles = np.unwrap(np.arctan2(points[:, 1] - center[1], points[:, 0] - center[0]))
    if abs(angles[-1] - angles[0]) >= 2.0 * math.pi * 0.99:
        return None
    return center, radius, bool(turns[0] < 0)


def _arc_candidate(token: ProgramLine | None, before: ModalState, res: Resolution | None) -> bool:
    return (
        token is not None
        and token.letters <= frozenset("GXYZF")
        and set(token.codes("G")) <= {"G1"}
        and token.has("X", "Y")
        and token.comment is None
        and token.block_number is None
        and token.corner is None
        and isinstance(res.motion, LinearMotion)
        and not res.warnings
        and before.positioning is PositioningMode.ABSOLUTE
        and before.plane is Plane.XY
        and res.state.z == before.z
    )


@register_rule(
    "use_arc_optimization",
    stage=Stage.FEED_ARC,
    description="Replaced near-circular linear chains with arcs",
    enabled=lambda ctx: ctx.options.use_arc_optimization,
)
def use_arc_optimization(lines: list[str], ctx: RuleContext) -> list[str]:
    entries = list(walk_program(lines))
    result: list[str] = []
    restore_g1 = False
    i = 0
    while i < len(entries):
        raw, token, before, res = entries[i]
        if _arc_candidate(token, before, res):
            points = [before.position[:2], res.state.position[:2]]
            j = i + 1
            while j < len(entries):
                _, next_token, next_before, next_res = entries[j]
                if not _arc_candidate(next_token, next_before, next_res) or next_token.has("F"):
                    break
                trial = points + [next_res.state.position[:2]]
                if fit_arc(np.array(trial)) is None:
                    break
                points = trial
                j += 1

            fit = fit_arc(np.array(points), refine=True) if len(points) - 1 >= config.ARC_FIT_MIN_POINTS else None
            if fit is not None:
                center, radius, clockwise = fit
                start, end = points[0], points[-1]
                words = [
                    "G2" if clockwise else "G3",
                    f"X{format_number(end[0])}",
                    f"Y{format_number(end[1])}",
                    f"I{format_number(center[0] - start[0])}",
                    f"J{format_number(center[1] - start[1])}",
                ]
                feed = next((w for w in token.words if w.letter == "F"), None)
                if feed is not None:
                    words.append(feed.render())
                logger.debug(
                    f"Lines {i + 1}-{j}: {j - i} chords fitted to radius {radius:.4f} arc"
                )
                result.append(" ".join(words))
                restore_g1 = True
                i = j
                continue

        # The emitted arc leaves G2/G3 modal; the next modal feed move needs G1 back
        if restore_g1 and token is not None:
            explicit = set(token.codes("G")) & {"G0", "G1", "G2", "G3", "G80"}
            if explicit or res.cycle is not None:
                restore_g1 = False
            elif isinstance(res.motion, LinearMotion) and token.dominant_code() is None:
                raw = with_motion_word(token, G1_WORD).render()
                restore_g1 = False
        result.append(raw)
        i += 1
    return result
