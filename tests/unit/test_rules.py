import math

import numpy as np
import pytest
from ncflow.optimizer.options import Controller, OptionsBuilder, default_options
from ncflow.optimizer.registry import RuleContext, Stage, _registry
from ncflow.optimizer.rules import (
    consolidate_gcodes,
    count_motion_lines,
    dominant_feed,
    fit_arc,
    optimize_feedrates,
    optimize_rapid_moves,
    remove_comments,
    remove_empty_lines,
    remove_redundant_codes,
    remove_redundant_moves,
    use_arc_optimization,
)


def ctx(controller="generic", **flags):
    return RuleContext(Controller.parse(controller), OptionsBuilder(controller).set(**flags).build())


def test_registry_orders_rules_by_stage():
    rules = _registry.rules_for(Controller.GENERIC)
    assert [r.stage for r in rules] == sorted(r.stage for r in rules)
    assert rules[0].name == "remove_empty_lines"
    assert all(r.stage is not Stage.CONTROLLER for r in rules)


def test_controller_rules_only_for_their_controller():
    fanuc = {r.name for r in _registry.rules_for(Controller.FANUC)}
    heidenhain = {r.name for r in _registry.rules_for(Controller.HEIDENHAIN)}
    assert "fanuc_compact_gcode" in fanuc and "fanuc_compact_gcode" not in heidenhain
    assert "heidenhain_conversational_format" in heidenhain and "heidenhain_conversational_format" not in fanuc


def test_remove_empty_lines():
    assert remove_empty_lines(["G0 X1", "", "  ", "M30"], ctx()) == ["G0 X1", "M30"]


def test_remove_comments_keeps_code():
    lines = ["(header)", "G0 X1 (move)", "; note", "M30"]
    assert remove_comments(lines, ctx()) == ["G0 X1", "M30"]


def test_remove_redundant_moves_drops_repeats():
    lines = ["G0 X10 Y0", "G1 X10 Y0 F100", "G1 X10 Y0", "G1 X20"]
    assert remove_redundant_moves(lines, ctx()) == ["G0 X10 Y0", "G1 X10 Y0 F100", "G1 X20"]


def test_first_explicit_rapid_is_kept():
    lines = ["G0 X0 Y0 Z0", "G0 X5"]
    assert remove_redundant_moves(lines, ctx()) == lines


def test_remove_redundant_codes():
    lines = ["G90 G17", "G1 X1 F100", "G90 G1 X2 F100", "G17", "G1 X3 F200"]
    assert remove_redundant_codes(lines, ctx()) == ["G90 G17", "G1 X1 F100", "G1 X2", "G1 X3 F200"]


def test_rapid_merge_keeps_end_point():
    lines = ["G0 X0 Y0 Z0", "G0 X5", "G0 X10", "G1 X12 F100"]
    assert optimize_rapid_moves(lines, ctx()) == ["G0 X0 Y0 Z0", "G0 X10", "G1 X12 F100"]


def test_rapid_merge_needs_same_direction():
    lines = ["G0 X0 Y0 Z0", "G0 X5", "G0 X0"]
    assert optimize_rapid_moves(lines, ctx()) == lines


def test_rapid_merge_adds_motion_word_to_axis_only_block():
    lines = ["G0 X0 Y0 Z0", "G0 X5", "X10"]
    assert optimize_rapid_moves(lines, ctx()) == ["G0 X0 Y0 Z0", "G0 X10"]


def test_consolidate_modal_blocks():
    lines = ["G90", "G17", "G21", "G90", "G0 X1"]
    assert consolidate_gcodes(lines, ctx()) == ["G90 G17 G21", "G90", "G0 X1"]


def test_feedrates_clamped_to_profile():
    lines = ["G1 X1 F50000", "G1 X2 F0.5", "G95", "G1 X3 F0.2"]
    result = optimize_feedrates(lines, ctx())
    assert result[0] == "G1 X1 F10000"
    assert result[1] == "G1 X2 F1"
    assert result[3] == "G1 X3 F0.2"


def test_fit_arc_recovers_circle():
    angles = np.linspace(0.0, math.pi / 2, 9)
    points = np.column_stack([5.0 + 20.0 * np.cos(angles), -3.0 + 20.0 * np.sin(angles)])
    center, radius, clockwise = fit_arc(points, refine=True)
    assert np.allclose(center, (5.0, -3.0), atol=1e-6)
    assert math.isclose(radius, 20.0, rel_tol=1e-6)
    assert clockwise is False
    assert fit_arc(points[::-1])[2] is True


def test_fit_arc_rejects_straight_and_zigzag_chains():
    assert fit_arc(np.array([[0, 0], [1, 0], [2, 0], [3, 0]], dtype=float)) is None
    assert fit_arc(np.array([[0, 0], [1, 1], [2, 0], [3, 1], [4, 0]], dtype=float)) is None


def test_arc_optimization_replaces_chord_chain(arc_chain_program):
    lines = arc_chain_program.splitlines()
    result = use_arc_optimization(lines, ctx())
    assert len(result) == len(lines) - 7
    assert result[3] == "G3 X0 Y20 I-20 J0"
    assert use_arc_optimization(result, ctx()) == result


def test_arc_optimization_restores_linear_mode(arc_chain_program):
    lines = arc_chain_program.splitlines()[:-1] + ["X-5", "M30"]
    result = use_arc_optimization(lines, ctx())
    assert result[-2] == "G1 X-5"


def test_arc_optimization_ignores_short_chains():
    lines = ["G0 X20 Y0", "G1 X19.3185 Y5.1764 F100", "G1 X17.3205 Y10"]
    assert use_arc_optimization(lines, ctx()) == lines


def test_helpers():
    lines = ["G1 X1 F100", "G1 X2 F100", "G1 X3 F300", "G90", "G81 X1 Y1 Z-1 R1"]
    assert count_motion_lines(lines) == 4
    assert dominant_feed(lines) == 100.0
    assert dominant_feed(["G0 X1"]) is None


@pytest.mark.parametrize(
    "rule",
    [remove_redundant_moves, remove_redundant_codes, optimize_rapid_moves, consolidate_gcodes, optimize_feedrates],
)
def test_rules_are_idempotent(rule, pocket_program):
    context = RuleContext(Controller.GENERIC, default_options("generic"))
    once = rule(pocket_program.splitlines(), context)
    assert rule(once, context) == once
