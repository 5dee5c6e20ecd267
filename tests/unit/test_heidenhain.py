import re

import pytest
from ncflow.optimizer.heidenhain import (
    TCPM_OFF,
    TCPM_ON,
    heidenhain_conversational_format,
    heidenhain_function_blocks,
    heidenhain_tcpm,
    is_klartext,
    renumber,
)
from ncflow.optimizer.options import Controller, OptionsBuilder
from ncflow.optimizer.registry import RuleContext

CONTOUR = [
    "G90 G17",
    "T1 M6",
    "S1000 M3",
    "G0 X0 Y0 Z10",
    "G1 Z-2 F200",
    "G1 X10",
    "G2 X20 Y0 I5 J0",
    "G0 Z10",
    "M30",
]


def ctx(**flags):
    return RuleContext(Controller.HEIDENHAIN, OptionsBuilder("heidenhain").heidenhain(**flags).build())


def body(lines):
    """Block text without block numbers."""
    return [re.sub(r"^\d+ ", "", line) for line in lines]


def convert(lines, context=None):
    return heidenhain_conversational_format(lines, context or ctx())


def test_program_frame_and_numbering():
    result = convert(CONTOUR)
    assert result[0] == "0 BEGIN PGM WORKPIECE MM"
    assert result[-1].endswith("END PGM WORKPIECE MM")
    numbers = [int(line.split(" ", 1)[0]) for line in result if not line[:1].isspace()]
    assert numbers == list(range(len(numbers)))
    assert is_klartext(result)


def test_blank_form_from_toolpath_bounds():
    blocks = body(convert(CONTOUR))
    assert blocks[1] == "BLK FORM 0.1 Z X+0 Y+0 Z-2"
    assert blocks[2] == "BLK FORM 0.2 X+20 Y+5 Z+10"


def test_motion_blocks():
    blocks = body(convert(CONTOUR))
    assert "TOOL CALL 1 Z" in blocks
    assert "L X+0 Y+0 Z+10 R0 FMAX" in blocks
    assert "L Z-2 R0 F200" in blocks
    assert "L X+10 R0" in blocks
    index = blocks.index("CC X+15 Y+0")
    assert blocks[index + 1] == "C X+20 Y+0 DR- R0"
    assert not any("M30" in block for block in blocks)


def test_tool_call_added_when_program_has_none():
    blocks = body(convert(["S800 M3", "G0 X1 Y1", "M30"]))
    assert "TOOL CALL 1 Z S800" in blocks


def test_radius_arc_and_incremental_moves():
    blocks = body(convert(["G0 X0 Y0", "G3 X10 Y10 R10 F100", "G91 G1 X5", "M30"]))
    assert "CR X+10 Y+10 R+10 DR+ R0 F100" in blocks
    assert "L IX+5 R0" in blocks


def test_drilling_cycle_definition_and_calls(drill_program):
    result = heidenhain_function_blocks(convert(drill_program.splitlines()), ctx())
    blocks = body(result)
    assert sum(1 for b in blocks if b.startswith("CYCL DEF 200 DRILLING")) == 1
    assert [b for b in blocks if b.endswith("M99")] == [
        "L X+10 Y+10 R0 FMAX M99",
        "L X+20 Y+10 R0 FMAX M99",
        "L X+30 Y+10 R0 FMAX M99",
    ]
    params = [b.strip() for b in blocks if b.startswith("  Q")]
    assert "Q201=-12 ;DEPTH ~" in params
    assert "Q203=+2 ;SURFACE COORDINATE ~" in params
    assert params[-1] == "Q211=+0 ;DWELL TIME AT DEPTH"


def test_function_blocks_is_idempotent(drill_program):
    once = heidenhain_function_blocks(convert(drill_program.splitlines()), ctx())
    assert heidenhain_function_blocks(once, ctx()) == once


def test_peck_cycle_maps_to_203():
    blocks = body(convert(["G0 X0 Y0 Z5", "G83 X1 Y1 Z-20 R2 Q4 F80", "G80", "M30"]))
    assert "CYCL DEF 203 UNIVERSAL DRILLING ~" in blocks
    assert "  Q202=+4 ;PLUNGING DEPTH ~" in blocks


def test_tapping_pitch_from_feed_and_speed():
    blocks = body(convert(["S500 M3", "G0 X0 Y0 Z5", "G84 X0 Y0 Z-10 R2 F750", "M30"]))
    assert "  Q239=+1.5 ;THREAD PITCH ~" in blocks


def test_tapping_without_speed_warns():
    context = ctx()
    convert(["G0 X0 Y0 Z5", "G84 X0 Y0 Z-10 R2 F750", "M30"], context)
    assert any("pitch" in warning for warning in context.warnings)


def test_cycles_expand_to_path_blocks_without_cycle_define():
    blocks = body(convert(["G0 X0 Y0 Z5", "G81 X1 Y1 Z-3 R1 F90", "G80", "M30"], ctx(use_cycle_define=False)))
    assert not any(b.startswith("CYCL DEF 2") for b in blocks)
    assert "L X+1 Y+1 Z+1 R0 FMAX" in blocks
    assert "L X+1 Y+1 Z-3 R0 F90" in blocks


def test_dwell_and_shapes():
    context = ctx()
    blocks = body(convert(["G0 X0 Y0", "G4 P500", "G13 D10", "M30"], context))
    assert "CYCL DEF 9.0 DWELL TIME" in blocks
    assert "CYCL DEF 9.1 DWELL 0.5" in blocks
    assert "; G13 D10" in blocks
    assert any("G13" in warning for warning in context.warnings)


def test_comments_are_carried_over():
    blocks = body(convert(["(SETUP)", "G0 X1 (approach)", "M30"]))
    assert "; SETUP" in blocks
    assert "; approach" in blocks


def test_conversational_input_left_unchanged():
    converted = convert(CONTOUR)
    assert convert(converted) == converted


def test_tcpm_wraps_tool_call_and_end():
    result = heidenhain_tcpm(convert(CONTOUR), ctx(use_tcp=True))
    blocks = body(result)
    assert blocks[blocks.index("TOOL CALL 1 Z") + 1] == TCPM_ON
    assert blocks[-2] == TCPM_OFF
    assert heidenhain_tcpm(result, ctx(use_tcp=True)) == result


def test_renumber_skips_continuation_lines():
    lines = ["BEGIN PGM A MM", "CYCL DEF 200 DRILLING ~", "  Q200=+0 ;SET-UP CLEARANCE", "7 END PGM A MM"]
    assert renumber(lines) == ["0 BEGIN PGM A MM", "1 CYCL DEF 200 DRILLING ~", "  Q200=+0 ;SET-UP CLEARANCE", "2 END PGM A MM"]


@pytest.mark.parametrize("lines, expected", [(["", "1 BEGIN PGM X MM"], True), (["G0 X1"], False), ([], False)])
def test_is_klartext(lines, expected):
    assert is_klartext(lines) is expected
