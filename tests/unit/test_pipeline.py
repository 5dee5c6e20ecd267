import pytest
from ncflow.optimizer.options import PRESETS, Controller, OptionsBuilder, default_options, preset_options
from ncflow.optimizer.pipeline import optimize
from ncflow.optimizer.validation import validate_program
from ncflow.utils.errors import EmptyProgramError, OptionsError, UnknownControllerError


def test_fanuc_end_to_end(pocket_program):
    result = optimize(pocket_program, "fanuc")
    assert result.validation.is_valid
    assert result.stats.original_lines == 14
    assert result.stats.optimized_lines < result.stats.original_lines
    assert result.stats.reduction_percent > 0
    assert result.stats.estimated_time_reduction == pytest.approx(3.0)
    assert "Removed moves that do not change the tool position" in result.improvements
    assert "N50" not in result.code
    assert "N20 G0 X0. Y0. Z5." in result.code.splitlines()


def test_second_pass_finds_nothing(pocket_program):
    first = optimize(pocket_program, "fanuc")
    second = optimize(first.code, "fanuc")
    assert second.improvements == ()
    assert second.stats.reduction_percent == 0
    assert second.stats.estimated_time_reduction == 0
    assert second.code == first.code


def test_heidenhain_end_to_end(drill_program):
    result = optimize(drill_program, Controller.HEIDENHAIN)
    lines = result.code.splitlines()
    assert lines[0] == "0 BEGIN PGM WORKPIECE MM"
    assert lines[-1].endswith("END PGM WORKPIECE MM")
    assert result.validation.is_valid
    assert "Converted to Heidenhain conversational format" in result.improvements
    again = optimize(result.code, "heidenhain")
    assert again.improvements == ()
    assert again.code == result.code


def test_other_controllers_run_generic_rules_only(pocket_program):
    result = optimize(pocket_program, "okuma")
    assert "G0 X0 Y0 Z5" in result.code
    assert not any(line.startswith("0 BEGIN PGM") for line in result.code.splitlines())


def test_result_to_dict_uses_camel_case(pocket_program):
    data = optimize(pocket_program, "generic").to_dict()
    assert set(data) == {"code", "stats", "validation", "improvements"}
    assert set(data["stats"]) == {"originalLines", "optimizedLines", "reductionPercent", "estimatedTimeReduction"}
    assert set(data["validation"]) == {"isValid", "errors", "warnings"}


def test_unknown_controller_raises():
    with pytest.raises(UnknownControllerError):
        optimize("G0 X1", "sinumerik")


@pytest.mark.parametrize("source", [None, "", "  \n", "(comment only)\n; another"])
def test_empty_program_raises(source):
    with pytest.raises(EmptyProgramError):
        optimize(source, "fanuc")


def test_options_for_another_controller_raise():
    with pytest.raises(OptionsError):
        optimize("G0 X1", "fanuc", default_options("heidenhain"))


def test_envelope_violation_is_an_error():
    options = OptionsBuilder("generic").envelope((-5, -5, -5), (5, 5, 5)).build()
    result = optimize("G0 X10\nG0 X0\nM30", "generic", options)
    assert not result.validation.is_valid
    assert result.validation.errors[0].startswith("Line 1:")


def test_feed_over_ceiling_is_an_error_when_not_clamped():
    options = OptionsBuilder("generic").set(optimize_feedrates=False).build()
    result = optimize("G1 X1 F50000\nM30", "generic", options)
    assert any("exceeds controller maximum" in e for e in result.validation.errors)


def test_clamped_feed_passes_validation():
    result = optimize("G1 X1 F50000\nM30", "generic")
    assert result.validation.is_valid
    assert "F10000" in result.code


def test_missing_program_end_is_a_warning():
    result = optimize("G0 X1\nG1 X2 F100", "generic")
    assert result.validation.is_valid
    assert any("no end code" in w for w in result.validation.warnings)


def test_resolver_warnings_reach_validation():
    result = optimize("G1 X1 F100\nG2 X5 Y5\nM30", "generic")
    assert any(w.startswith("Line 2:") for w in result.validation.warnings)


def test_safety_checks_disabled():
    options = OptionsBuilder("generic").set(safety_checks=False).envelope((-1, -1, -1), (1, 1, 1)).build()
    result = optimize("G0 X10", "generic", options)
    assert result.validation.is_valid
    assert result.validation.errors == ()


def test_fanuc_long_block_warning():
    source = "G0 X1 (" + "A" * 140 + ")\nM30"
    result = optimize(source, "fanuc")
    assert any("over the 128 limit" in w for w in result.validation.warnings)


def test_conversational_input_for_gcode_controller_is_left_alone():
    converted = optimize("G0 X1 Y1\nM30", "heidenhain").code
    result = optimize(converted, "fanuc")
    assert result.code == converted
    assert any("cannot be rewritten" in w for w in result.validation.warnings)


def test_validate_program_reports_missing_end_pgm():
    lines = ["0 BEGIN PGM A MM", "1 TOOL CALL 1 Z", "2 L X+1 R0 FMAX"]
    report = validate_program(lines, lines, Controller.HEIDENHAIN, default_options("heidenhain"))
    assert not report.is_valid
    assert any("END PGM" in e for e in report.errors)


def test_drilling_program_end_to_end():
    source = "G90\nG0 X0 Y0 Z5\nG1 Z-5 F100\nG81 X20 Y20 Z-10 R0\nG0 Z5"
    result = optimize(source, "fanuc")
    assert result.stats.optimized_lines <= result.stats.original_lines
    assert result.validation.is_valid


@pytest.mark.parametrize("preset", list(PRESETS))
@pytest.mark.parametrize("controller", list(Controller))
def test_every_preset_is_stable_on_its_own_output(pocket_program, preset, controller):
    options = preset_options(preset, controller)
    first = optimize(pocket_program, controller, options)
    second = optimize(first.code, controller, options)
    assert second.improvements == ()
    assert second.stats.reduction_percent == 0
    assert second.code == first.code


def test_speed_preset_leaves_mode_blocks_bare():
    result = optimize("G0 X0 Y0\nG1 X5 F100\nM30", "fanuc", preset_options("speed", "fanuc"))
    lines = result.code.splitlines()
    assert "G05.1 Q1" in lines
    assert not any("(" in line for line in lines)


def test_clamped_feed_is_not_restated():
    result = optimize("G1 X1 F10000\nG1 X2 F50000\nM30", "generic")
    assert result.code.splitlines()[1] == "G1 X2"
    again = optimize(result.code, "generic")
    assert again.improvements == ()
    assert again.code == result.code
