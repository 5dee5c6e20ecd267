import pytest
from ncflow.gcode.motion import ArcMotion, LinearMotion, RapidMotion, resolve_line
from ncflow.gcode.state import ModalState, Plane, PositioningMode, apply_modal_codes, resolve_target
from ncflow.gcode.tokenizer import tokenize


def run(lines, state=None):
    state = state or ModalState()
    results = []
    for i, raw in enumerate(lines, start=1):
        token = tokenize(raw, i)
        if token is None:
            continue
        res = resolve_line(token, state)
        results.append(res)
        state = res.state
    return state, results


def test_initial_state():
    state = ModalState()
    assert state.positioning is PositioningMode.ABSOLUTE
    assert state.plane is Plane.XY
    assert state.position == (0.0, 0.0, 0.0)
    assert state.feed_rate is None
    assert state.motion_code is None


def test_absolute_target_keeps_missing_axes():
    state = ModalState(position=(1.0, 2.0, 3.0))
    assert resolve_target(state, tokenize("X10")) == (10.0, 2.0, 3.0)


def test_incremental_target_adds_deltas():
    state = ModalState(positioning=PositioningMode.INCREMENTAL, position=(1.0, 2.0, 3.0))
    assert resolve_target(state, tokenize("X10 Z-1")) == (11.0, 2.0, 2.0)


@pytest.mark.parametrize("code, plane", [("G17", Plane.XY), ("G18", Plane.ZX), ("G19", Plane.YZ)])
def test_plane_selection(code, plane):
    assert apply_modal_codes(ModalState(), tokenize(code)).plane is plane


def test_modal_codes_apply_before_motion_on_same_block():
    state, results = run(["G91 G0 X5", "X5"])
    assert state.position == (10.0, 0.0, 0.0)
    assert state.positioning is PositioningMode.INCREMENTAL


def test_modal_only_block_keeps_position():
    start = ModalState(position=(4.0, 5.0, 6.0))
    state, results = run(["G90", "G17", "F300"], start)
    assert state.position == (4.0, 5.0, 6.0)
    assert state.feed_rate == 300.0
    assert all(r.motion is None and r.cycle is None for r in results)


def test_axis_only_block_repeats_motion_mode():
    state, results = run(["G1 X1 F100", "X2", "Y3"])
    assert all(isinstance(r.motion, LinearMotion) for r in results)
    assert state.position == (2.0, 3.0, 0.0)
    assert results[-1].motion.feed_rate == 100.0


def test_axis_words_without_motion_mode_become_rapid_with_warning():
    _, results = run(["X5"])
    assert isinstance(results[0].motion, RapidMotion)
    assert results[0].warnings


def test_g80_cancels_cycle_and_motion_mode():
    state, _ = run(["G81 X1 Y1 Z-5 R1", "G80"])
    assert state.cycle is None
    assert state.motion_code is None


def test_motion_code_cancels_cycle():
    state, results = run(["G81 X1 Y1 Z-5 R1", "G0 X5"])
    assert state.cycle is None
    assert isinstance(results[-1].motion, RapidMotion)


def test_block_motion_code_stays_modal_over_lower_priority_code():
    state, results = run(["G2 G1 X10 Y0 I5 J0 F100", "X20 Y0 I5 J0"])
    assert state.motion_code == "G2"
    assert all(isinstance(r.motion, ArcMotion) for r in results)
    assert state.position == (20.0, 0.0, 0.0)
