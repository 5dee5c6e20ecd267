import logging
from datetime import date

from ncflow import config
from ncflow.cli.optimize import _log_level, build_parser, main, output_filename
from ncflow.config import TRACE
from ncflow.optimizer.options import Controller


def test_output_filename():
    assert output_filename(Controller.HEIDENHAIN, date(2024, 5, 1)) == "optimized_heidenhain_2024-05-01.h"
    assert output_filename(Controller.FANUC, date(2024, 5, 1)) == "optimized_fanuc_2024-05-01.nc"


def test_parser_defaults():
    args = build_parser().parse_args(["optimize", "part.nc"])
    assert args.controller == "generic"
    assert args.preset is None
    assert args.verbose == 0


def test_optimize_to_stdout(tmp_path, capsys, pocket_program):
    source = tmp_path / "part.nc"
    source.write_text(pocket_program)
    assert main(["optimize", str(source), "--controller", "fanuc"]) == 0
    out = capsys.readouterr().out
    assert "N20 G0 X0. Y0. Z5." in out


def test_optimize_to_output_dir(tmp_path, drill_program):
    source = tmp_path / "drill.nc"
    source.write_text(drill_program)
    out_dir = tmp_path / "out"
    code = main(["optimize", str(source), "--controller", "heidenhain", "--preset", "quality", "--output-dir", str(out_dir)])
    assert code == 0
    written = list(out_dir.iterdir())
    assert len(written) == 1
    assert written[0].suffix == ".h"
    assert written[0].read_text().startswith("0 BEGIN PGM WORKPIECE MM")


def test_toolpath_summary(tmp_path, capsys):
    source = tmp_path / "arc.nc"
    source.write_text("G2 X20 Y0 I10 J0 F100\n")
    assert main(["toolpath", str(source), "--resolution", "5", "--points"]) == 0
    out = capsys.readouterr().out
    assert "points: 7" in out
    assert "arc" in out


def test_errors_return_exit_code_2(tmp_path):
    source = tmp_path / "part.nc"
    source.write_text("G0 X1\n")
    assert main(["optimize", str(source), "--controller", "sinumerik"]) == 2
    assert main(["optimize", str(tmp_path / "missing.nc")]) == 2
    empty = tmp_path / "empty.nc"
    empty.write_text("(nothing)\n")
    assert main(["toolpath", str(empty)]) == 2


def test_trace_env_raises_default_log_level(monkeypatch):
    args = build_parser().parse_args(["optimize", "part.nc"])
    monkeypatch.setattr(config, "TRACE_ENABLED", True)
    assert _log_level(args) == TRACE
    args = build_parser().parse_args(["-q", "optimize", "part.nc"])
    assert _log_level(args) == logging.WARNING
