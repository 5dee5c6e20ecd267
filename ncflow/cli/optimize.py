"""
CLI entry point for the ncflow command.

Subcommands:
- optimize: rewrite a program for a controller and report the result
- toolpath: resolve a program into waypoints and summarize it
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

from ncflow import config
from ncflow.config import TRACE
from ncflow.gcode import ExpansionSettings, assemble_toolpath
from ncflow.optimizer import PRESETS, Controller, OptionsBuilder, optimize
from ncflow.utils.errors import EmptyProgramError, OptionsError, UnknownControllerError

logger = logging.getLogger(__name__)


def output_filename(controller: Controller, day: date | None = None) -> str:
    """``optimized_<controller>_<YYYY-MM-DD>`` plus the controller's extension."""
    day = day or date.today()
    return f"optimized_{controller.value}_{day.isoformat()}{controller.file_extension}"


def _log_level(args) -> int:
    if args.log_level:
        return TRACE if args.log_level == "TRACE" else getattr(logging, args.log_level)
    if args.verbose >= 3:
        return TRACE
    if args.verbose >= 2:
        return logging.DEBUG
    if args.verbose == 1:
        return logging.INFO
    if args.quiet:
        return logging.WARNING
    if config.TRACE_ENABLED:
        return TRACE
    return getattr(logging, config.LOG_LEVEL_DEFAULT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ncflow", description="NC program interpreter and dialect optimizer")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase verbosity; -v=INFO, -vv=DEBUG, -vvv=TRACE")
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="Enable quiet logging (WARNING level)")
    parser.add_argument("--log-level", choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Set specific log level")
    sub = parser.add_subparsers(dest="command", required=True)

    opt = sub.add_parser("optimize", help="Rewrite a program for a controller")
    opt.add_argument("file", type=Path, help="Program file")
    opt.add_argument("--controller", default="generic",
                     help=f"Target controller ({', '.join(c.value for c in Controller)})")
    opt.add_argument("--preset", choices=sorted(PRESETS), help="Start from an option preset")
    opt.add_argument("--program-name", help="Program name for conversational output")
    opt.add_argument("--output-dir", type=Path,
                     help="Write the result into this directory instead of stdout")

    tp = sub.add_parser("toolpath", help="Resolve a program into waypoints")
    tp.add_argument("file", type=Path, help="Program file")
    tp.add_argument("--resolution", type=float, default=config.ARC_RESOLUTION,
                    help="Arc/shape segment length")
    tp.add_argument("--points", action="store_true", help="Print every waypoint")
    return parser


def _run_optimize(args) -> int:
    controller = Controller.parse(args.controller)
    builder = OptionsBuilder(controller)
    if args.preset:
        builder.preset(args.preset)
    if args.program_name:
        builder.program_name(args.program_name)
    result = optimize(args.file.read_text(), controller, builder.build())

    if args.output_dir:
        args.output_dir.mkdir(parents=True, exist_ok=True)
        target = args.output_dir / output_filename(controller)
        target.write_text(result.code + "\n")
        logger.info(f"Wrote {target}")
    else:
        sys.stdout.write(result.code + "\n")

    stats = result.stats
    logger.info(
        f"{stats.original_lines} -> {stats.optimized_lines} lines ({stats.reduction_percent:g}% fewer), "
        f"~{stats.estimated_time_reduction:g}s saved"
    )
    for improvement in result.improvements:
        logger.info(f"Improvement: {improvement}")
    for warning in result.validation.warnings:
        logger.warning(warning)
    for error in result.validation.errors:
        logger.error(error)
    return 0 if result.validation.is_valid else 1


def _run_toolpath(args) -> int:
    toolpath = assemble_toolpath(args.file.read_text(), ExpansionSettings(arc_resolution=args.resolution))
    if args.points:
        for point in toolpath:
            sys.stdout.write(
                f"{point.line_number}\t{point.kind.value}\t{point.x:.4f}\t{point.y:.4f}\t{point.z:.4f}\n"
            )
    sys.stdout.write(f"points: {len(toolpath)}\ncycles: {len(toolpath.cycles)}\n")
    if toolpath.bounds is not None:
        sys.stdout.write(f"bounds: {toolpath.bounds.minimum} .. {toolpath.bounds.maximum}\n")
    for warning in toolpath.warnings:
        logger.warning(warning)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the command line."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=_log_level(args),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    try:
        if args.command == "optimize":
            return _run_optimize(args)
        return _run_toolpath(args)
    except (EmptyProgramError, UnknownControllerError, OptionsError, ValueError) as e:
        logger.error(str(e))
        return 2
    except OSError as e:
        logger.error(f"Cannot access {args.file}: {e}")
        return 2


def main_entry():
    """Entry point for the ncflow command."""
    sys.exit(main())


if __name__ == "__main__":
    main_entry()
