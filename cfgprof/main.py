#!/usr/bin/env python3
"""cfgprof/main.py: CLI entry-point for cfgprof.

Usage examples
--------------
    # Dominator sets, back edges and loops of every procedure
    cfgprof analyze program.cfg

    # Replay a block trace and print the profiling report
    cfgprof profile program.cfg --trace run.trace

    # Same, as JSON
    cfgprof profile program.cfg --trace run.trace --format json

    # Instrumentation sites (block and edge slot addressing)
    cfgprof plan program.cfg

    # Graphviz export of one procedure
    cfgprof dot program.cfg --procedure main -o main.dot

    # Show version and exit
    cfgprof --version

Exit codes
----------
    0   Success.
    1   One or more procedures failed analysis and ``--strict`` is set.
    2   Infrastructure failure (missing file, syntax error, bad trace).

The module doubles as ``python -m cfgprof`` via the companion
``cfgprof/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from cfgprof import __version__
from cfgprof.cfg_text import load_program, load_trace
from cfgprof.config import AnalysisConfig
from cfgprof.counters import Profiler, instrumentation_plan, replay_trace
from cfgprof.ctrlflow_analysis import ProgramAnalysis, analyze_program
from cfgprof.errors import CFGSyntaxError, TraceError
from cfgprof.report import build_report, render_analysis, write_report

_log = logging.getLogger("cfgprof")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``cfgprof`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    root = logging.getLogger("cfgprof")
    root.setLevel(level)
    if not any(getattr(h, "_cfgprof_cli", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        handler._cfgprof_cli = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _config_from_args(args: argparse.Namespace) -> AnalysisConfig:
    config = AnalysisConfig.from_env().override(
        max_passes=args.max_passes,
        strict=True if args.strict else None,
        warn_unreachable=False if args.no_warn_unreachable else None,
    )
    for problem in config.validate():
        _log.error("invalid configuration: %s", problem)
        raise SystemExit(EXIT_INFRA)
    return config


def _analyze_file(raw: str, config: AnalysisConfig) -> ProgramAnalysis:
    path = _resolve_path(raw, "CFG source")
    _log.info("Parsing CFG source: %s", path)
    try:
        procedures = load_program(path)
    except CFGSyntaxError as exc:
        _log.error("%s", exc)
        raise SystemExit(EXIT_INFRA)
    program = analyze_program(procedures, config)
    _log.info(
        "Analysed %d procedure(s), %d failed",
        len(program.results), len(program.errors),
    )
    return program


def _exit_code(program: ProgramAnalysis, config: AnalysisConfig) -> int:
    if program.errors and config.strict:
        return EXIT_ERROR
    return EXIT_OK


# ===========================================================================
# Sub-command implementations
# ===========================================================================

def cmd_analyze(args: argparse.Namespace) -> int:
    """Print dominator sets, back edges and loops of every procedure."""
    config = _config_from_args(args)
    program = _analyze_file(args.cfg_file, config)

    out = _open_output(args.output)
    try:
        for analysis in program.results.values():
            out.write(render_analysis(analysis, show_predecessors=args.predecessors))
            out.write("\n")
        for name, exc in program.errors.items():
            out.write(f"Procedure: {name}\nskipped: {exc}\n\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return _exit_code(program, config)


def cmd_profile(args: argparse.Namespace) -> int:
    """Replay a block trace and print the profiling report."""
    config = _config_from_args(args)
    program = _analyze_file(args.cfg_file, config)

    trace_path = _resolve_path(args.trace, "trace")
    try:
        trace = load_trace(trace_path)
        profiler = Profiler(program)
        replay_trace(profiler, trace)
    except (CFGSyntaxError, TraceError) as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    report = build_report(program, profiler.store)
    out = _open_output(args.output)
    try:
        if args.format == "json":
            out.write(json.dumps(report.to_dict(), indent=2) + "\n")
        else:
            _log.info("Report emitted for entry procedure %s", config.entry_procedure)
            write_report(report, out)
    finally:
        if out is not sys.stdout:
            out.close()
    return _exit_code(program, config)


def cmd_plan(args: argparse.Namespace) -> int:
    """List the instrumentation site of every block."""
    config = _config_from_args(args)
    program = _analyze_file(args.cfg_file, config)

    out = _open_output(args.output)
    try:
        for site in instrumentation_plan(program):
            out.write(
                f"{site.procedure}\t{site.block}\tindex={site.block_index}\t"
                f"block_slot={site.block_slot}\t"
                f"edge_slot=prev*{site.stride}+{site.block_index}\n"
            )
    finally:
        if out is not sys.stdout:
            out.close()
    return _exit_code(program, config)


def cmd_dot(args: argparse.Namespace) -> int:
    """Export analysed CFGs as Graphviz DOT."""
    config = _config_from_args(args)
    program = _analyze_file(args.cfg_file, config)

    names: List[str] = list(program.results)
    if args.procedure is not None:
        if args.procedure not in program.results:
            _log.error("procedure not analysed: %s", args.procedure)
            return EXIT_INFRA
        names = [args.procedure]

    out = _open_output(args.output)
    try:
        for name in names:
            analysis = program.results[name]
            out.write(analysis.cfg.to_dot(back_edges=analysis.back_edges) + "\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return _exit_code(program, config)


# ===========================================================================
# Argument parser construction
# ===========================================================================

def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "cfg_file",
        metavar="CFG",
        help="CFG source file.",
    )
    p.add_argument(
        "-o", "--output",
        default=None,
        metavar="FILE",
        help='Output file ("-" or omit for stdout).',
    )
    p.add_argument(
        "--max-passes",
        type=int,
        default=None,
        metavar="N",
        help="Ceiling on dominator fixpoint passes.",
    )
    p.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 if any procedure fails analysis.",
    )
    p.add_argument(
        "--no-warn-unreachable",
        action="store_true",
        help="Do not emit warnings for blocks without predecessors.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cfgprof",
        description="Dominator, loop and profiling-counter analysis of procedure CFGs.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v INFO, -vv DEBUG).",
    )
    subparsers = parser.add_subparsers(title="commands", metavar="COMMAND")

    # --- analyze -----------------------------------------------------------
    p_analyze = subparsers.add_parser(
        "analyze",
        help="Print dominator sets, back edges and loops.",
    )
    _add_common_args(p_analyze)
    p_analyze.add_argument(
        "--predecessors",
        action="store_true",
        help="Also print each block's predecessors.",
    )
    p_analyze.set_defaults(func=cmd_analyze)

    # --- profile -----------------------------------------------------------
    p_profile = subparsers.add_parser(
        "profile",
        help="Replay a block trace and print the profiling report.",
    )
    _add_common_args(p_profile)
    p_profile.add_argument(
        "-t", "--trace",
        required=True,
        metavar="TRACE",
        help="Trace file: '<proc>: <block> <block> ...' per activation.",
    )
    p_profile.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default="text",
        help="Report format (default: text).",
    )
    p_profile.set_defaults(func=cmd_profile)

    # --- plan --------------------------------------------------------------
    p_plan = subparsers.add_parser(
        "plan",
        help="List instrumentation sites and counter slots.",
    )
    _add_common_args(p_plan)
    p_plan.set_defaults(func=cmd_plan)

    # --- dot ---------------------------------------------------------------
    p_dot = subparsers.add_parser(
        "dot",
        help="Export CFGs as Graphviz DOT.",
    )
    _add_common_args(p_dot)
    p_dot.add_argument(
        "-p", "--procedure",
        default=None,
        metavar="NAME",
        help="Only export this procedure.",
    )
    p_dot.set_defaults(func=cmd_dot)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the cfgprof CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    # No subcommand given → print help.
    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except ValueError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
