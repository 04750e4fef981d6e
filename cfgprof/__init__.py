"""
cfgprof: Control-Flow Profiling Analysis
==========================================

Static control-flow analysis of procedure CFGs and the counter addressing
needed to profile them: per-block execution counts, per-edge execution
counts and per-loop iteration counts.

Core modules
------------
errors
    Exception hierarchy, error codes and ``UnreachableBlockWarning``.
config
    ``AnalysisConfig`` with environment overrides.
ctrlflow_graph
    Block naming/indexing, edge set and predecessor map per procedure.
ctrlflow_analysis
    Dominator sets, back edges, natural loops, per-program driver.
counters
    Block/edge counter layout, counter store, activation frames, replay.
report
    Report model (block, edge and loop views) and text renderers.
cfg_text
    Textual CFG and trace sources (parsimonious grammar).

Quick start
-----------
>>> from cfgprof import parse_program, analyze_program
>>> program = analyze_program(parse_program('''
...     proc main {
...         entry: loop
...         loop: loop, exit
...         exit:
...     }
... '''))
>>> [lp.header.name for lp in program["main"].loops]
['loop']

Package layout
--------------
::

    cfgprof/
    ├── __init__.py            ← this file
    ├── __main__.py
    ├── main.py
    ├── errors.py
    ├── config.py
    ├── ctrlflow_graph.py
    ├── ctrlflow_analysis.py
    ├── counters.py
    ├── report.py
    └── cfg_text.py
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__license__ = "MIT"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "CfgProfError",
        "CFGError",
        "MalformedCFGError",
        "NameCollisionError",
        "FixpointError",
        "CFGSyntaxError",
        "TraceError",
        "UnreachableBlockWarning",
    ],
    "config": [
        "AnalysisConfig",
    ],
    "ctrlflow_graph": [
        "SourceBlock",
        "SourceProcedure",
        "Block",
        "Edge",
        "ProcedureCFG",
        "build_cfg",
        "index_predecessors",
    ],
    "ctrlflow_analysis": [
        "DominatorSolver",
        "Loop",
        "ProcedureAnalysis",
        "ProgramAnalysis",
        "classify_back_edges",
        "reconstruct_loops",
        "analyze_cfg",
        "analyze_procedure",
        "analyze_program",
    ],
    "counters": [
        "CounterLayout",
        "ProgramLayout",
        "CounterStore",
        "ActivationFrame",
        "Activation",
        "Profiler",
        "InstrumentationSite",
        "instrumentation_plan",
        "replay_trace",
    ],
    "report": [
        "ProcedureReport",
        "ProgramReport",
        "LoopCount",
        "build_report",
        "render_report",
        "render_analysis",
    ],
    "cfg_text": [
        "parse_program",
        "parse_trace",
        "load_program",
        "load_trace",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"cfgprof: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            raise AttributeError(f"cfgprof.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, obj)
        __all__.append(name)

    # Expose the submodule itself so that cfgprof.counters.CounterLayout
    # works in addition to cfgprof.CounterLayout.
    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names


def list_submodules() -> List[str]:
    """Return the names of all submodules re-exported by the package."""
    return sorted(_CORE_MODULES)


__all__ += ["list_submodules", "__version__"]

# ---------------------------------------------------------------------------
# TYPE_CHECKING block
# ---------------------------------------------------------------------------

if TYPE_CHECKING:
    from .errors import (
        CfgProfError as CfgProfError,
        CFGError as CFGError,
        MalformedCFGError as MalformedCFGError,
        NameCollisionError as NameCollisionError,
        FixpointError as FixpointError,
        CFGSyntaxError as CFGSyntaxError,
        TraceError as TraceError,
        UnreachableBlockWarning as UnreachableBlockWarning,
    )
    from .config import AnalysisConfig as AnalysisConfig
    from .ctrlflow_graph import (
        SourceBlock as SourceBlock,
        SourceProcedure as SourceProcedure,
        Block as Block,
        Edge as Edge,
        ProcedureCFG as ProcedureCFG,
        build_cfg as build_cfg,
        index_predecessors as index_predecessors,
    )
    from .ctrlflow_analysis import (
        DominatorSolver as DominatorSolver,
        Loop as Loop,
        ProcedureAnalysis as ProcedureAnalysis,
        ProgramAnalysis as ProgramAnalysis,
        classify_back_edges as classify_back_edges,
        reconstruct_loops as reconstruct_loops,
        analyze_cfg as analyze_cfg,
        analyze_procedure as analyze_procedure,
        analyze_program as analyze_program,
    )
    from .counters import (
        CounterLayout as CounterLayout,
        ProgramLayout as ProgramLayout,
        CounterStore as CounterStore,
        ActivationFrame as ActivationFrame,
        Activation as Activation,
        Profiler as Profiler,
        InstrumentationSite as InstrumentationSite,
        instrumentation_plan as instrumentation_plan,
        replay_trace as replay_trace,
    )
    from .report import (
        ProcedureReport as ProcedureReport,
        ProgramReport as ProgramReport,
        LoopCount as LoopCount,
        build_report as build_report,
        render_report as render_report,
        render_analysis as render_analysis,
    )
    from .cfg_text import (
        parse_program as parse_program,
        parse_trace as parse_trace,
        load_program as load_program,
        load_trace as load_trace,
    )
