"""
cfgprof/report.py
═════════════════

Profiling report model and its plain-text renderers.

The model (:class:`ProcedureReport`, :class:`ProgramReport`) is pure data
derived from an analysis and a counter store:

    block view : block name            → block counter
    edge view  : "source -> target"    → edge counter, static edges only
    loop view  : loop member names     → counter of the loop's back edge

Procedures whose analysis failed have no entry.  Rendering is separate:

    render_report(report)     → the three profiling sections as text
    render_analysis(analysis) → dominator sets and loops of one procedure
    report.to_dict()          → JSON-ready structure
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Any, Dict, List, TextIO, Tuple

from cfgprof.counters import CounterStore
from cfgprof.ctrlflow_analysis import ProcedureAnalysis, ProgramAnalysis


# ═════════════════════════════════════════════════════════════════════════
#  MODEL
# ═════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class LoopCount:
    """Iteration count of one loop, labelled by its member block names."""

    blocks: Tuple[str, ...]
    header: str
    tail: str
    count: int

    @property
    def label(self) -> str:
        return " ".join(self.blocks)


@dataclass
class ProcedureReport:
    """The three reporting views of one procedure, in display order."""

    procedure: str
    block_counts: List[Tuple[str, int]] = field(default_factory=list)
    edge_counts: List[Tuple[str, int]] = field(default_factory=list)
    loop_counts: List[LoopCount] = field(default_factory=list)

    @classmethod
    def build(cls, analysis: ProcedureAnalysis, store: CounterStore) -> "ProcedureReport":
        counters = store[analysis.name]
        report = cls(analysis.name)
        for block in analysis.cfg.blocks:
            report.block_counts.append((block.name, counters.block_count(block.index)))
        for edge in analysis.cfg.edges:
            report.edge_counts.append(
                (edge.label, counters.edge_count(edge.source.index, edge.target.index))
            )
        for loop in analysis.loops:
            report.loop_counts.append(LoopCount(
                blocks=tuple(b.name for b in loop.ordered_blocks()),
                header=loop.header.name,
                tail=loop.tail.name,
                count=counters.edge_count(loop.tail.index, loop.header.index),
            ))
        return report

    def block_count(self, name: str) -> int:
        return dict(self.block_counts)[name]

    def edge_count(self, label: str) -> int:
        return dict(self.edge_counts)[label]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "procedure": self.procedure,
            "blocks": dict(self.block_counts),
            "edges": dict(self.edge_counts),
            "loops": [
                {"blocks": list(lc.blocks), "header": lc.header,
                 "tail": lc.tail, "count": lc.count}
                for lc in self.loop_counts
            ],
        }


@dataclass
class ProgramReport:
    """Per-procedure reports in source order."""

    procedures: Dict[str, ProcedureReport] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)

    def __getitem__(self, name: str) -> ProcedureReport:
        return self.procedures[name]

    def __contains__(self, name: object) -> bool:
        return name in self.procedures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "procedures": [r.to_dict() for r in self.procedures.values()],
            "failed": list(self.failed),
        }


def build_report(program: ProgramAnalysis, store: CounterStore) -> ProgramReport:
    """Derive the report model from *program* and the counters in *store*."""
    report = ProgramReport(failed=list(program.errors))
    for name, analysis in program.results.items():
        report.procedures[name] = ProcedureReport.build(analysis, store)
    return report


# ═════════════════════════════════════════════════════════════════════════
#  TEXT RENDERING
# ═════════════════════════════════════════════════════════════════════════


def write_report(report: ProgramReport, stream: TextIO) -> None:
    """Write the BASIC BLOCK / EDGE / LOOP profiling sections to *stream*."""
    stream.write("\nBASIC BLOCK PROFILING:\n")
    for proc in report.procedures.values():
        if not proc.block_counts:
            continue
        stream.write(f"\n{proc.procedure}:\n")
        for name, count in proc.block_counts:
            stream.write(f"{name}: {count}\n")

    stream.write("\nEDGE PROFILING:\n")
    for proc in report.procedures.values():
        if not proc.edge_counts:
            continue
        stream.write(f"\n{proc.procedure}:\n")
        for label, count in proc.edge_counts:
            stream.write(f"{label}: {count}\n")

    stream.write("\nLOOP PROFILING:\n")
    for proc in report.procedures.values():
        if not proc.loop_counts:
            continue
        stream.write(f"\n{proc.procedure}:\n")
        for lc in proc.loop_counts:
            stream.write(f"{lc.label} : {lc.count}\n")


def render_report(report: ProgramReport) -> str:
    buf = io.StringIO()
    write_report(report, buf)
    return buf.getvalue()


def render_analysis(analysis: ProcedureAnalysis, show_predecessors: bool = False) -> str:
    """Dump dominator sets (and loops, if any) of one procedure."""
    cfg = analysis.cfg
    lines: List[str] = [f"Procedure: {analysis.name}"]
    if show_predecessors:
        lines.append("")
        lines.append("Predecessors:")
        for block in cfg.blocks:
            preds = " ".join(p.name for p in sorted(cfg.predecessors_of(block)))
            lines.append(f"{block.name}: {preds}".rstrip())
    lines.append("")
    lines.append("DominatorSets:")
    for block in cfg.blocks:
        doms = " ".join(d.name for d in sorted(analysis.dominators[block]))
        lines.append(f"DomSet[{block.name}] => {doms}")
    if analysis.back_edges:
        lines.append("")
        lines.append("BackEdges:")
        for edge in analysis.back_edges:
            lines.append(edge.label)
    if analysis.loops:
        lines.append("")
        lines.append("Loops:")
        for loop in analysis.loops:
            lines.append(" ".join(b.name for b in loop.ordered_blocks()))
    if analysis.unreachable:
        lines.append("")
        lines.append("Unreachable: " + " ".join(b.name for b in analysis.unreachable))
    return "\n".join(lines) + "\n"
