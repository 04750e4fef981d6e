# cfgprof/ctrlflow_analysis.py
"""
Control-flow analysis for cfgprof.

This module reasons about the *structure* of a procedure's control flow:
dominance, back edges and natural loops.  Everything here is pure
computation over a :class:`~cfgprof.ctrlflow_graph.ProcedureCFG`; nothing
executes the program and nothing touches counter values.

Principal analyses
------------------
- DominatorSolver       ← iterative dominator-set fixpoint
- classify_back_edges   ← edges whose target dominates their source
- reconstruct_loops     ← natural loop body per back edge
- analyze_procedure     ← the three above, plus unreachable-block reporting
- analyze_program       ← per-procedure result-or-error driver

Usage example
-------------
    from cfgprof.cfg_text import parse_program
    from cfgprof.ctrlflow_analysis import analyze_program

    program = analyze_program(parse_program(source))
    for name, analysis in program.results.items():
        for loop in analysis.loops:
            print(name, loop.header.name, sorted(b.name for b in loop.blocks))
    for name, err in program.errors.items():
        print(f"{name}: {err}")

References
----------
[1] Aho, Lam, Sethi, Ullman – "Compilers: Principles, Techniques, &
    Tools", 2e, §9.6 (natural loops), §9.7 (dominators).
[2] Cooper, Harvey, Kennedy – "A Simple, Fast Dominance Algorithm", 2001.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import (
    Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple,
)

from cfgprof.config import AnalysisConfig
from cfgprof.ctrlflow_graph import Block, Edge, ProcedureCFG, SourceProcedure, build_cfg
from cfgprof.errors import (
    CFGError, CfgProfError, ErrorCodes, FixpointError, UnreachableBlockWarning,
)

logger = logging.getLogger(__name__)

DominatorMap = Dict[Block, FrozenSet[Block]]


# ===================================================================
#  1. Dominator sets
# ===================================================================


class DominatorSolver:
    """
    Iterative dominator-set computation.

    Every non-entry block starts at the full block universe and the entry at
    ``{entry}``.  Each pass recomputes, for every non-entry block ``b``::

        Dom(b) = {b} ∪ ⋂ { Dom(p) | p ∈ preds(b) }

    with the intersection over no predecessors taken as the universe, so an
    unreachable block keeps the universe.  Passes repeat until one changes
    nothing.  Sets only ever shrink, so at most ``N + 1`` passes run
    whatever the visiting *order*.

    Parameters
    ----------
    cfg:
        The procedure graph.
    order:
        Blocks to visit in each pass; defaults to index order.  The entry
        block is skipped wherever it appears.
    max_passes:
        Optional pass ceiling.  Exceeding it raises :class:`FixpointError`.
    """

    def __init__(
        self,
        cfg: ProcedureCFG,
        order: Optional[Sequence[Block]] = None,
        max_passes: Optional[int] = None,
    ):
        self.cfg = cfg
        self.order: Tuple[Block, ...] = tuple(order) if order is not None else cfg.blocks
        self.max_passes = max_passes
        self.passes = 0
        self._dom: Optional[DominatorMap] = None

    def _initial(self) -> DominatorMap:
        universe = self.cfg.universe
        dom: DominatorMap = {b: universe for b in self.cfg.blocks}
        dom[self.cfg.entry] = frozenset({self.cfg.entry})
        return dom

    def iterate(self) -> Iterator[DominatorMap]:
        """Yield a snapshot of the dominator map after initialisation and
        after every pass, finishing with the fixpoint."""
        entry = self.cfg.entry
        universe = self.cfg.universe
        dom = self._initial()
        self.passes = 0
        yield dict(dom)

        changed = True
        while changed:
            if self.max_passes is not None and self.passes >= self.max_passes:
                raise FixpointError(
                    f"dominator sets still changing after {self.passes} passes",
                    procedure=self.cfg.name,
                )
            changed = False
            self.passes += 1
            for b in self.order:
                if b == entry:
                    continue
                new = universe
                for p in self.cfg.predecessors_of(b):
                    new = new & dom[p]
                new = new | {b}
                if new != dom[b]:
                    dom[b] = new
                    changed = True
            yield dict(dom)

        self._dom = dom
        logger.debug(
            "dominators for %s settled after %d pass(es)", self.cfg.name, self.passes
        )

    def solve(self) -> DominatorMap:
        """Run to the fixpoint and return the dominator map."""
        if self._dom is None:
            for _ in self.iterate():
                pass
        return dict(self._dom)

    def dominates(self, a: Block, b: Block) -> bool:
        """``True`` if *a* dominates *b*."""
        return a in self.solve()[b]


# ===================================================================
#  2. Back edges
# ===================================================================


def classify_back_edges(edges: Iterable[Edge], dominators: Mapping[Block, FrozenSet[Block]]) -> List[Edge]:
    """Return the edges ``u -> v`` with ``v ∈ Dom(u)``, in edge order."""
    return [e for e in edges if e.target in dominators[e.source]]


# ===================================================================
#  3. Natural loops
# ===================================================================


@dataclass(frozen=True)
class Loop:
    """
    Natural loop of a single back edge.

    Attributes
    ----------
    header : target of the back edge; dominates every block of the loop
    tail   : source of the back edge
    blocks : every block that reaches ``tail`` without passing ``header``,
             plus ``header`` itself
    """

    header: Block
    tail: Block
    blocks: FrozenSet[Block]

    @property
    def back_edge(self) -> Edge:
        return Edge(self.tail, self.header)

    @property
    def size(self) -> int:
        return len(self.blocks)

    def ordered_blocks(self) -> List[Block]:
        """Loop members in index order."""
        return sorted(self.blocks)

    def __contains__(self, block: object) -> bool:
        return block in self.blocks


def natural_loop(cfg: ProcedureCFG, back_edge: Edge) -> Loop:
    """Reconstruct the natural loop of *back_edge* by a reverse walk."""
    tail, header = back_edge
    body = {header, tail}
    stack: List[Block] = [] if tail == header else [tail]
    while stack:
        m = stack.pop()
        for pred in cfg.predecessors_of(m):
            if pred not in body:
                body.add(pred)
                stack.append(pred)
    return Loop(header=header, tail=tail, blocks=frozenset(body))


def reconstruct_loops(cfg: ProcedureCFG, back_edges: Iterable[Edge]) -> List[Loop]:
    """One :class:`Loop` per back edge, in back-edge order.

    Back edges sharing a header are *not* merged; their loops may overlap.
    """
    return [natural_loop(cfg, be) for be in back_edges]


# ===================================================================
#  4. Per-procedure driver
# ===================================================================


@dataclass(frozen=True)
class ProcedureAnalysis:
    """All control-flow facts for one procedure."""

    cfg: ProcedureCFG
    dominators: Mapping[Block, FrozenSet[Block]]
    back_edges: Tuple[Edge, ...]
    loops: Tuple[Loop, ...]
    unreachable: Tuple[Block, ...] = ()
    passes: int = 0

    @property
    def name(self) -> str:
        return self.cfg.name

    def dominators_of(self, name: str) -> FrozenSet[Block]:
        return self.dominators[self.cfg.block(name)]

    def is_back_edge(self, edge: Edge) -> bool:
        return edge in self.back_edges

    def loops_with_header(self, name: str) -> List[Loop]:
        header = self.cfg.block(name)
        return [lp for lp in self.loops if lp.header == header]


def analyze_cfg(cfg: ProcedureCFG, config: Optional[AnalysisConfig] = None) -> ProcedureAnalysis:
    """Compute dominators, back edges and loops for an already built *cfg*."""
    config = config or AnalysisConfig()

    unreachable = tuple(cfg.unreachable_blocks())
    for b in unreachable:
        logger.warning(
            "%s: block %s has no predecessors; its dominator set is the full "
            "block set", cfg.name, b.name,
        )
        if config.warn_unreachable:
            warnings.warn(UnreachableBlockWarning(cfg.name, b.name), stacklevel=2)

    solver = DominatorSolver(cfg, max_passes=config.max_passes)
    dominators = solver.solve()
    back_edges = tuple(classify_back_edges(cfg.edges, dominators))
    loops = tuple(reconstruct_loops(cfg, back_edges))
    logger.debug(
        "%s: %d block(s), %d edge(s), %d back edge(s), %d loop(s)",
        cfg.name, len(cfg.blocks), len(cfg.edges), len(back_edges), len(loops),
    )
    return ProcedureAnalysis(
        cfg=cfg,
        dominators=dominators,
        back_edges=back_edges,
        loops=loops,
        unreachable=unreachable,
        passes=solver.passes,
    )


def analyze_procedure(procedure: SourceProcedure, config: Optional[AnalysisConfig] = None) -> ProcedureAnalysis:
    """Build the CFG of *procedure* and analyse it.

    Structural problems raise :class:`~cfgprof.errors.CFGError`.
    """
    return analyze_cfg(build_cfg(procedure), config)


# ===================================================================
#  5. Whole-program driver
# ===================================================================


@dataclass
class ProgramAnalysis:
    """
    Result-or-error per procedure, in source order.

    Attributes
    ----------
    results : procedure name → :class:`ProcedureAnalysis`
    errors  : procedure name → the error that stopped it
    """

    results: Dict[str, ProcedureAnalysis] = field(default_factory=dict)
    errors: Dict[str, CfgProfError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def __getitem__(self, name: str) -> ProcedureAnalysis:
        return self.results[name]

    def __contains__(self, name: object) -> bool:
        return name in self.results


def analyze_program(
    procedures: Iterable[SourceProcedure],
    config: Optional[AnalysisConfig] = None,
) -> ProgramAnalysis:
    """Analyse every procedure independently.

    A :class:`CFGError` or :class:`FixpointError` in one procedure is
    recorded under its name and the remaining procedures are still
    analysed.

    Procedure names must be unique; a repeated name raises
    :class:`CfgProfError` (``CFGP-3002``) before anything is analysed.
    """
    config = config or AnalysisConfig()
    procedures = list(procedures)
    seen: Set[str] = set()
    for proc in procedures:
        if proc.name in seen:
            raise CfgProfError(
                f"procedure '{proc.name}' defined twice",
                code=ErrorCodes.DUPLICATE_PROCEDURE,
                procedure=proc.name,
            )
        seen.add(proc.name)

    program = ProgramAnalysis()
    for proc in procedures:
        logger.debug("analysing procedure %s", proc.name)
        try:
            program.results[proc.name] = analyze_procedure(proc, config)
        except (CFGError, FixpointError) as exc:
            if exc.procedure is None:
                exc.procedure = proc.name
            logger.warning("skipping procedure %s: %s", proc.name, exc.message)
            program.errors[proc.name] = exc
    return program
