"""
cfgprof/counters.py
===================

Counter addressing for block and edge profiling, and an in-process
instrumentation runtime that drives those counters.

The analysis core only decides *where* a count lives:

* :class:`CounterLayout`: per procedure, a 1-D block space of size ``N``
  (slot ``i`` for block ``i``) and a 2-D edge space of size ``N × N``
  (slot ``i * N + j`` for the transition ``i -> j``).  The edge space
  covers every ordered pair, not only static edges, because the previous
  block is tracked at run time.
* :class:`ProgramLayout`: gives each procedure a disjoint base offset so
  slots of different procedures never alias in a flat address space.

The runtime side owns the mutable state:

* :class:`CounterStore`: the process-scoped tables, one pair per
  procedure.
* :class:`ActivationFrame`: one execution of a procedure.  It holds the
  "previously executed block" value and performs the two increments an
  instrumented block entry would perform.
* :func:`replay_trace`: drives frames from a recorded block trace.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from cfgprof.ctrlflow_analysis import ProcedureAnalysis, ProgramAnalysis
from cfgprof.errors import TraceError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Addressing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CounterLayout:
    """Slot addressing for one procedure with ``size`` blocks."""

    procedure: str
    size: int

    @property
    def block_slots(self) -> int:
        return self.size

    @property
    def edge_slots(self) -> int:
        return self.size * self.size

    def _check(self, index: int) -> None:
        if not 0 <= index < self.size:
            raise IndexError(
                f"block index {index} out of range for procedure "
                f"'{self.procedure}' with {self.size} block(s)"
            )

    def block_slot(self, index: int) -> int:
        self._check(index)
        return index

    def edge_slot(self, source: int, target: int) -> int:
        self._check(source)
        self._check(target)
        return source * self.size + target

    def edge_pair(self, slot: int) -> Tuple[int, int]:
        """Inverse of :meth:`edge_slot`."""
        if not 0 <= slot < self.edge_slots:
            raise IndexError(f"edge slot {slot} out of range for '{self.procedure}'")
        return divmod(slot, self.size)

    @classmethod
    def for_analysis(cls, analysis: ProcedureAnalysis) -> "CounterLayout":
        return cls(analysis.name, len(analysis.cfg.blocks))


class ProgramLayout:
    """Flat, non-overlapping slot ranges for every procedure of a program.

    Block slots of all procedures come first, in procedure order, followed
    by all edge slots.
    """

    def __init__(self, layouts: Iterable[CounterLayout]):
        self.layouts: Dict[str, CounterLayout] = {}
        self._block_base: Dict[str, int] = {}
        self._edge_base: Dict[str, int] = {}
        layouts = list(layouts)
        offset = 0
        for layout in layouts:
            self.layouts[layout.procedure] = layout
            self._block_base[layout.procedure] = offset
            offset += layout.block_slots
        for layout in layouts:
            self._edge_base[layout.procedure] = offset
            offset += layout.edge_slots
        self.total_slots = offset

    @classmethod
    def for_program(cls, program: ProgramAnalysis) -> "ProgramLayout":
        return cls(CounterLayout.for_analysis(a) for a in program.results.values())

    def block_address(self, procedure: str, index: int) -> int:
        return self._block_base[procedure] + self.layouts[procedure].block_slot(index)

    def edge_address(self, procedure: str, source: int, target: int) -> int:
        return self._edge_base[procedure] + self.layouts[procedure].edge_slot(source, target)


# ---------------------------------------------------------------------------
# Instrumentation plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InstrumentationSite:
    """What an instrumenter needs to emit for one block.

    The edge slot for a run-time previous block ``p`` is
    ``p * stride + block_index``.
    """

    procedure: str
    block: str
    block_index: int
    block_slot: int
    stride: int

    def edge_slot(self, previous: int) -> int:
        return previous * self.stride + self.block_index


def instrumentation_plan(program: ProgramAnalysis) -> Iterator[InstrumentationSite]:
    """Yield one :class:`InstrumentationSite` per block of every analysed
    procedure, procedures in source order and blocks in index order."""
    for analysis in program.results.values():
        layout = CounterLayout.for_analysis(analysis)
        for block in analysis.cfg.blocks:
            yield InstrumentationSite(
                procedure=analysis.name,
                block=block.name,
                block_index=block.index,
                block_slot=layout.block_slot(block.index),
                stride=layout.size,
            )


# ---------------------------------------------------------------------------
# Runtime counter store
# ---------------------------------------------------------------------------


class ProcedureCounters:
    """The two counter tables of one procedure."""

    __slots__ = ("layout", "blocks", "edges")

    def __init__(self, layout: CounterLayout):
        self.layout = layout
        self.blocks: List[int] = [0] * layout.block_slots
        self.edges: List[int] = [0] * layout.edge_slots

    def block_count(self, index: int) -> int:
        return self.blocks[self.layout.block_slot(index)]

    def edge_count(self, source: int, target: int) -> int:
        return self.edges[self.layout.edge_slot(source, target)]

    def reset(self) -> None:
        self.blocks = [0] * self.layout.block_slots
        self.edges = [0] * self.layout.edge_slots


class CounterStore:
    """Process-scoped counters addressed by ``(procedure, slot)``."""

    def __init__(self, layouts: Iterable[CounterLayout] = ()):
        self._tables: Dict[str, ProcedureCounters] = {}
        for layout in layouts:
            self.allocate(layout)

    @classmethod
    def for_program(cls, program: ProgramAnalysis) -> "CounterStore":
        return cls(CounterLayout.for_analysis(a) for a in program.results.values())

    def allocate(self, layout: CounterLayout) -> ProcedureCounters:
        if layout.procedure in self._tables:
            raise ValueError(f"counters for '{layout.procedure}' already allocated")
        table = ProcedureCounters(layout)
        self._tables[layout.procedure] = table
        return table

    def __getitem__(self, procedure: str) -> ProcedureCounters:
        return self._tables[procedure]

    def __contains__(self, procedure: object) -> bool:
        return procedure in self._tables

    def procedures(self) -> List[str]:
        return list(self._tables)

    def reset(self) -> None:
        for table in self._tables.values():
            table.reset()


# ---------------------------------------------------------------------------
# Activation frames
# ---------------------------------------------------------------------------


class ActivationFrame:
    """One execution of a procedure.

    :meth:`enter` is what an instrumented block does first: bump its block
    counter and the ``(previous, current)`` edge counter.  :meth:`leave`
    is what it does right before its terminator: record itself as the
    previous block.  The first block entered in a frame has no previous
    block and bumps no edge counter.
    """

    __slots__ = ("counters", "previous")

    def __init__(self, counters: ProcedureCounters):
        self.counters = counters
        self.previous: Optional[int] = None

    def enter(self, index: int) -> None:
        layout = self.counters.layout
        self.counters.blocks[layout.block_slot(index)] += 1
        if self.previous is not None:
            self.counters.edges[layout.edge_slot(self.previous, index)] += 1

    def leave(self, index: int) -> None:
        self.counters.layout.block_slot(index)
        self.previous = index

    def step(self, index: int) -> None:
        """Enter and leave block *index*."""
        self.enter(index)
        self.leave(index)


class Profiler:
    """Instrumentation runtime for an analysed program."""

    def __init__(self, program: ProgramAnalysis, store: Optional[CounterStore] = None):
        self.program = program
        self.store = store if store is not None else CounterStore.for_program(program)

    @contextmanager
    def activation(self, procedure: str) -> Iterator[ActivationFrame]:
        if procedure not in self.store:
            raise TraceError(f"no counters allocated for procedure '{procedure}'",
                             procedure=procedure)
        yield ActivationFrame(self.store[procedure])

    def run_blocks(self, procedure: str, blocks: Sequence[str]) -> None:
        """Execute one activation visiting *blocks* (by name) in order.

        Every name is resolved before the first step, so an activation
        naming an unknown block leaves the counters unchanged.
        """
        if procedure not in self.program:
            raise TraceError(f"unknown procedure '{procedure}'", procedure=procedure)
        cfg = self.program[procedure].cfg
        indices: List[int] = []
        for name in blocks:
            if not cfg.has_block(name):
                raise TraceError(f"unknown block '{name}'", procedure=procedure)
            indices.append(cfg.block(name).index)
        with self.activation(procedure) as frame:
            for index in indices:
                frame.step(index)


@dataclass(frozen=True)
class Activation:
    """A recorded execution: a procedure and the blocks it ran, in order."""

    procedure: str
    blocks: Sequence[str]


def replay_trace(profiler: Profiler, trace: Iterable[Activation], skip_unknown: bool = True) -> int:
    """Replay *trace* into *profiler*'s counters.

    Activations of procedures missing from the analysis (e.g. ones whose
    analysis failed) are skipped with a warning when *skip_unknown* is set.
    Returns the number of activations replayed.
    """
    replayed = 0
    for act in trace:
        if act.procedure not in profiler.program:
            if skip_unknown:
                logger.warning("trace: skipping activation of unanalysed procedure %s",
                               act.procedure)
                continue
            raise TraceError(f"unknown procedure '{act.procedure}'", procedure=act.procedure)
        profiler.run_blocks(act.procedure, act.blocks)
        replayed += 1
    logger.debug("replayed %d activation(s)", replayed)
    return replayed
