# tests/test_counters.py
"""
Tests for counter addressing, the counter store, activation frames and
trace replay.
"""

import pytest

from cfgprof.cfg_text import parse_program, parse_trace
from cfgprof.counters import (
    Activation,
    ActivationFrame,
    CounterLayout,
    CounterStore,
    Profiler,
    ProgramLayout,
    instrumentation_plan,
    replay_trace,
)
from cfgprof.ctrlflow_analysis import analyze_program
from cfgprof.errors import TraceError
from tests.conftest import MULTI_PROC_SRC, SIMPLE_LOOP_SRC, SIMPLE_LOOP_TRACE


@pytest.fixture
def loop_program():
    return analyze_program(parse_program(SIMPLE_LOOP_SRC))


@pytest.fixture
def multi_program():
    return analyze_program(parse_program(MULTI_PROC_SRC))


class TestCounterLayout:

    def test_sizes(self):
        layout = CounterLayout("p", 4)
        assert layout.block_slots == 4
        assert layout.edge_slots == 16

    def test_block_slot_is_index(self):
        layout = CounterLayout("p", 4)
        assert [layout.block_slot(i) for i in range(4)] == [0, 1, 2, 3]

    def test_edge_slot_row_major(self):
        layout = CounterLayout("p", 4)
        assert layout.edge_slot(0, 1) == 1
        assert layout.edge_slot(1, 0) == 4
        assert layout.edge_slot(3, 3) == 15

    def test_edge_slot_is_ordered(self):
        layout = CounterLayout("p", 3)
        slots = {layout.edge_slot(i, j) for i in range(3) for j in range(3)}
        assert slots == set(range(9))
        assert layout.edge_slot(1, 2) != layout.edge_slot(2, 1)

    def test_edge_pair_inverts_edge_slot(self):
        layout = CounterLayout("p", 5)
        assert layout.edge_pair(layout.edge_slot(3, 1)) == (3, 1)

    @pytest.mark.parametrize("call", [
        lambda layout: layout.block_slot(3),
        lambda layout: layout.block_slot(-1),
        lambda layout: layout.edge_slot(0, 3),
        lambda layout: layout.edge_slot(3, 0),
        lambda layout: layout.edge_pair(9),
    ])
    def test_out_of_range(self, call):
        with pytest.raises(IndexError):
            call(CounterLayout("p", 3))

    def test_for_analysis(self, loop_program):
        layout = CounterLayout.for_analysis(loop_program["main"])
        assert layout == CounterLayout("main", 4)


class TestProgramLayout:

    def test_disjoint_addresses(self):
        layout = ProgramLayout([CounterLayout("a", 2), CounterLayout("b", 3)])
        addresses = [layout.block_address("a", i) for i in range(2)]
        addresses += [layout.block_address("b", i) for i in range(3)]
        addresses += [layout.edge_address("a", i, j) for i in range(2) for j in range(2)]
        addresses += [layout.edge_address("b", i, j) for i in range(3) for j in range(3)]
        assert len(set(addresses)) == len(addresses) == layout.total_slots == 18

    def test_block_slots_first(self):
        layout = ProgramLayout([CounterLayout("a", 2), CounterLayout("b", 3)])
        assert layout.block_address("b", 0) == 2
        assert layout.edge_address("a", 0, 0) == 5
        assert layout.edge_address("b", 0, 0) == 9

    def test_for_program_skips_failed(self, multi_program):
        layout = ProgramLayout.for_program(multi_program)
        assert list(layout.layouts) == ["main", "helper"]
        assert layout.total_slots == 4 + 2 + 16 + 4


class TestInstrumentationPlan:

    def test_one_site_per_block(self, multi_program):
        sites = list(instrumentation_plan(multi_program))
        assert [(s.procedure, s.block) for s in sites] == [
            ("main", "entry"), ("main", "header"), ("main", "body"), ("main", "exit"),
            ("helper", "b0"), ("helper", "b1"),
        ]

    def test_edge_slot_matches_layout(self, loop_program):
        layout = CounterLayout.for_analysis(loop_program["main"])
        for site in instrumentation_plan(loop_program):
            assert site.block_slot == site.block_index
            for prev in range(layout.size):
                assert site.edge_slot(prev) == layout.edge_slot(prev, site.block_index)


class TestCounterStore:

    def test_zeroed_tables(self):
        store = CounterStore([CounterLayout("p", 2)])
        assert store["p"].blocks == [0, 0]
        assert store["p"].edges == [0, 0, 0, 0]
        assert store.procedures() == ["p"]

    def test_duplicate_allocation(self):
        store = CounterStore([CounterLayout("p", 2)])
        with pytest.raises(ValueError):
            store.allocate(CounterLayout("p", 3))

    def test_reset(self):
        store = CounterStore([CounterLayout("p", 2)])
        ActivationFrame(store["p"]).step(1)
        store.reset()
        assert store["p"].block_count(1) == 0


class TestActivationFrame:

    def test_first_block_bumps_no_edge(self):
        store = CounterStore([CounterLayout("p", 3)])
        frame = ActivationFrame(store["p"])
        assert frame.previous is None
        frame.enter(0)
        assert store["p"].block_count(0) == 1
        assert sum(store["p"].edges) == 0

    def test_leave_records_previous(self):
        store = CounterStore([CounterLayout("p", 3)])
        frame = ActivationFrame(store["p"])
        frame.step(0)
        assert frame.previous == 0
        frame.step(2)
        assert store["p"].edge_count(0, 2) == 1
        assert store["p"].edge_count(2, 0) == 0

    def test_frames_do_not_share_previous(self):
        store = CounterStore([CounterLayout("p", 3)])
        outer = ActivationFrame(store["p"])
        outer.step(0)
        inner = ActivationFrame(store["p"])
        inner.step(1)
        outer.step(2)
        counters = store["p"]
        assert counters.edge_count(0, 2) == 1
        assert counters.edge_count(1, 2) == 0
        assert counters.edge_count(0, 1) == 0

    def test_leave_validates_index(self):
        store = CounterStore([CounterLayout("p", 2)])
        with pytest.raises(IndexError):
            ActivationFrame(store["p"]).leave(5)


class TestReplay:

    def test_simple_loop_counts(self, loop_program):
        profiler = Profiler(loop_program)
        assert replay_trace(profiler, parse_trace(SIMPLE_LOOP_TRACE)) == 1
        cfg = loop_program["main"].cfg
        counters = profiler.store["main"]
        idx = {b.name: b.index for b in cfg.blocks}
        assert [counters.block_count(b.index) for b in cfg.blocks] == [1, 3, 2, 1]
        assert counters.edge_count(idx["entry"], idx["header"]) == 1
        assert counters.edge_count(idx["header"], idx["body"]) == 2
        assert counters.edge_count(idx["body"], idx["header"]) == 2
        assert counters.edge_count(idx["header"], idx["exit"]) == 1

    def test_activations_start_fresh(self, loop_program):
        profiler = Profiler(loop_program)
        trace = [Activation("main", ("entry", "header", "exit"))] * 2
        replay_trace(profiler, trace)
        cfg = loop_program["main"].cfg
        counters = profiler.store["main"]
        assert counters.block_count(cfg.block("entry").index) == 2
        assert counters.edge_count(cfg.block("exit").index, cfg.block("entry").index) == 0

    def test_unknown_block(self, loop_program):
        profiler = Profiler(loop_program)
        with pytest.raises(TraceError) as info:
            profiler.run_blocks("main", ["entry", "nowhere"])
        assert info.value.procedure == "main"
        assert info.value.code == "CFGP-4001"

    def test_rejected_activation_counts_nothing(self, loop_program):
        profiler = Profiler(loop_program)
        with pytest.raises(TraceError):
            profiler.run_blocks("main", ["entry", "header", "nowhere"])
        counters = profiler.store["main"]
        assert sum(counters.blocks) == 0
        assert sum(counters.edges) == 0

    def test_unknown_procedure_skipped(self, multi_program):
        profiler = Profiler(multi_program)
        trace = [Activation("broken", ("start",)), Activation("helper", ("b0", "b1"))]
        assert replay_trace(profiler, trace) == 1
        assert profiler.store["helper"].edge_count(0, 1) == 1

    def test_unknown_procedure_strict(self, multi_program):
        profiler = Profiler(multi_program)
        with pytest.raises(TraceError):
            replay_trace(profiler, [Activation("broken", ("start",))], skip_unknown=False)

    def test_activation_without_counters(self, loop_program):
        profiler = Profiler(loop_program, store=CounterStore())
        with pytest.raises(TraceError):
            with profiler.activation("main"):
                pass
