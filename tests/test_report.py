# tests/test_report.py
"""
Tests for the report model and its text/JSON renderers.
"""

import json

import pytest

from cfgprof.cfg_text import parse_program, parse_trace
from cfgprof.counters import Profiler, replay_trace
from cfgprof.ctrlflow_analysis import analyze_program
from cfgprof.report import build_report, render_analysis, render_report
from tests.conftest import (
    LINEAR_SRC,
    MULTI_PROC_SRC,
    SIMPLE_LOOP_SRC,
    SIMPLE_LOOP_TRACE,
    UNREACHABLE_SRC,
    analyze_source,
)


def _profile(source, trace):
    program = analyze_program(parse_program(source))
    profiler = Profiler(program)
    replay_trace(profiler, parse_trace(trace))
    return build_report(program, profiler.store)


@pytest.fixture
def loop_report():
    return _profile(SIMPLE_LOOP_SRC, SIMPLE_LOOP_TRACE)


class TestReportModel:

    def test_block_view(self, loop_report):
        assert loop_report["main"].block_counts == [
            ("entry", 1), ("header", 3), ("body", 2), ("exit", 1),
        ]

    def test_edge_view_static_edges_only(self, loop_report):
        assert loop_report["main"].edge_counts == [
            ("entry -> header", 1),
            ("header -> body", 2),
            ("header -> exit", 1),
            ("body -> header", 2),
        ]

    def test_loop_view_counts_back_edge(self, loop_report):
        (lc,) = loop_report["main"].loop_counts
        assert lc.blocks == ("header", "body")
        assert lc.header == "header"
        assert lc.tail == "body"
        assert lc.count == 2
        assert lc.label == "header body"

    def test_lookup_helpers(self, loop_report):
        proc = loop_report["main"]
        assert proc.block_count("header") == 3
        assert proc.edge_count("body -> header") == 2

    def test_failed_procedures_excluded(self):
        report = _profile(MULTI_PROC_SRC, "helper: b0 b1\n")
        assert "broken" not in report
        assert report.failed == ["broken"]
        assert report["helper"].edge_count("b0 -> b1") == 1
        assert report["main"].block_count("entry") == 0

    def test_to_dict_is_json_ready(self, loop_report):
        data = json.loads(json.dumps(loop_report.to_dict()))
        (proc,) = data["procedures"]
        assert proc["procedure"] == "main"
        assert proc["blocks"]["header"] == 3
        assert proc["edges"]["body -> header"] == 2
        assert proc["loops"] == [
            {"blocks": ["header", "body"], "header": "header", "tail": "body", "count": 2},
        ]
        assert data["failed"] == []


class TestRenderReport:

    def test_sections(self, loop_report):
        assert render_report(loop_report) == (
            "\nBASIC BLOCK PROFILING:\n"
            "\nmain:\n"
            "entry: 1\n"
            "header: 3\n"
            "body: 2\n"
            "exit: 1\n"
            "\nEDGE PROFILING:\n"
            "\nmain:\n"
            "entry -> header: 1\n"
            "header -> body: 2\n"
            "header -> exit: 1\n"
            "body -> header: 2\n"
            "\nLOOP PROFILING:\n"
            "\nmain:\n"
            "header body : 2\n"
        )

    def test_loop_section_skips_loopless(self):
        text = render_report(_profile(LINEAR_SRC, "main: a b c\n"))
        loop_section = text.split("LOOP PROFILING:\n", 1)[1]
        assert loop_section == ""
        assert "a -> b: 1\n" in text


class TestRenderAnalysis:

    def test_dominator_sets(self):
        text = render_analysis(analyze_source(SIMPLE_LOOP_SRC))
        assert text.startswith("Procedure: main\n")
        assert "DomSet[entry] => entry\n" in text
        assert "DomSet[body] => entry header body\n" in text
        assert "DomSet[exit] => entry header exit\n" in text
        assert "BackEdges:\nbody -> header\n" in text
        assert "Loops:\nheader body\n" in text

    def test_no_loop_sections_without_loops(self):
        text = render_analysis(analyze_source(LINEAR_SRC))
        assert "BackEdges:" not in text
        assert "Loops:" not in text

    def test_predecessors(self):
        text = render_analysis(analyze_source(SIMPLE_LOOP_SRC), show_predecessors=True)
        assert "Predecessors:\nentry:\nheader: entry body\n" in text

    def test_unreachable_listed(self):
        text = render_analysis(analyze_source(UNREACHABLE_SRC))
        assert "DomSet[u] => entry u exit\n" in text
        assert text.endswith("Unreachable: u\n")
