# tests/conftest.py
"""
Shared CFG sources and builders for the cfgprof test-suite.
"""

from typing import List, Optional, Sequence, Tuple, Union

import pytest

from cfgprof.cfg_text import parse_program
from cfgprof.config import AnalysisConfig
from cfgprof.ctrlflow_analysis import analyze_procedure
from cfgprof.ctrlflow_graph import SourceBlock, SourceProcedure, build_cfg


# ── Sources ──────────────────────────────────────────────────────

LINEAR_SRC = """
proc main {
    a: b
    b: c
    c:
}
"""

SIMPLE_LOOP_SRC = """
proc main {
    entry:  header
    header: body, exit
    body:   header
    exit:
}
"""

TWO_BACKEDGE_SRC = """
proc main {
    entry:  header
    header: a, exit
    a:      b, c
    b:      header      ; first continue path
    c:      header      ; second continue path
    exit:
}
"""

UNREACHABLE_SRC = """
proc main {
    entry: exit
    u:
    exit:
}
"""

SELF_LOOP_SRC = """
proc main {
    entry: x
    x:     x, exit
    exit:
}
"""

NESTED_SRC = """
proc main {
    entry:      outer
    outer:      inner, exit
    inner:      inner_body, latch
    inner_body: inner
    latch:      outer
    exit:
}
"""

MULTI_PROC_SRC = """
; two procedures, the second one broken
proc main {
    entry:  header
    header: body, exit
    body:   header
    exit:
}

proc broken {
    start: nowhere
}

proc helper {
    _: #1
    _:
}
"""

SIMPLE_LOOP_TRACE = "main: entry header body header body header exit\n"


# ── Builders ─────────────────────────────────────────────────────

BlockShape = Tuple[Optional[str], Sequence[Union[int, str]]]


def make_procedure(name: str, shape: Sequence[BlockShape]) -> SourceProcedure:
    """
    Build a SourceProcedure from ``(label, successors)`` pairs.

    Successors are block positions (int) or labels (str).
    """
    blocks: List[SourceBlock] = [SourceBlock(label) for label, _ in shape]
    by_label = {b.name: b for b in blocks if b.name is not None}
    for block, (_, succs) in zip(blocks, shape):
        for ref in succs:
            block.successors.append(blocks[ref] if isinstance(ref, int) else by_label[ref])
    return SourceProcedure(name, blocks)


def analyze_source(text: str, name: str = "main", **config):
    """Parse *text* and analyse procedure *name* with warnings off."""
    procs = {p.name: p for p in parse_program(text)}
    cfg = AnalysisConfig(warn_unreachable=False, **config)
    return analyze_procedure(procs[name], cfg)


def names(blocks) -> List[str]:
    """Block names in index order."""
    return [b.name for b in sorted(blocks)]


# ── Fixtures ─────────────────────────────────────────────────────

@pytest.fixture
def simple_loop():
    return analyze_source(SIMPLE_LOOP_SRC)


@pytest.fixture
def two_backedges():
    return analyze_source(TWO_BACKEDGE_SRC)


@pytest.fixture
def nested():
    return analyze_source(NESTED_SRC)


@pytest.fixture
def diamond_cfg():
    return build_cfg(make_procedure("diamond", [
        ("top", ["left", "right"]),
        ("left", ["bottom"]),
        ("right", ["bottom"]),
        ("bottom", []),
    ]))


@pytest.fixture(params=[
    LINEAR_SRC, SIMPLE_LOOP_SRC, TWO_BACKEDGE_SRC, SELF_LOOP_SRC, NESTED_SRC,
], ids=["linear", "simple_loop", "two_backedges", "self_loop", "nested"])
def any_reachable(request):
    """Analysis of every sample whose blocks are all reachable from entry."""
    return analyze_source(request.param)
