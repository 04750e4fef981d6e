"""
cfgprof.ctrlflow_graph
======================

Builds intraprocedural Control Flow Graphs (CFGs) from a procedure's block
sequence.

Each procedure yields one :class:`ProcedureCFG`: a directed graph whose
nodes are :class:`Block` objects (stable name + dense index) and whose
edges are the successor relationships named by each block's terminator.

Public API
----------
    SourceBlock       - host-side block: optional name + successor list
    SourceProcedure   - host-side procedure: name + ordered blocks
    Block             - an analysed basic block (name, index)
    Edge              - a directed (source, target) pair of Blocks
    ProcedureCFG      - the CFG for one procedure, with its predecessor map
    build_cfg         - build a ProcedureCFG from a SourceProcedure
    index_predecessors- derive the target -> sources map from an edge list

Typical usage::

    from cfgprof.ctrlflow_graph import SourceBlock, SourceProcedure, build_cfg

    exit_ = SourceBlock("exit")
    body = SourceBlock("body")
    header = SourceBlock("header", [body, exit_])
    body.successors.append(header)
    entry = SourceBlock("entry", [header])
    cfg = build_cfg(SourceProcedure("main", [entry, header, body, exit_]))
    for edge in cfg.edges:
        print(edge.label)

Implementation notes
--------------------
* Unnamed blocks receive ``b<k>`` where ``k`` counts unnamed blocks only.
  The name is written back onto the :class:`SourceBlock`, so the host
  representation sees the same name the reports use.
* Successors are matched by object identity against the procedure's own
  block list; anything else is a :class:`MalformedCFGError`.
* The edge set keeps discovery order (block order, then successor order)
  and collapses duplicate ``(source, target)`` pairs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from cfgprof.errors import MalformedCFGError, NameCollisionError, ErrorCodes

logger = logging.getLogger(__name__)

SYNTHETIC_PREFIX = "b"


# ---------------------------------------------------------------------------
# Host-side procedure representation
# ---------------------------------------------------------------------------


class SourceBlock:
    """A block as supplied by the procedure source.

    Attributes
    ----------
    name : str or None
        Explicit block name; ``None`` until :func:`build_cfg` assigns one.
    successors : list[SourceBlock]
        Ordered terminator successors.  Empty only for exit/return blocks.
    """

    __slots__ = ("name", "successors")

    def __init__(
        self,
        name: Optional[str] = None,
        successors: Optional[List["SourceBlock"]] = None,
    ) -> None:
        self.name = name
        self.successors: List[SourceBlock] = successors if successors is not None else []

    def __repr__(self) -> str:
        return f"SourceBlock(name={self.name!r}, nsucc={len(self.successors)})"


@dataclass
class SourceProcedure:
    """A procedure as supplied by the procedure source."""

    name: str
    blocks: List[SourceBlock]


# ---------------------------------------------------------------------------
# Block / Edge
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class Block:
    """A basic block after naming and indexing.

    Ordering follows ``index`` so sorted block collections come out in
    appearance order.
    """

    index: int
    name: str

    def __repr__(self) -> str:
        return f"Block({self.name!r}, {self.index})"


class Edge(NamedTuple):
    """A directed control-flow edge ``source -> target``."""

    source: Block
    target: Block

    @property
    def label(self) -> str:
        return f"{self.source.name} -> {self.target.name}"

    @property
    def is_self_loop(self) -> bool:
        return self.source == self.target


# ---------------------------------------------------------------------------
# Predecessor indexing
# ---------------------------------------------------------------------------


def index_predecessors(edges: Iterable[Edge]) -> Dict[Block, FrozenSet[Block]]:
    """Map every edge target to the set of sources reaching it.

    Blocks without incoming edges do not appear in the result.
    """
    preds: Dict[Block, Set[Block]] = {}
    for edge in edges:
        preds.setdefault(edge.target, set()).add(edge.source)
    return {target: frozenset(sources) for target, sources in preds.items()}


def _dot_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


# ---------------------------------------------------------------------------
# ProcedureCFG
# ---------------------------------------------------------------------------


class ProcedureCFG:
    """Control flow graph for a single procedure.

    Attributes
    ----------
    name : str
        Procedure name.
    blocks : tuple[Block, ...]
        All blocks, ``blocks[i].index == i``.
    edges : tuple[Edge, ...]
        Deduplicated edges in discovery order.
    predecessors : dict[Block, frozenset[Block]]
        Direct predecessors; blocks without any are absent.
    """

    def __init__(self, name: str, blocks: Sequence[Block], edges: Sequence[Edge]) -> None:
        self.name = name
        self.blocks: Tuple[Block, ...] = tuple(blocks)
        self.edges: Tuple[Edge, ...] = tuple(edges)
        self.predecessors: Dict[Block, FrozenSet[Block]] = index_predecessors(self.edges)
        self._by_name: Dict[str, Block] = {b.name: b for b in self.blocks}
        self._successors: Dict[Block, List[Block]] = {b: [] for b in self.blocks}
        for edge in self.edges:
            self._successors[edge.source].append(edge.target)

    # ----- queries ----------------------------------------------------------

    @property
    def entry(self) -> Block:
        return self.blocks[0]

    @property
    def universe(self) -> FrozenSet[Block]:
        return frozenset(self.blocks)

    def block(self, name: str) -> Block:
        """Return the block called *name*; ``KeyError`` if absent."""
        return self._by_name[name]

    def has_block(self, name: str) -> bool:
        return name in self._by_name

    def predecessors_of(self, block: Block) -> FrozenSet[Block]:
        return self.predecessors.get(block, frozenset())

    def successors_of(self, block: Block) -> List[Block]:
        return list(self._successors.get(block, ()))

    def unreachable_blocks(self) -> List[Block]:
        """Non-entry blocks with no predecessors, in index order."""
        return [
            b for b in self.blocks[1:]
            if not self.predecessors_of(b)
        ]

    def reaches(self, start: Block, goal: Block, within: Optional[FrozenSet[Block]] = None) -> bool:
        """Return ``True`` if *goal* is reachable from *start*.

        With *within* given, the walk only steps through blocks of that set.
        """
        visited: Set[Block] = set()
        worklist = [start]
        while worklist:
            n = worklist.pop()
            if n == goal:
                return True
            if n in visited:
                continue
            visited.add(n)
            for succ in self._successors[n]:
                if within is None or succ in within:
                    worklist.append(succ)
        return False

    def __iter__(self) -> Iterator[Block]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    # ----- serialisation helpers --------------------------------------------

    def to_dot(self, back_edges: Iterable[Edge] = (), title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation of this CFG.

        Edges listed in *back_edges* are drawn dashed.
        """
        back = set(back_edges)
        lines = [f'digraph "{_dot_escape(self.name)}" {{']
        lines.append(f'  label="{_dot_escape(title or self.name)}";')
        lines.append("  node [shape=box, fontname=monospace, fontsize=10];")
        for b in self.blocks:
            color = ""
            if b.index == 0:
                color = ', style=filled, fillcolor="#ccffcc"'
            elif not self._successors[b]:
                color = ', style=filled, fillcolor="#ffcccc"'
            lines.append(f'  n{b.index} [label="{_dot_escape(b.name)}\\n#{b.index}"{color}];')
        for e in self.edges:
            style = ""
            if e in back:
                style = ' [style=dashed, color=blue, label="back"]'
            lines.append(f"  n{e.source.index} -> n{e.target.index}{style};")
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ProcedureCFG(name={self.name!r}, blocks={len(self.blocks)}, "
            f"edges={len(self.edges)})"
        )


# ===========================================================================
# CFG BUILDER
# ===========================================================================


def assign_block_names(procedure: SourceProcedure) -> List[str]:
    """Name every unnamed block ``b<k>`` and return all names in order.

    Explicit names are never changed.  Raises :class:`NameCollisionError`
    when a name (explicit or synthetic) would be used twice; in that case
    no block is renamed.
    """
    explicit: Set[str] = set()
    for sb in procedure.blocks:
        if sb.name is None:
            continue
        if sb.name in explicit:
            raise NameCollisionError(sb.name, procedure=procedure.name)
        explicit.add(sb.name)

    names: List[str] = []
    unnamed = 0
    for sb in procedure.blocks:
        if sb.name is not None:
            names.append(sb.name)
            continue
        candidate = f"{SYNTHETIC_PREFIX}{unnamed}"
        if candidate in explicit:
            raise NameCollisionError(candidate, procedure=procedure.name)
        names.append(candidate)
        explicit.add(candidate)
        unnamed += 1

    for sb, name in zip(procedure.blocks, names):
        sb.name = name
    return names


def build_cfg(procedure: SourceProcedure) -> ProcedureCFG:
    """Build the :class:`ProcedureCFG` for *procedure*.

    Raises
    ------
    MalformedCFGError
        The procedure has no blocks, or a successor is not one of them.
    NameCollisionError
        Naming produced a duplicate.
    """
    if not procedure.blocks:
        raise MalformedCFGError(
            "procedure has no blocks",
            code=ErrorCodes.EMPTY_PROCEDURE,
            procedure=procedure.name,
        )

    # Validate the successor lists before naming so a malformed procedure
    # leaves its source untouched.
    position: Dict[int, int] = {id(sb): i for i, sb in enumerate(procedure.blocks)}
    for sb in procedure.blocks:
        for succ in sb.successors:
            if id(succ) not in position:
                raise MalformedCFGError(
                    f"block '{sb.name or '<unnamed>'}' names successor "
                    f"'{succ.name or '<unnamed>'}' which is not in the block list",
                    procedure=procedure.name,
                )

    names = assign_block_names(procedure)
    blocks = [Block(index=i, name=n) for i, n in enumerate(names)]

    edges: Dict[Edge, None] = {}
    for i, sb in enumerate(procedure.blocks):
        for succ in sb.successors:
            edges.setdefault(Edge(blocks[i], blocks[position[id(succ)]]), None)

    cfg = ProcedureCFG(procedure.name, blocks, list(edges))
    logger.debug("built CFG %r", cfg)
    return cfg
