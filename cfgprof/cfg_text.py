"""
cfg_text.py: textual procedure and trace sources
=================================================

A small, whitespace-insensitive description language for procedure CFGs,
plus a trace format for replaying block executions.

CFG source::

    ; comments run to the end of the line
    proc main {
        entry:  header
        header: body, exit
        body:   header
        _:      exit        ; unnamed block, named b0 by the builder
        exit:
    }

A block is ``<label>: <successor>, ...``.  The label ``_`` leaves the block
unnamed.  A successor is either a block label or ``#k``, the k-th block of
the procedure (0-based), which is how unnamed blocks are targeted.
Successors that resolve to nothing are kept as dangling references so the
CFG builder reports the procedure as malformed without affecting the
others.

Trace source::

    main: entry header body header exit
    helper: b0 b1

Each ``<proc>: <block> ...`` group is one activation.

Depends on:
    - parsimonious (PEG parser)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Tuple, Union

from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor
from parsimonious.exceptions import ParseError

from cfgprof.counters import Activation
from cfgprof.ctrlflow_graph import SourceBlock, SourceProcedure
from cfgprof.errors import CFGSyntaxError, ErrorCodes

logger = logging.getLogger(__name__)

ANONYMOUS_LABEL = "_"


# ═══════════════════════════════════════════════════════════════════
#  GRAMMAR
# ═══════════════════════════════════════════════════════════════════

CFG_TEXT_GRAMMAR = Grammar(r'''
    program     = _ proc* eof
    proc        = "proc" __ ident _ "{" _ block* "}" _

    block       = ident _ ":" _ successors?
    successors  = succ (_ "," _ succ)* _
    succ        = !label_def (position / ident)
    label_def   = ident _ ":"
    position    = "#" ~r"[0-9]+"

    trace       = _ activation* eof
    activation  = ident _ ":" _ steps
    steps       = step*
    step        = !label_def ident _

    ident       = ~r"[A-Za-z_.$][A-Za-z0-9_.$]*"
    _           = (~r"\s+" / comment)*
    __          = (~r"\s+" / comment)+
    comment     = ~r";[^\n]*"
    eof         = !~r"[\s\S]"
''')


# ═══════════════════════════════════════════════════════════════════
#  PARSE TREE → SOURCE OBJECTS
# ═══════════════════════════════════════════════════════════════════

_RawBlock = Tuple[str, List[Union[str, int]]]


class _SourceBuilder(NodeVisitor):
    """Turns a parse tree into :class:`SourceProcedure` / :class:`Activation`."""

    unwrapped_exceptions = (CFGSyntaxError,)

    def __init__(self, text: str, filename: str):
        self.text = text
        self.filename = filename

    def generic_visit(self, node, visited_children):
        return visited_children

    # ── CFG ──────────────────────────────────────────────────────

    def visit_program(self, node, visited_children):
        _, procs, _ = visited_children
        seen: Dict[str, int] = {}
        for proc, pos in procs:
            if proc.name in seen:
                line, column = _line_col(self.text, pos)
                raise CFGSyntaxError(
                    f"procedure '{proc.name}' defined twice",
                    line=line, column=column, filename=self.filename,
                    code=ErrorCodes.DUPLICATE_PROCEDURE,
                )
            seen[proc.name] = pos
        return [proc for proc, _ in procs]

    def visit_proc(self, node, visited_children):
        _, _, name, _, _, _, raw_blocks, _, _ = visited_children
        return _resolve(name, raw_blocks), node.start

    def visit_block(self, node, visited_children):
        label, _, _, _, succs = visited_children
        return label, (succs[0] if succs else [])

    def visit_successors(self, node, visited_children):
        first, rest, _ = visited_children
        return [first] + [r[3] for r in rest]

    def visit_succ(self, node, visited_children):
        _, (ref,) = visited_children
        return ref

    def visit_position(self, node, visited_children):
        return int(node.text[1:])

    def visit_ident(self, node, visited_children):
        return node.text

    # ── Trace ────────────────────────────────────────────────────

    def visit_trace(self, node, visited_children):
        _, activations, _ = visited_children
        return activations

    def visit_activation(self, node, visited_children):
        name, _, _, _, steps = visited_children
        return Activation(procedure=name, blocks=tuple(steps))

    def visit_step(self, node, visited_children):
        _, name, _ = visited_children
        return name


def _resolve(name: str, raw_blocks: List[_RawBlock]) -> SourceProcedure:
    """Create the SourceBlocks of one procedure and wire up successors."""
    blocks: List[SourceBlock] = []
    by_label: Dict[str, SourceBlock] = {}
    for label, _ in raw_blocks:
        sb = SourceBlock(None if label == ANONYMOUS_LABEL else label)
        blocks.append(sb)
        if sb.name is not None:
            by_label.setdefault(label, sb)

    for sb, (_, refs) in zip(blocks, raw_blocks):
        for ref in refs:
            if isinstance(ref, int):
                target = blocks[ref] if ref < len(blocks) else None
                dangling = f"#{ref}"
            else:
                target = by_label.get(ref)
                dangling = ref
            if target is None:
                logger.debug("%s: unresolved successor %s", name, dangling)
                target = SourceBlock(dangling)
            sb.successors.append(target)
    return SourceProcedure(name, blocks)


def _line_col(text: str, pos: int) -> Tuple[int, int]:
    line = text.count("\n", 0, pos) + 1
    column = pos - (text.rfind("\n", 0, pos) + 1) + 1
    return line, column


def _parse(rule: str, text: str, filename: str):
    try:
        tree = CFG_TEXT_GRAMMAR[rule].parse(text)
    except ParseError as exc:
        pos = max(exc.pos, 0)
        line, column = _line_col(text, pos)
        raise CFGSyntaxError(
            f"unexpected input {text[pos:pos + 20]!r}",
            line=line, column=column, filename=filename,
        ) from exc
    return _SourceBuilder(text, filename).visit(tree)


# ═══════════════════════════════════════════════════════════════════
#  PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def parse_program(text: str, filename: str = "<string>") -> List[SourceProcedure]:
    """Parse CFG source *text* into procedures, in source order."""
    procs = _parse("program", text, filename)
    logger.debug("%s: parsed %d procedure(s)", filename, len(procs))
    return procs


def parse_trace(text: str, filename: str = "<string>") -> List[Activation]:
    """Parse trace source *text* into activations, in order."""
    return _parse("trace", text, filename)


def load_program(path: Union[str, Path]) -> List[SourceProcedure]:
    p = Path(path)
    return parse_program(p.read_text(encoding="utf-8"), filename=str(p))


def load_trace(path: Union[str, Path]) -> List[Activation]:
    p = Path(path)
    return parse_trace(p.read_text(encoding="utf-8"), filename=str(p))
