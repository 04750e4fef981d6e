# cfgprof/errors.py
"""
Error types for the cfgprof analysis pipeline.

Error Hierarchy:
────────────────
    CfgProfError (base)
    ├── CFGError              - Structural problems in one procedure's CFG
    │   ├── MalformedCFGError - Successor outside the procedure's block list
    │   └── NameCollisionError- Two blocks end up with the same name
    ├── FixpointError         - Dominator iteration exceeded its pass ceiling
    ├── CFGSyntaxError        - CFG / trace source text does not parse
    └── TraceError            - Trace names an unknown procedure or block

    UnreachableBlockWarning   - Non-entry block without predecessors

Error Codes:
────────────
Each error carries a code of the form CFGP-NNNN:
  - 1000-1999: CFG structure
  - 2000-2999: Fixpoint iteration
  - 3000-3999: Source text
  - 4000-4999: Trace replay

``CFGError`` subclasses are fatal for the procedure they occur in only;
``analyze_program`` collects them per procedure instead of propagating.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Any, Dict, Optional


@unique
class ErrorPhase(Enum):
    """Pipeline phase where the error occurred."""

    BUILD = "build"            # CFG construction
    SOLVE = "solve"            # Dominator fixpoint
    PARSE = "parse"            # Source text
    REPLAY = "replay"          # Trace replay


class ErrorCode:
    """Structured error code ``CFGP-NNNN``."""

    __slots__ = ("number", "phase", "summary")

    PREFIX = "CFGP"

    def __init__(self, number: int, phase: ErrorPhase, summary: str) -> None:
        self.number = number
        self.phase = phase
        self.summary = summary

    @property
    def code(self) -> str:
        return f"{self.PREFIX}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.phase.value})"

    def __hash__(self) -> int:
        return hash(self.number)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ErrorCodes:
    """Predefined error codes."""

    MALFORMED_CFG = ErrorCode(1001, ErrorPhase.BUILD, "successor outside procedure")
    NAME_COLLISION = ErrorCode(1002, ErrorPhase.BUILD, "duplicate block name")
    EMPTY_PROCEDURE = ErrorCode(1003, ErrorPhase.BUILD, "procedure has no blocks")
    FIXPOINT_DIVERGED = ErrorCode(2001, ErrorPhase.SOLVE, "pass ceiling exceeded")
    SYNTAX = ErrorCode(3001, ErrorPhase.PARSE, "source text does not parse")
    DUPLICATE_PROCEDURE = ErrorCode(3002, ErrorPhase.PARSE, "procedure defined twice")
    UNKNOWN_TRACE_TARGET = ErrorCode(4001, ErrorPhase.REPLAY, "unknown procedure or block")


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════════

class CfgProfError(Exception):
    """
    Base exception for all cfgprof errors.

    Carries the structured :class:`ErrorCode` and, where known, the
    procedure the error belongs to.
    """

    default_code: ErrorCode = ErrorCodes.MALFORMED_CFG

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        procedure: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.procedure = procedure

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.code,
            "phase": self.code.phase.value,
            "procedure": self.procedure,
            "message": self.message,
        }

    def __str__(self) -> str:
        where = f" in procedure '{self.procedure}'" if self.procedure else ""
        return f"[{self.code}] {self.message}{where}"


class CFGError(CfgProfError):
    """Structural error fatal to the enclosing procedure's analysis."""


class MalformedCFGError(CFGError):
    """A terminator names a successor that is not one of the procedure's blocks."""

    default_code = ErrorCodes.MALFORMED_CFG


class NameCollisionError(CFGError):
    """Block naming produced the same name twice within one procedure."""

    default_code = ErrorCodes.NAME_COLLISION

    def __init__(self, name: str, procedure: Optional[str] = None) -> None:
        super().__init__(f"block name '{name}' is already taken", procedure=procedure)
        self.name = name


class FixpointError(CfgProfError):
    """The dominator iteration did not settle within the configured passes."""

    default_code = ErrorCodes.FIXPOINT_DIVERGED


class CFGSyntaxError(CfgProfError):
    """CFG or trace source text could not be parsed."""

    default_code = ErrorCodes.SYNTAX

    def __init__(
        self,
        message: str,
        line: int = 0,
        column: int = 0,
        filename: str = "<string>",
        code: Optional[ErrorCode] = None,
    ) -> None:
        super().__init__(message, code=code)
        self.line = line
        self.column = column
        self.filename = filename

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}: [{self.code}] {self.message}"


class TraceError(CfgProfError):
    """A trace refers to a procedure or block the analysis does not know."""

    default_code = ErrorCodes.UNKNOWN_TRACE_TARGET


# ═══════════════════════════════════════════════════════════════════════════════
# WARNINGS
# ═══════════════════════════════════════════════════════════════════════════════

class UnreachableBlockWarning(UserWarning):
    """A non-entry block has no predecessors.

    Its dominator set stays at the full block universe, so edges leaving
    it are classified as back edges.
    """

    def __init__(self, procedure: str, block: str) -> None:
        super().__init__(
            f"block '{block}' in procedure '{procedure}' has no predecessors"
        )
        self.procedure = procedure
        self.block = block
