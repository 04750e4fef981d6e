"""
cfgprof/config.py
=================

Tuning knobs for the analysis driver, the profiler and the CLI.

Values come from three layers, later layers winning:

1. dataclass defaults;
2. ``CFGPROF_*`` environment variables (:meth:`AnalysisConfig.from_env`);
3. command-line flags (applied by :mod:`cfgprof.main`).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, List, Mapping, Optional

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _env_bool(raw: str, name: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name}: expected a boolean, got {raw!r}")


def _env_int(raw: str, name: str) -> Optional[int]:
    value = raw.strip()
    if not value or value.lower() == "none":
        return None
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name}: expected an integer, got {raw!r}") from None


@dataclass(frozen=True)
class AnalysisConfig:
    """Configuration for one cfgprof run.

    Attributes
    ----------
    entry_procedure:
        Procedure whose return is the report emission point.  Only used
        for labelling in the rendered report.
    max_passes:
        Ceiling on dominator fixpoint passes; ``None`` means unlimited.
        Exceeding it raises :class:`~cfgprof.errors.FixpointError`.
    warn_unreachable:
        Emit :class:`~cfgprof.errors.UnreachableBlockWarning` for non-entry
        blocks without predecessors.
    strict:
        Treat any failed procedure as a run failure (CLI exit code 1).
    """

    entry_procedure: str = "main"
    max_passes: Optional[int] = None
    warn_unreachable: bool = True
    strict: bool = False

    ENV_PREFIX = "CFGPROF_"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AnalysisConfig":
        """Build a config from ``CFGPROF_*`` variables in *environ*."""
        env = os.environ if environ is None else environ
        kwargs: dict = {}
        key = cls.ENV_PREFIX + "ENTRY_PROCEDURE"
        if key in env:
            kwargs["entry_procedure"] = env[key].strip()
        key = cls.ENV_PREFIX + "MAX_PASSES"
        if key in env:
            kwargs["max_passes"] = _env_int(env[key], key)
        key = cls.ENV_PREFIX + "WARN_UNREACHABLE"
        if key in env:
            kwargs["warn_unreachable"] = _env_bool(env[key], key)
        key = cls.ENV_PREFIX + "STRICT"
        if key in env:
            kwargs["strict"] = _env_bool(env[key], key)
        return cls(**kwargs)

    def override(self, **changes: Any) -> "AnalysisConfig":
        """Return a copy with every non-``None`` entry of *changes* applied."""
        applied = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **applied) if applied else self

    def validate(self) -> List[str]:
        """Return a list of validation problems (empty if valid)."""
        problems: List[str] = []
        if not self.entry_procedure:
            problems.append("entry_procedure must not be empty")
        if self.max_passes is not None and self.max_passes <= 0:
            problems.append("max_passes must be positive")
        return problems
