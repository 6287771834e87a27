"""Dependency edges between Variables.

An edge lives on the Variable that was read and points at the Variable whose
formula did the reading. It remembers the reader's generation at the time of
the read; once the reader has been recomputed past that point the edge is
obsolete and gets pruned on the next mark pass.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cstr.variable import Variable


class Dependency:
    """Edge from a depended-upon Variable to one of its dependents."""

    __slots__ = ("target", "snapshot")

    def __init__(self, target: Variable) -> None:
        self.target = target
        self.snapshot = target.generation + 1

    @property
    def is_stale(self) -> bool:
        """True once the target has recomputed since this edge was recorded."""
        return self.snapshot < self.target.generation

    def refresh(self) -> None:
        self.snapshot = self.target.generation + 1

    def __repr__(self) -> str:
        state = "stale" if self.is_stale else "live"
        return f"Dependency({self.target!r}, snapshot={self.snapshot}, {state})"
