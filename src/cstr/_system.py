"""Constraint system — the coordination state shared by a set of Variables.

Holds the demand stack (which Variable's formula is currently asking for a
value) and the daemon queue (one-shot thunks run before the next value read).

Every Variable belongs to exactly one system. Unless told otherwise it joins
the default system, created at import and kept for the life of the process.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterator

if TYPE_CHECKING:
    from cstr.variable import Variable

logger = logging.getLogger("cstr.system")

Daemon = Callable[[], None]


class ConstraintSystem:
    """Demand stack plus daemon queue for the lazy mark-and-sweep engine."""

    __slots__ = ("_demanding_variables", "_daemon_queue", "_flushing")

    def __init__(self) -> None:
        self._demanding_variables: list[Variable] = []
        self._daemon_queue: list[Daemon] = []
        self._flushing = False

    @property
    def current(self) -> Variable | None:
        """The Variable whose formula is executing right now, if any."""
        if self._demanding_variables:
            return self._demanding_variables[-1]
        return None

    @property
    def pending_daemon_count(self) -> int:
        """Number of daemons waiting for the next flush. Useful for testing."""
        return len(self._daemon_queue)

    def add_daemon(self, daemon: Daemon) -> None:
        """Queue a daemon to run once, before the next value read."""
        self._daemon_queue.append(daemon)

    def flush(self) -> None:
        """Run the queued daemons once each, in registration order.

        Reentrant calls (a daemon reading a Variable) do nothing. Daemons
        queued while flushing wait for the next flush.
        """
        if not self._daemon_queue or self._flushing:
            return

        # Take ownership of the batch; new daemons land in a fresh queue.
        batch = self._daemon_queue
        self._daemon_queue = []
        self._flushing = True
        logger.debug("Flushing %d daemons", len(batch))
        index = 0
        try:
            for daemon in batch:
                index += 1
                daemon()
        finally:
            self._flushing = False
            unrun = batch[index:]
            if unrun:
                logger.debug("Daemon failed; requeueing %d unrun daemons", len(unrun))
                self._daemon_queue[:0] = unrun

    @contextmanager
    def _demanding(self, variable: Variable) -> Iterator[None]:
        """Keep variable on top of the demand stack for the duration."""
        self._demanding_variables.append(variable)
        try:
            yield
        finally:
            self._demanding_variables.pop()

    def __repr__(self) -> str:
        return (
            f"ConstraintSystem(depth={len(self._demanding_variables)}, "
            f"pending={len(self._daemon_queue)})"
        )


_system = ConstraintSystem()


def get_system() -> ConstraintSystem:
    """The default system new Variables join."""
    return _system


def set_system(system: ConstraintSystem) -> ConstraintSystem:
    """Install system as the default. Returns the previous default.

    Variables already created keep the system they were built with.
    """
    global _system
    previous = _system
    _system = system
    return previous


def add_daemon(daemon: Daemon, system: ConstraintSystem | None = None) -> None:
    """Run daemon once, at the start of the next value read of any Variable.

    After that single run the daemon must be added again to run again.

    Usage:
        add_daemon(lambda: log.append("tick"))
        x = Variable(0)
        x.value  # log == ["tick"]
        x.value  # log == ["tick"], already consumed
    """
    (system or _system).add_daemon(daemon)


def get_pending_daemon_count() -> int:
    """Daemons waiting on the default system. Useful for testing."""
    return _system.pending_daemon_count
