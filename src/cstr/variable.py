"""Variables — reactive cells kept consistent by lazy mark-and-sweep.

A Variable holds an explicit value or a formula over other Variables.
Writing a value runs the mark phase: dependents are flagged stale (and their
out-of-date daemons fire) depth-first, but nothing is recomputed. Reading a
value runs the sweep phase: the reader is recorded as a dependent, and a
stale formula is recomputed on the spot. A Variable with a thousand
dependents therefore only pays for the ones that are read again.

Circular formulas terminate: a Variable clears its stale flag before running
its formula, so a nested read of the same Variable returns the stored value
instead of recursing.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Generic, TypeVar, overload

from cstr._system import ConstraintSystem, get_system
from cstr.dependency import Dependency

logger = logging.getLogger("cstr.variable")

T = TypeVar("T")


class Variable(Generic[T]):
    """A value, or a formula computing one, with automatic dependency tracking.

    A formula or daemon is called with no arguments, or with ``context`` as
    its only argument when a context is set.
    """

    __slots__ = (
        "_value",
        "_formula",
        "_context",
        "_out_of_date_daemon",
        "_generation",
        "_stale",
        "_dependents",
        "_system",
    )

    def __init__(
        self,
        value: T | None = None,
        formula: Callable[..., T] | None = None,
        context: Any = None,
        out_of_date_daemon: Callable[..., None] | None = None,
        *,
        system: ConstraintSystem | None = None,
    ) -> None:
        self._value = value
        self._formula = formula
        self._context = context
        self._out_of_date_daemon = out_of_date_daemon
        self._generation = 0
        self._stale = formula is not None
        # Keyed by the dependent itself; at most one edge per dependent.
        self._dependents: dict[Variable, Dependency] = {}
        self._system = system if system is not None else get_system()

    # --- Public accessors ---

    @property
    def value(self) -> T:
        """The current value, recomputing the formula first if it is stale.

        Runs any pending system daemons before anything else.
        """
        self._system.flush()
        self._sweep()
        return self._value

    @value.setter
    def value(self, value: T) -> None:
        """Set an explicit value. Drops the formula and the out-of-date daemon."""
        self._value = value
        self._formula = None
        self._out_of_date_daemon = None
        try:
            self._mark()
        finally:
            self._stale = False

    def _set_formula_value(self, value: T) -> None:
        self._value = value
        try:
            self._mark()
        finally:
            self._stale = False

    formula_value = property(
        None,
        _set_formula_value,
        doc="""Seed the stored value but keep the formula and daemon.

        Used to inject a baseline into one half of a pair of mutually
        recursive formulas without severing either formula.
        """,
    )

    @property
    def formula(self) -> Callable[..., T] | None:
        return self._formula

    @formula.setter
    def formula(self, formula: Callable[..., T]) -> None:
        """Replace the formula. It runs lazily on the next read."""
        self._formula = formula
        self._mark()

    @property
    def context(self) -> Any:
        return self._context

    @context.setter
    def context(self, context: Any) -> None:
        self._context = context

    @property
    def out_of_date_daemon(self) -> Callable[..., None] | None:
        return self._out_of_date_daemon

    @out_of_date_daemon.setter
    def out_of_date_daemon(self, daemon: Callable[..., None] | None) -> None:
        self._out_of_date_daemon = daemon

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def stale(self) -> bool:
        return self._stale

    @property
    def dependents(self) -> tuple[Dependency, ...]:
        return tuple(self._dependents.values())

    @property
    def system(self) -> ConstraintSystem:
        return self._system

    def peek(self) -> T:
        """The stored value. No daemons, no dependency recording, no recompute."""
        return self._value

    def copy(self) -> Variable[T]:
        """An independent Variable with the same value (and formula, if any).

        The copy starts at generation 0 and shares no dependency edges.
        """
        if self._formula is None:
            return Variable(self._value, system=self._system)
        return Variable(
            self._value,
            formula=self._formula,
            context=self._context,
            out_of_date_daemon=self._out_of_date_daemon,
            system=self._system,
        )

    # --- Mark phase ---

    def _mark(self, marking: set[Variable] | None = None) -> None:
        """Flag self and every live transitive dependent stale, depth-first.

        marking holds the Variables on the active path of this pass. A daemon
        that raises does not stop the pass: every reachable dependent is still
        marked, then the first exception propagates.
        """
        if marking is None:
            marking = set()
        if self._stale or self in marking:
            return
        marking.add(self)
        try:
            self._stale = True
            error = None
            try:
                self._run_out_of_date_daemon()
            except BaseException as exc:
                error = exc
            dependent_error = self._mark_dependents(marking)
            if error is None:
                error = dependent_error
            if error is not None:
                raise error
        finally:
            marking.discard(self)

    def _mark_dependents(self, marking: set[Variable]) -> BaseException | None:
        """Mark live dependents, prune obsolete edges, return the first error."""
        error = None
        obsolete = []
        for dep in list(self._dependents.values()):
            if dep.is_stale:
                obsolete.append(dep)
                continue
            try:
                dep.target._mark(marking)
            except BaseException as exc:
                if error is None:
                    error = exc
        for dep in obsolete:
            if self._dependents.get(dep.target) is dep:
                del self._dependents[dep.target]
        return error

    def _run_out_of_date_daemon(self) -> None:
        if self._out_of_date_daemon is not None:
            self._call(self._out_of_date_daemon)

    # --- Sweep phase ---

    def _sweep(self) -> None:
        self._update_dependencies()
        self._compute_formula()

    def _update_dependencies(self) -> None:
        """Record (or refresh) the Variable currently demanding our value."""
        demander = self._system.current
        if demander is None:
            return
        dep = self._dependents.get(demander)
        if dep is None:
            self._dependents[demander] = Dependency(demander)
        else:
            dep.refresh()

    def _compute_formula(self) -> None:
        if not self._stale:
            return
        if self._formula is None:
            # Marked through a dependency edge; nothing to recompute.
            self._stale = False
            return

        with self._system._demanding(self):
            # Cleared first so a cyclic read returns the stored value.
            self._stale = False
            try:
                value = self._call(self._formula)
            except BaseException:
                self._stale = True
                logger.debug("Formula of %r raised; left stale", self)
                raise
            self._value = value
            self._generation += 1
            logger.debug("Recomputed %r (generation %d)", self, self._generation)

    def _call(self, fn: Callable[..., Any]) -> Any:
        if self._context is None:
            return fn()
        return fn(self._context)

    def __repr__(self) -> str:
        state = "stale" if self._stale else "current"
        if self._formula is None:
            return f"Variable({self._value!r}, {state})"
        name = getattr(self._formula, "__name__", "formula")
        return f"Variable({name}, {self._value!r}, {state})"


@overload
def variable(fn: Callable[..., T]) -> Variable[T]: ...


@overload
def variable(
    fn: None = None,
    *,
    context: Any = None,
    system: ConstraintSystem | None = None,
) -> Callable[[Callable[..., T]], Variable[T]]: ...


def variable(
    fn: Callable[..., T] | None = None,
    *,
    context: Any = None,
    system: ConstraintSystem | None = None,
) -> Variable[T] | Callable[[Callable[..., T]], Variable[T]]:
    """Decorator/factory to create a formula Variable from a function.

    Usage:
        x = Variable(3)

        @variable
        def doubled():
            return x.value * 2

        doubled.value  # 6
        x.value = 5
        doubled.value  # 10

        @variable(context=totals)
        def recorded(self):
            self.append(x.value)
            return len(self)
    """

    def build(f: Callable[..., T]) -> Variable[T]:
        return Variable(formula=f, context=context, system=system)

    if fn is None:
        return build
    return build(fn)
