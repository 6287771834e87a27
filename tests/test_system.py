"""Tests for ConstraintSystem, add_daemon, and the default system."""

import logging

import pytest

from cstr import (
    ConstraintSystem,
    Variable,
    add_daemon,
    get_pending_daemon_count,
    get_system,
)


class TestDaemonQueue:
    def test_add_daemon_only_queues(self):
        system = ConstraintSystem()
        log = []
        system.add_daemon(lambda: log.append(1))
        assert log == []
        assert system.pending_daemon_count == 1

    def test_flush_runs_in_registration_order(self):
        system = ConstraintSystem()
        log = []
        for i in range(3):
            system.add_daemon(lambda i=i: log.append(i))
        system.flush()
        assert log == [0, 1, 2]
        assert system.pending_daemon_count == 0

    def test_flush_runs_each_daemon_once(self):
        system = ConstraintSystem()
        log = []
        system.add_daemon(lambda: log.append("a"))
        system.flush()
        system.flush()
        assert log == ["a"]

    def test_empty_flush_is_noop(self):
        system = ConstraintSystem()
        system.flush()
        assert system.pending_daemon_count == 0

    def test_reentrant_flush_is_noop(self):
        """Daemons added during a flush wait for the next one."""
        system = ConstraintSystem()
        log = []

        def first():
            log.append("first")
            system.add_daemon(lambda: log.append("late"))
            system.flush()

        system.add_daemon(first)
        system.add_daemon(lambda: log.append("second"))
        system.flush()
        assert log == ["first", "second"]
        assert system.pending_daemon_count == 1

        system.flush()
        assert log == ["first", "second", "late"]

    def test_failing_daemon_propagates_and_requeues_the_rest(self):
        system = ConstraintSystem()
        log = []

        def boom():
            system.add_daemon(lambda: log.append("added during flush"))
            raise RuntimeError("boom")

        system.add_daemon(lambda: log.append("before"))
        system.add_daemon(boom)
        system.add_daemon(lambda: log.append("after"))

        with pytest.raises(RuntimeError, match="boom"):
            system.flush()
        assert log == ["before"]

        # Not stuck in flushing; the failed daemon is consumed.
        system.flush()
        assert log == ["before", "after", "added during flush"]
        assert system.pending_daemon_count == 0

    def test_flush_logs_batch_size(self, caplog):
        system = ConstraintSystem()
        system.add_daemon(lambda: None)
        system.add_daemon(lambda: None)
        with caplog.at_level(logging.DEBUG, logger="cstr.system"):
            system.flush()
        assert "Flushing 2 daemons" in caplog.text


class TestDemandStack:
    def test_current_tracks_innermost_formula(self):
        seen = []
        outer = Variable(formula=lambda: inner.value)
        inner = Variable(formula=lambda: seen.append(get_system().current) or 1)
        assert get_system().current is None
        assert outer.value == 1
        assert seen == [inner]
        assert get_system().current is None

    def test_demanding_pops_on_exception(self):
        system = ConstraintSystem()
        v = Variable(0, system=system)
        with pytest.raises(ValueError):
            with system._demanding(v):
                assert system.current is v
                raise ValueError
        assert system.current is None

    def test_repr(self):
        system = ConstraintSystem()
        system.add_daemon(lambda: None)
        assert repr(system) == "ConstraintSystem(depth=0, pending=1)"


class TestModuleDaemons:
    def test_add_daemon_targets_default_system(self, fresh_system):
        add_daemon(lambda: None)
        assert fresh_system.pending_daemon_count == 1
        assert get_pending_daemon_count() == 1

    def test_add_daemon_explicit_system(self):
        other = ConstraintSystem()
        add_daemon(lambda: None, system=other)
        assert other.pending_daemon_count == 1
        assert get_pending_daemon_count() == 0

    def test_daemon_fires_once_on_next_read(self):
        n = 0

        def bump():
            nonlocal n
            n += 1

        add_daemon(bump)
        x = Variable(0)
        y = Variable(0, formula=lambda: 10 * x.value)
        assert n == 0
        assert x.value == 0
        assert n == 1
        assert y.value == 0
        x.value = 1
        assert x.value == 1
        assert y.value == 10
        x.value = 2
        assert x.value == 2
        assert y.value == 20
        assert n == 1

    def test_daemon_must_be_added_again(self):
        log = []
        x = Variable(0)
        add_daemon(lambda: log.append("tick"))
        x.value
        x.value
        add_daemon(lambda: log.append("tick"))
        x.value
        assert log == ["tick", "tick"]

    def test_daemon_runs_before_formula(self):
        """A daemon may write a Variable the read is about to compute from."""
        x = Variable(1)
        y = Variable(formula=lambda: x.value + 1)
        assert y.value == 2

        def set_x():
            x.value = 10

        add_daemon(set_x)
        assert y.value == 11

    def test_variable_on_other_system_does_not_flush_default(self):
        other = ConstraintSystem()
        log = []
        add_daemon(lambda: log.append("default"))
        v = Variable(1, system=other)
        assert v.value == 1
        assert log == []
        Variable(2).value
        assert log == ["default"]
