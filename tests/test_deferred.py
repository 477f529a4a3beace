"""Tests for deferred actions."""

import pytest

from formcraft.deferred import DeferredAction


class TestDeferredAction:
    """Test cancel and run semantics without waiting on timers."""

    def test_cancel_before_deadline(self):
        """A cancelled action never runs."""
        calls = []
        action = DeferredAction(lambda: calls.append("ran"), delay_seconds=60)
        action.start()
        assert action.pending is True
        assert action.cancel() is True
        assert action.pending is False
        assert action.cancelled is True
        assert action.run_now() is False
        assert calls == []

    def test_run_now(self):
        """run_now runs the action once."""
        calls = []
        action = DeferredAction(lambda: calls.append("ran"), delay_seconds=60)
        action.start()
        assert action.run_now() is True
        assert action.completed is True
        assert action.run_now() is False
        assert action.cancel() is False
        assert calls == ["ran"]

    def test_run_now_propagates_errors(self):
        """Errors from run_now reach the caller."""
        def boom():
            raise RuntimeError("boom")

        action = DeferredAction(boom, delay_seconds=60)
        with pytest.raises(RuntimeError):
            action.run_now()
        assert action.completed is False
        assert action.pending is False

    def test_timer_fires(self):
        """A started action runs after its delay."""
        calls = []
        action = DeferredAction(lambda: calls.append("ran"), delay_seconds=0)
        action.start()
        action._timer.join(timeout=5)
        assert calls == ["ran"]
        assert action.completed is True
