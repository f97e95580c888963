"""Unit tests for control signals and the reconcile context."""

import pytest

from reconkit.context import (
    ControlSignals,
    ReconcileContext,
    Signal,
    is_canceled,
    is_deletion_allowed,
    is_resource_canceled,
    is_update_allowed,
    is_update_necessary,
    set_canceled,
    set_deletion_allowed,
    set_resource_canceled,
    set_update_allowed,
    set_update_necessary,
)

SIGNALS = [
    (is_canceled, set_canceled),
    (is_deletion_allowed, set_deletion_allowed),
    (is_update_allowed, set_update_allowed),
    (is_update_necessary, set_update_necessary),
    (is_resource_canceled, set_resource_canceled),
]


class TestSignal:
    """Tests for the set-once Signal."""

    def test_starts_unset(self):
        assert Signal().is_set() is False

    def test_set_is_sticky(self):
        signal = Signal()
        signal.set()
        signal.set()
        assert signal.is_set() is True


class TestSignalFunctions:
    """Tests for the is_*/set_* helpers."""

    @pytest.mark.parametrize("is_fn,set_fn", SIGNALS)
    def test_fresh_signals_are_unset(self, is_fn, set_fn):
        ctx = ReconcileContext(signals=ControlSignals.new())
        assert is_fn(ctx) is False

    @pytest.mark.parametrize("is_fn,set_fn", SIGNALS)
    def test_set_then_read(self, is_fn, set_fn):
        ctx = ReconcileContext(signals=ControlSignals.new())
        set_fn(ctx)
        assert is_fn(ctx) is True

    @pytest.mark.parametrize("is_fn,set_fn", SIGNALS)
    def test_setting_twice_is_noop(self, is_fn, set_fn):
        ctx = ReconcileContext(signals=ControlSignals.new())
        set_fn(ctx)
        set_fn(ctx)
        assert is_fn(ctx) is True

    @pytest.mark.parametrize("is_fn,set_fn", SIGNALS)
    def test_missing_slot_reads_false(self, is_fn, set_fn):
        ctx = ReconcileContext()
        set_fn(ctx)
        assert is_fn(ctx) is False

    @pytest.mark.parametrize("is_fn,set_fn", SIGNALS)
    def test_missing_context(self, is_fn, set_fn):
        set_fn(None)
        assert is_fn(None) is False

    def test_signals_are_independent(self):
        ctx = ReconcileContext(signals=ControlSignals.new())
        set_deletion_allowed(ctx)
        assert is_deletion_allowed(ctx) is True
        assert is_canceled(ctx) is False
        assert is_update_allowed(ctx) is False
        assert is_update_necessary(ctx) is False

    def test_passes_do_not_share_signals(self):
        first = ReconcileContext(signals=ControlSignals.new())
        second = ReconcileContext(signals=ControlSignals.new())
        set_deletion_allowed(first)
        assert is_deletion_allowed(second) is False


class TestReconcileContext:
    """Tests for deriving resource contexts."""

    def test_for_resource_shares_pass_signals(self):
        ctx = ReconcileContext(signals=ControlSignals.new(), key="ns/a", loop=3)
        derived = ctx.for_resource("configmap")
        set_deletion_allowed(derived)
        set_canceled(derived)
        assert is_deletion_allowed(ctx) is True
        assert is_canceled(ctx) is True
        assert derived.resource == "configmap"
        assert derived.loop == 3

    def test_for_resource_fresh_resource_canceled(self):
        ctx = ReconcileContext(signals=ControlSignals.new())
        first = ctx.for_resource("a")
        set_resource_canceled(first)
        second = ctx.for_resource("b")
        assert is_resource_canceled(first) is True
        assert is_resource_canceled(second) is False

    def test_for_resource_keeps_missing_slot_missing(self):
        ctx = ReconcileContext()
        derived = ctx.for_resource("a")
        set_resource_canceled(derived)
        assert is_resource_canceled(derived) is False

    def test_log_extra(self):
        ctx = ReconcileContext(key="ns/a", loop=7, event="update", resource="r")
        assert ctx.log_extra() == {
            "object": "ns/a",
            "loop": 7,
            "event": "update",
            "resource": "r",
        }
