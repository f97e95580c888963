"""
Reconcile Context - Control signals carried through one reconciliation pass.

A ``ReconcileContext`` is created fresh for every pass of every object and
handed to each resource operation. It holds a ``ControlSignals`` value with
set-once flags that resources use to talk to each other and to the
controller, e.g. to tell the controller that deletion is safe now.

Signals are cooperative and not lock guarded: only one pass runs at a time for
a given object, and each pass owns its signals exclusively.
"""

import asyncio
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class Signal:
    """A set-once boolean flag. Once set it stays set."""

    __slots__ = ("_set",)

    def __init__(self):
        self._set = False

    def set(self) -> None:
        self._set = True

    def is_set(self) -> bool:
        return self._set

    def __repr__(self) -> str:
        return f"Signal(set={self._set})"


@dataclass
class ControlSignals:
    """
    Slots for the control signals of a pass.

    A slot which is ``None`` is not installed: reading it yields ``False`` and
    setting it does nothing.
    """

    canceled: Optional[Signal] = None
    deletion_allowed: Optional[Signal] = None
    update_allowed: Optional[Signal] = None
    update_necessary: Optional[Signal] = None
    resource_canceled: Optional[Signal] = None

    @classmethod
    def new(cls) -> "ControlSignals":
        """Create signals with every slot installed and unset."""
        return cls(
            canceled=Signal(),
            deletion_allowed=Signal(),
            update_allowed=Signal(),
            update_necessary=Signal(),
            resource_canceled=Signal(),
        )

    def for_resource(self) -> "ControlSignals":
        """
        Share the pass-wide slots but install a fresh resource-canceled slot.

        The resource-canceled slot is only installed if the pass had one.
        """
        if self.resource_canceled is None:
            return dataclasses.replace(self)
        return dataclasses.replace(self, resource_canceled=Signal())


class ObjectPhase(Enum):
    """Lifecycle phases of a reconciled object."""

    ALIVE = "alive"
    DELETION_REQUESTED = "deletion_requested"
    FINALIZING = "finalizing"
    REMOVED = "removed"


@dataclass
class ReconcileContext:
    """Per-pass context handed to every resource operation."""

    signals: ControlSignals = field(default_factory=ControlSignals)
    key: str = ""
    loop: int = 0
    event: str = ""
    resource: str = ""
    phase: Optional[ObjectPhase] = None
    # Set by the controller on shutdown; backoff loops stop waiting on it.
    shutdown: Optional[asyncio.Event] = None
    values: Dict[str, object] = field(default_factory=dict)

    def for_resource(self, name: str) -> "ReconcileContext":
        """Derive the context used while executing the named resource."""
        return dataclasses.replace(
            self, resource=name, signals=self.signals.for_resource()
        )

    def log_extra(self) -> Dict[str, object]:
        """Keys attached to log records emitted during this pass."""
        return {
            "object": self.key,
            "loop": self.loop,
            "event": self.event,
            "resource": self.resource,
        }


def _slot(ctx: Optional[ReconcileContext], name: str) -> Optional[Signal]:
    if ctx is None:
        return None
    return getattr(ctx.signals, name)


def _is(ctx: Optional[ReconcileContext], name: str) -> bool:
    signal = _slot(ctx, name)
    return signal is not None and signal.is_set()


def _set(ctx: Optional[ReconcileContext], name: str) -> None:
    signal = _slot(ctx, name)
    if signal is not None:
        signal.set()


def is_canceled(ctx: Optional[ReconcileContext]) -> bool:
    """Whether the whole reconciliation pass was canceled."""
    return _is(ctx, "canceled")


def set_canceled(ctx: Optional[ReconcileContext]) -> None:
    """Stop the pass after the current step. Remaining resources are skipped."""
    _set(ctx, "canceled")


def is_resource_canceled(ctx: Optional[ReconcileContext]) -> bool:
    """Whether the current resource was canceled."""
    return _is(ctx, "resource_canceled")


def set_resource_canceled(ctx: Optional[ReconcileContext]) -> None:
    """Skip the remaining steps of the current resource only."""
    _set(ctx, "resource_canceled")


def is_deletion_allowed(ctx: Optional[ReconcileContext]) -> bool:
    return _is(ctx, "deletion_allowed")


def set_deletion_allowed(ctx: Optional[ReconcileContext]) -> None:
    """
    Signal that cleanup finished and the finalizer may be removed.

    The controller only honours the signal when the whole delete chain
    finished without error.
    """
    _set(ctx, "deletion_allowed")


def is_update_allowed(ctx: Optional[ReconcileContext]) -> bool:
    return _is(ctx, "update_allowed")


def set_update_allowed(ctx: Optional[ReconcileContext]) -> None:
    _set(ctx, "update_allowed")


def is_update_necessary(ctx: Optional[ReconcileContext]) -> bool:
    return _is(ctx, "update_necessary")


def set_update_necessary(ctx: Optional[ReconcileContext]) -> None:
    _set(ctx, "update_necessary")
