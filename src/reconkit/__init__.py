"""
reconkit - Framework for controllers reconciling objects of a cluster API.

Controller authors implement ``Resource`` classes. The framework watches the
objects, runs the resource chain for every change and gates deletion with a
finalizer until a resource signals that cleanup finished.
"""

from reconkit.backoff import BackoffPolicy
from reconkit.context import (
    ControlSignals,
    ObjectPhase,
    ReconcileContext,
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
from reconkit.controller import Controller, ControllerConfig
from reconkit.metrics import OperatorMetrics
from reconkit.objects import ObservedObject
from reconkit.resources import Resource, UpdateStates, WrapConfig, to_type, wrap

__version__ = "1.0.0"

__all__ = [
    "BackoffPolicy",
    "ControlSignals",
    "Controller",
    "ControllerConfig",
    "ObjectPhase",
    "ObservedObject",
    "OperatorMetrics",
    "ReconcileContext",
    "Resource",
    "UpdateStates",
    "WrapConfig",
    "is_canceled",
    "is_deletion_allowed",
    "is_resource_canceled",
    "is_update_allowed",
    "is_update_necessary",
    "set_canceled",
    "set_deletion_allowed",
    "set_resource_canceled",
    "set_update_allowed",
    "set_update_necessary",
    "to_type",
    "wrap",
]
