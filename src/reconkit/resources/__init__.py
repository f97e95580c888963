"""
Resources - The unit of reconciliation work and its chain execution.
"""

from reconkit.resources.base import Resource, UpdateStates
from reconkit.resources.chain import process_create, process_delete, process_update
from reconkit.resources.decorator import ResourceDecorator
from reconkit.resources.logresource import LogResource
from reconkit.resources.metricsresource import MetricsResource
from reconkit.resources.retryresource import RetryResource
from reconkit.resources.state import to_type
from reconkit.resources.wrap import WrapConfig, wrap

__all__ = [
    "LogResource",
    "MetricsResource",
    "Resource",
    "ResourceDecorator",
    "RetryResource",
    "UpdateStates",
    "WrapConfig",
    "process_create",
    "process_delete",
    "process_update",
    "to_type",
    "wrap",
]
