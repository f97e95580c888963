"""
Metrics Resource - Records count, errors and duration of resource operations.

Every operation is labeled with the controller name, the resource name and
the operation name.
"""

import logging
import time
from typing import Any

from reconkit.context import ReconcileContext
from reconkit.errors import ConfigurationError
from reconkit.metrics import OperatorMetrics
from reconkit.resources.base import Resource
from reconkit.resources.decorator import ResourceDecorator

logger = logging.getLogger(__name__)


class MetricsResource(ResourceDecorator):
    """
    Decorator recording Prometheus metrics for each operation.

    Failures to record are logged and never affect the operation itself.
    """

    def __init__(self, resource: Resource, metrics: OperatorMetrics, name: str):
        super().__init__(resource)
        if metrics is None:
            raise ConfigurationError("MetricsResource requires metrics")
        if not name:
            raise ConfigurationError("MetricsResource requires a controller name")
        self.metrics = metrics
        self.controller_name = name

    def _record(self, operation: str, duration: float, failed: bool) -> None:
        labels = (self.controller_name, self.name, operation)
        try:
            self.metrics.resource_operations.labels(*labels).inc()
            self.metrics.resource_duration.labels(*labels).observe(duration)
            if failed:
                self.metrics.resource_errors.labels(*labels).inc()
        except Exception as e:
            logger.warning(
                f"Failed to record metrics for '{operation}' of '{self.name}': {e}"
            )

    async def _call(self, operation: str, ctx: ReconcileContext, *args: Any) -> Any:
        start = time.monotonic()
        try:
            result = await super()._call(operation, ctx, *args)
        except Exception:
            self._record(operation, time.monotonic() - start, failed=True)
            raise
        self._record(operation, time.monotonic() - start, failed=False)
        return result
