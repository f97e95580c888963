"""
Metrics - Prometheus instruments for resources, controllers and informers.

All instruments live in an explicit ``CollectorRegistry`` owned by an
``OperatorMetrics`` instance. Nothing is registered in the process-wide
default registry, so several operators (or test cases) can coexist.
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "reconkit"


class OperatorMetrics:
    """
    Owner of the metric instruments of one operator process.

    Args:
        registry: Registry to register into. A new one is created if omitted.
        namespace: Prefix of every metric name.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        namespace: str = DEFAULT_NAMESPACE,
    ):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.namespace = namespace
        self._extra = []
        self._closed = False

        resource_labels = ["controller", "resource", "operation"]
        self.resource_operations = Counter(
            "operation_total",
            "Number of resource operations executed.",
            resource_labels,
            namespace=namespace,
            subsystem="resource",
            registry=self.registry,
        )
        self.resource_errors = Counter(
            "operation_error_total",
            "Number of resource operations that raised an error.",
            resource_labels,
            namespace=namespace,
            subsystem="resource",
            registry=self.registry,
        )
        self.resource_duration = Histogram(
            "operation_duration_seconds",
            "Duration of resource operations.",
            resource_labels,
            namespace=namespace,
            subsystem="resource",
            registry=self.registry,
        )

        self.reconcile_duration = Histogram(
            "event_duration_seconds",
            "Duration of reconciliation passes by event kind.",
            ["controller", "event"],
            namespace=namespace,
            subsystem="controller",
            registry=self.registry,
        )
        self.reconcile_errors = Counter(
            "error_total",
            "Number of failed reconciliation passes.",
            ["controller", "event"],
            namespace=namespace,
            subsystem="controller",
            registry=self.registry,
        )
        self.last_reconciled = Gauge(
            "last_reconciled_timestamp_seconds",
            "Unix time of the last finished reconciliation pass.",
            ["controller"],
            namespace=namespace,
            subsystem="controller",
            registry=self.registry,
        )

        self.watch_events = Counter(
            "watch_event_total",
            "Number of watch events received by kind.",
            ["kind"],
            namespace=namespace,
            subsystem="informer",
            registry=self.registry,
        )
        self.cache_size = Gauge(
            "cache_size",
            "Number of objects in the informer cache.",
            namespace=namespace,
            subsystem="informer",
            registry=self.registry,
        )
        self.cache_last_updated = Gauge(
            "cache_last_updated_timestamp_seconds",
            "Unix time of the last informer cache change.",
            namespace=namespace,
            subsystem="informer",
            registry=self.registry,
        )
        self.watcher_closes = Counter(
            "watcher_close_total",
            "Number of times the live watch stream was closed.",
            namespace=namespace,
            subsystem="informer",
            registry=self.registry,
        )

    def register(self, collector) -> bool:
        """
        Register a custom collector implementing ``describe``/``collect``.

        Returns:
            True if the collector was registered. Duplicate or conflicting
            registrations are logged and ignored.
        """
        try:
            self.registry.register(collector)
        except ValueError as e:
            logger.warning(f"Failed to register collector {collector!r}: {e}")
            return False
        self._extra.append(collector)
        return True

    def unregister(self, collector) -> None:
        """Remove a collector registered through :meth:`register`."""
        if collector not in self._extra:
            return
        self._extra.remove(collector)
        try:
            self.registry.unregister(collector)
        except KeyError as e:
            logger.warning(f"Failed to unregister collector {collector!r}: {e}")

    def close(self) -> None:
        """Unregister custom collectors. Safe to call more than once."""
        if self._closed:
            return
        for collector in list(self._extra):
            self.unregister(collector)
        self._closed = True
        logger.info("Metrics closed")
