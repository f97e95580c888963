"""
Main entry point for a reconkit operator.

Wires configuration, metrics, CRD establishment, the informer, the
controller and the status server together. The resource chain is built from
the resource classes installed under the ``reconkit.resources`` entry-point
group.
"""

import asyncio
import logging
import os
import signal
from typing import List, Optional, Sequence

from reconkit.api import StatusServer
from reconkit.config import Config, get_config
from reconkit.controller import Controller, ControllerConfig
from reconkit.crd import CRDDescriptor, ensure, load_descriptor
from reconkit.errors import ConfigurationError
from reconkit.events import BusEventRecorder, EventBus
from reconkit.informer import Informer, ListOptions
from reconkit.k8s import (
    CustomObjectFinalizerPatcher,
    CustomObjectWatcher,
    KubernetesCRDBackend,
    KubernetesEventRecorder,
    load_config,
)
from reconkit.metrics import OperatorMetrics
from reconkit.registry import ResourceRegistry, get_registry
from reconkit.resources import Resource, WrapConfig, wrap

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class Application:
    """Main application that orchestrates the operator components."""

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[ResourceRegistry] = None,
    ):
        self.config = config or get_config()
        self.registry = registry or get_registry()
        self.metrics: Optional[OperatorMetrics] = None
        self.event_bus: Optional[EventBus] = None
        self.descriptor: Optional[CRDDescriptor] = None
        self.informer: Optional[Informer] = None
        self.controller: Optional[Controller] = None
        self.server: Optional[StatusServer] = None
        self.running = False
        self._cancel = asyncio.Event()

    def build_chain(self) -> List[Resource]:
        """Instantiate and decorate the configured resources."""
        self.registry.discover()
        names: Sequence[str] = (
            self.config.resources.enabled_resources or self.registry.list_resources()
        )
        resources = self.registry.build_chain(names)
        logger.info(f"Resource chain: {', '.join(r.name for r in resources)}")
        return wrap(
            resources,
            WrapConfig(
                name=self.config.operator.name,
                backoff_policy=self.config.retry.to_policy(),
                metrics=self.metrics,
            ),
        )

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing operator")
        op = self.config.operator
        if not op.crd_manifest:
            raise ConfigurationError("CRD_MANIFEST must point to the CRD manifest")

        load_config()
        self.metrics = OperatorMetrics()
        self.event_bus = EventBus()

        self.descriptor = load_descriptor(op.crd_manifest)
        await ensure(
            self.descriptor,
            KubernetesCRDBackend(),
            self.config.establish.to_policy(),
            cancel=self._cancel,
        )

        d = self.descriptor
        self.controller = Controller(
            finalizers=CustomObjectFinalizerPatcher(d.group, d.version, d.plural),
            resources=self.build_chain(),
            config=ControllerConfig(
                name=op.name,
                finalizer_domain=op.finalizer_domain,
                max_concurrent_reconciles=self.config.controller.max_concurrent_reconciles,
                pause_annotations=self.config.controller.pause_annotations,
            ),
            metrics=self.metrics,
            recorders=[
                BusEventRecorder(self.event_bus),
                KubernetesEventRecorder(component=op.name),
            ],
        )

        self.informer = Informer(
            CustomObjectWatcher(d.group, d.version, d.plural),
            list_options=ListOptions(
                namespace=op.namespace, label_selector=op.label_selector
            ),
            rate_wait=self.config.informer.rate_wait,
            resync_period=self.config.informer.resync_period,
            metrics=self.metrics,
        )

        api = self.config.api
        self.server = StatusServer(
            self.metrics,
            event_bus=self.event_bus,
            host=api.host,
            port=api.port,
            name=op.name,
            log_level=api.log_level,
        )
        logger.info("All components initialized")

    async def start(self):
        """Start the application."""
        if not self.controller:
            await self.initialize()

        self.running = True
        logger.info(f"Starting operator {self.config.operator.name}")

        server_task = asyncio.create_task(self.server.start())
        streams = await self.informer.watch(self._cancel)
        self.server.ready = True

        try:
            await asyncio.gather(self.controller.start(streams), server_task)
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")

    async def stop(self):
        """Stop the application gracefully."""
        if not self.running and self._cancel.is_set():
            return
        logger.info("Stopping operator")
        self.running = False
        self._cancel.set()

        if self.event_bus:
            # Ends open event streams
            self.event_bus.close()

        if self.server:
            self.server.ready = False
            await self.server.stop()

        if self.controller:
            await self.controller.stop()

        if self.informer:
            await self.informer.join()

        if self.metrics:
            self.metrics.close()

        logger.info("Operator stopped")


async def main():
    """Main entry point."""
    app = Application()

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
