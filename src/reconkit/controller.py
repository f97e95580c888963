"""
Operator Controller - Drives reconciliation of watched objects.

Consumes the informer streams and runs the resource chain for every event.
Passes for different objects run in parallel, bounded by a semaphore. Passes
for the same object are serialized in arrival order. Events arriving while
a pass for their object is already waiting are merged into that pass, which
then runs with the newest object.

Deletion is gated by a finalizer. Alive objects get the operator's finalizer
before any resource runs. Once deletion was requested the delete chain runs
and the finalizer is only removed when a resource signalled that deletion is
allowed.
"""

import asyncio
import inspect
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from reconkit.context import (
    ControlSignals,
    ObjectPhase,
    ReconcileContext,
    is_deletion_allowed,
)
from reconkit.errors import ConfigurationError, ExecutionFailedError, OperatorError
from reconkit.events import EventRecorder, EventType
from reconkit.finalizer import (
    DEFAULT_FINALIZER_DOMAIN,
    FinalizerPatcher,
    finalizer_name,
)
from reconkit.informer.informer import InformerStreams
from reconkit.informer.watcher import WatchEvent, WatchEventType
from reconkit.metrics import OperatorMetrics
from reconkit.objects import ObservedObject
from reconkit.resources.base import Resource
from reconkit.resources.chain import process_create, process_delete, process_update

logger = logging.getLogger(__name__)

DEFAULT_PAUSE_ANNOTATIONS: Dict[str, str] = {
    "reconkit.io/paused": "true",
    "cluster.x-k8s.io/paused": "true",
}

ResourceRouter = Callable[[ReconcileContext, ObservedObject], Any]
InitContext = Callable[[ReconcileContext, ObservedObject], Any]


@dataclass
class QueuedPass:
    """A pass waiting for its object's lock or a free slot."""

    obj: ObservedObject
    event_type: Any
    task: Optional[asyncio.Task] = None

    def merge(self, obj: ObservedObject, event_type: Any) -> None:
        """Take over a later event. A first sight stays one unless the object is gone."""
        if self.event_type != WatchEventType.ADDED or event_type == WatchEventType.DELETED:
            self.event_type = event_type
        self.obj = obj


@dataclass
class ControllerConfig:
    """Configuration for the controller."""

    name: str = "reconkit"
    finalizer_domain: str = DEFAULT_FINALIZER_DOMAIN
    max_concurrent_reconciles: int = 5
    # Merged over the default pause annotations
    pause_annotations: Optional[Dict[str, str]] = None

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("controller name must not be empty")
        if self.max_concurrent_reconciles < 1:
            raise ConfigurationError("max_concurrent_reconciles must be at least 1")
        merged = dict(DEFAULT_PAUSE_ANNOTATIONS)
        merged.update(self.pause_annotations or {})
        self.pause_annotations = merged

    @property
    def finalizer(self) -> str:
        return finalizer_name(self.name, self.finalizer_domain)


def classify(obj: ObservedObject, finalizer: str, removed: bool = False) -> ObjectPhase:
    """
    Determine the lifecycle phase of an object.

    Args:
        obj: The object.
        finalizer: The operator's finalizer token.
        removed: Whether the object was reported as deleted by the watch.
    """
    if removed:
        return ObjectPhase.REMOVED
    if not obj.deletion_requested:
        return ObjectPhase.ALIVE
    if obj.has_finalizer(finalizer):
        return ObjectPhase.DELETION_REQUESTED
    return ObjectPhase.REMOVED


def _event_label(obj: ObservedObject, event_type: Any) -> str:
    if event_type == WatchEventType.DELETED or obj.deletion_requested:
        return "delete"
    if event_type == WatchEventType.ADDED:
        return "create"
    return "update"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Controller:
    """
    Reconciliation engine for one kind of object.

    Args:
        finalizers: API used to add and remove the finalizer.
        resources: Static resource chain used for every object.
        resource_router: Callable choosing the chain per object. Takes
            precedence over ``resources``. May be a coroutine function.
        config: Controller configuration.
        metrics: Optional metrics owner.
        recorders: Event recorders notified about failures and finalizer
            removal.
        init_ctx: Callable preparing the context before every pass. It gets
            the context and the object and returns the context to use. May be
            a coroutine function.
    """

    def __init__(
        self,
        finalizers: FinalizerPatcher,
        resources: Optional[Sequence[Resource]] = None,
        resource_router: Optional[ResourceRouter] = None,
        config: Optional[ControllerConfig] = None,
        metrics: Optional[OperatorMetrics] = None,
        recorders: Optional[Sequence[EventRecorder]] = None,
        init_ctx: Optional[InitContext] = None,
    ):
        if finalizers is None:
            raise ConfigurationError("controller requires a finalizer patcher")
        if resource_router is None:
            if resources is None:
                raise ConfigurationError(
                    "controller requires resources or a resource router"
                )
            if len(resources) == 0:
                raise ConfigurationError("controller resources must not be empty")

        self.finalizers = finalizers
        self.resources: List[Resource] = list(resources or [])
        self.resource_router = resource_router
        self.config = config or ControllerConfig()
        self.metrics = metrics
        self.recorders: List[EventRecorder] = list(recorders or [])
        self.init_ctx = init_ctx

        self.semaphore = asyncio.Semaphore(self.config.max_concurrent_reconciles)
        self.running = False
        self._shutdown_event = asyncio.Event()
        self._loops = itertools.count(1)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_refs: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._queued: Dict[str, QueuedPass] = {}

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def finalizer(self) -> str:
        return self.config.finalizer

    async def start(self, streams: InformerStreams) -> None:
        """
        Consume the informer streams until they are closed.

        Returns after the streams closed and all in-flight passes finished.
        """
        logger.info(f"Starting controller {self.name}")
        self.running = True
        self._shutdown_event.clear()

        try:
            await asyncio.gather(
                self._consume(streams.updates),
                self._consume(streams.deletes),
                self._consume_errors(streams.errors),
            )
        finally:
            await self._drain()
            self.running = False
            logger.info(f"Controller {self.name} stopped consuming events")

    async def stop(self) -> None:
        """Signal shutdown and wait for in-flight passes to finish."""
        logger.info(f"Stopping controller {self.name}")
        self.running = False
        self._shutdown_event.set()
        await self._drain()

    async def _drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _consume(self, events: asyncio.Queue) -> None:
        while True:
            event = await events.get()
            if event is None:
                return
            self.dispatch(event)

    async def _consume_errors(self, errors: asyncio.Queue) -> None:
        while True:
            err = await errors.get()
            if err is None:
                return
            logger.error(f"Informer error in controller {self.name}: {err}")

    def dispatch(self, event: WatchEvent) -> asyncio.Task:
        """
        Schedule a reconciliation pass for the object of a watch event.

        If a pass for the same object is still waiting, the event is merged
        into it and its task is returned.
        """
        key = event.object.key
        queued = self._queued.get(key)
        if queued is not None:
            queued.merge(event.object, event.type)
            logger.debug(f"Merged event into waiting pass for {key}")
            return queued.task

        queued = QueuedPass(event.object, event.type)
        self._queued[key] = queued
        task = asyncio.create_task(self._reconcile_queued(queued))
        queued.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._lock_refs[key] = self._lock_refs.get(key, 0) + 1
        return lock

    def _release_lock(self, key: str) -> None:
        self._lock_refs[key] -= 1
        if self._lock_refs[key] == 0:
            del self._lock_refs[key]
            del self._locks[key]

    async def reconcile(
        self, obj: ObservedObject, event_type: Any = WatchEventType.MODIFIED
    ) -> bool:
        """
        Run one reconciliation pass for an object.

        Passes for the same object key never overlap. Errors are logged,
        counted and recorded as Warning events, never raised.

        Args:
            obj: The object to reconcile.
            event_type: The watch event type which triggered the pass.

        Returns:
            True if the pass finished without error.
        """
        return await self._reconcile_queued(QueuedPass(obj, event_type))

    async def _reconcile_queued(self, queued: QueuedPass) -> bool:
        key = queued.obj.key
        lock = self._lock_for(key)
        try:
            async with lock:
                async with self.semaphore:
                    # From here on later events queue a new pass
                    if self._queued.get(key) is queued:
                        del self._queued[key]
                    return await self._run(queued.obj, queued.event_type)
        finally:
            if self._queued.get(key) is queued:
                del self._queued[key]
            self._release_lock(key)

    async def _run(self, obj: ObservedObject, event_type: Any) -> bool:
        label = _event_label(obj, event_type)
        ctx = ReconcileContext(
            signals=ControlSignals.new(),
            key=obj.key,
            loop=next(self._loops),
            event=label,
            shutdown=self._shutdown_event,
        )
        start_time = time.monotonic()
        success = True

        try:
            if self.init_ctx is not None:
                ctx = await _maybe_await(self.init_ctx(ctx, obj))
            await self._reconcile(ctx, obj, event_type)
        except Exception as e:
            success = False
            logger.error(
                f"Error reconciling {obj.key} (loop {ctx.loop}): {e}",
                exc_info=True,
            )
            if self.metrics is not None:
                self.metrics.reconcile_errors.labels(self.name, label).inc()
            reason = e.reason if isinstance(e, OperatorError) else "ReconcileFailed"
            await self._record(obj, EventType.WARNING, reason, str(e))
        finally:
            if self.metrics is not None:
                self.metrics.reconcile_duration.labels(self.name, label).observe(
                    time.monotonic() - start_time
                )
                self.metrics.last_reconciled.labels(self.name).set_to_current_time()

        return success

    async def _reconcile(
        self, ctx: ReconcileContext, obj: ObservedObject, event_type: Any
    ) -> None:
        finalizer = self.finalizer
        phase = classify(obj, finalizer, event_type == WatchEventType.DELETED)
        ctx.phase = phase

        if phase is ObjectPhase.REMOVED:
            logger.debug(f"Object {obj.key} is gone, nothing to do")
            return

        if self.is_paused(obj):
            logger.info(f"Skipping reconciliation of paused object {obj.key}")
            return

        resources = await self._resources_for(ctx, obj)

        if phase is ObjectPhase.ALIVE:
            if not obj.has_finalizer(finalizer):
                await self.finalizers.add(obj, finalizer)
                logger.info(f"Added finalizer {finalizer} to {obj.key}")

            if event_type == WatchEventType.ADDED:
                await process_create(ctx, obj, resources)
            else:
                await process_update(ctx, obj, resources)
            logger.info(f"Reconciled {obj.key} (loop {ctx.loop})")
            return

        ctx.phase = ObjectPhase.FINALIZING
        await process_delete(ctx, obj, resources)

        if not is_deletion_allowed(ctx):
            logger.info(
                f"Keeping finalizer {finalizer} on {obj.key}: deletion not allowed yet"
            )
            return

        await self.finalizers.remove(obj, finalizer)
        logger.info(f"Removed finalizer {finalizer} from {obj.key}")
        await self._record(
            obj,
            EventType.NORMAL,
            "FinalizerRemoved",
            f"Removed finalizer {finalizer}",
        )

    def is_paused(self, obj: ObservedObject) -> bool:
        """Whether the object carries one of the configured pause annotations."""
        for annotation, value in self.config.pause_annotations.items():
            if obj.annotations.get(annotation) == value:
                return True
        return False

    async def _resources_for(
        self, ctx: ReconcileContext, obj: ObservedObject
    ) -> List[Resource]:
        if self.resource_router is None:
            return self.resources
        resources = await _maybe_await(self.resource_router(ctx, obj))
        if not resources:
            raise ExecutionFailedError(f"resource router returned no resources for {obj.key}")
        return list(resources)

    async def _record(
        self, obj: ObservedObject, event_type: EventType, reason: str, message: str
    ) -> None:
        for recorder in self.recorders:
            try:
                await recorder.emit(obj, event_type, reason, message)
            except Exception as e:
                logger.warning(f"Failed to record {reason} event for {obj.key}: {e}")
