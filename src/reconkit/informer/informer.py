"""
Informer - Turns a list/watch source into update and delete notifications.

The informer keeps a cache of the last seen version of every object. Live
watch events are deduplicated against the cache. Every resync period the
objects are listed again and the complete cache is re-emitted, which makes
the list the source of truth: a delete missed by the live watch shows up as a
key that is cached but no longer listed.

All cache mutation happens on a single processing task. The live watch and
the resync timer only feed that task's inbox. Re-emission from the cache is
rate limited on a separate emitter task, so live events never wait behind it.
Keys waiting for re-emission are coalesced: a resync arriving while the
previous one is still being emitted only appends keys not already pending.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from prometheus_client.core import GaugeMetricFamily

from reconkit.backoff import BackoffPolicy, retry_notify, sleep
from reconkit.errors import ConfigurationError, InvalidEventError, OperatorError
from reconkit.informer.watcher import (
    ListOptions,
    WatchEvent,
    WatchEventType,
    Watcher,
)
from reconkit.metrics import DEFAULT_NAMESPACE, OperatorMetrics
from reconkit.objects import ObservedObject

logger = logging.getLogger(__name__)

# Inbox marker asking the processing task to resync.
_RESYNC = object()


@dataclass
class InformerStreams:
    """
    The notification streams of a running informer.

    Each queue yields ``WatchEvent`` values (exceptions for ``errors``) and a
    final ``None`` once the informer stopped.
    """

    updates: asyncio.Queue = field(default_factory=asyncio.Queue)
    deletes: asyncio.Queue = field(default_factory=asyncio.Queue)
    errors: asyncio.Queue = field(default_factory=asyncio.Queue)

    def close(self) -> None:
        self.updates.put_nowait(None)
        self.deletes.put_nowait(None)
        self.errors.put_nowait(None)


class Informer:
    """
    Watch-based event source with caching, rate limiting and resync.

    Args:
        watcher: The list/watch source.
        list_options: Options used for every list and watch call.
        rate_wait: Seconds between two events emitted from the cache.
        resync_period: Seconds between two authoritative resyncs.
        metrics: Optional metrics owner. When given the informer also
            registers itself as a custom collector.
        backoff_policy: Policy for the initial list.
        reopen_wait: Seconds to wait before reopening a closed watch.
    """

    def __init__(
        self,
        watcher: Watcher,
        list_options: Optional[ListOptions] = None,
        rate_wait: float = 1.0,
        resync_period: float = 300.0,
        metrics: Optional[OperatorMetrics] = None,
        backoff_policy: Optional[BackoffPolicy] = None,
        reopen_wait: float = 1.0,
    ):
        if watcher is None:
            raise ConfigurationError("informer requires a watcher")
        if resync_period <= 0:
            raise ConfigurationError("resync period must be positive")
        if rate_wait < 0:
            raise ConfigurationError("rate wait must not be negative")

        self.watcher = watcher
        self.list_options = list_options or ListOptions()
        self.rate_wait = rate_wait
        self.resync_period = resync_period
        self.metrics = metrics
        self.backoff_policy = backoff_policy or BackoffPolicy(
            max_attempts=None, max_elapsed=60.0, initial_interval=0.5
        )
        self.reopen_wait = reopen_wait

        self._cache: Dict[str, ObservedObject] = {}
        # Keys waiting for re-emission, in emission order.
        self._pending: Dict[str, WatchEventType] = {}
        self._pending_ready: Optional[asyncio.Event] = None
        self._inbox: Optional[asyncio.Queue] = None
        self._streams: Optional[InformerStreams] = None
        self._tasks: List[asyncio.Task] = []
        self._supervisor: Optional[asyncio.Task] = None

    @property
    def cache(self) -> Dict[str, ObservedObject]:
        """A snapshot of the cache, keyed by object key."""
        return dict(self._cache)

    async def watch(self, cancel: asyncio.Event) -> InformerStreams:
        """
        Start watching.

        The initial list is retried under the backoff policy. Once it
        succeeded the cache is filled and the streams are returned. The cached
        objects are then emitted first, followed by live events.

        Args:
            cancel: Setting this event stops the informer and closes the
                streams.

        Returns:
            The notification streams.

        Raises:
            ConfigurationError: If the informer is already watching.
            Exception: The last error of the initial list.
        """
        if self._streams is not None:
            raise ConfigurationError("informer is already watching")

        def on_retry(err: BaseException, wait: float) -> None:
            logger.warning(f"Initial list failed, retrying in {wait:.2f}s: {err}")

        objects = await retry_notify(
            lambda: self.watcher.list(self.list_options),
            self.backoff_policy,
            notify=on_retry,
            cancel=cancel,
        )
        for obj in objects:
            self._cache[obj.key] = obj
        self._cache_changed()
        logger.info(f"Informer cache filled with {len(self._cache)} objects")

        self._streams = InformerStreams()
        self._inbox = asyncio.Queue()
        self._pending_ready = asyncio.Event()
        if self.metrics is not None:
            self.metrics.register(self)

        self._schedule(self._cache.keys(), WatchEventType.ADDED)
        self._tasks = [
            asyncio.create_task(self._process(cancel)),
            asyncio.create_task(self._emit(cancel)),
            asyncio.create_task(self._stream(cancel)),
            asyncio.create_task(self._resync_timer(cancel)),
        ]
        self._supervisor = asyncio.create_task(self._supervise(cancel))
        return self._streams

    async def join(self) -> None:
        """Wait until the informer stopped after cancellation."""
        if self._supervisor is not None:
            await self._supervisor

    async def _supervise(self, cancel: asyncio.Event) -> None:
        await cancel.wait()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._streams.close()
        if self.metrics is not None:
            self.metrics.unregister(self)
        logger.info("Informer stopped")

    async def _process(self, cancel: asyncio.Event) -> None:
        while not cancel.is_set():
            item = await self._inbox.get()
            try:
                if item is _RESYNC:
                    await self._resync()
                else:
                    self._handle(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Failed to process watch event: {e}", exc_info=True)
                self._send_error(e)

    async def _stream(self, cancel: asyncio.Event) -> None:
        while not cancel.is_set():
            try:
                async for event in self.watcher.watch(self.list_options):
                    await self._inbox.put(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Watch stream failed: {e}")
                self._send_error(e)

            if self.metrics is not None:
                self.metrics.watcher_closes.inc()
            logger.debug("Watch stream closed, reopening")
            if await sleep(self.reopen_wait, cancel):
                return

    async def _resync_timer(self, cancel: asyncio.Event) -> None:
        while True:
            if await sleep(self.resync_period, cancel):
                return
            await self._inbox.put(_RESYNC)

    async def _resync(self) -> None:
        try:
            objects = await self.watcher.list(self.list_options)
        except Exception as e:
            logger.warning(f"Resync list failed: {e}")
            self._send_error(e)
            return

        listed = {obj.key: obj for obj in objects}
        for key in [k for k in self._cache if k not in listed]:
            gone = self._cache.pop(key)
            logger.info(f"Object {key} disappeared, sending delete")
            self._send(WatchEvent(type=WatchEventType.DELETED, object=gone))

        self._cache.update(listed)
        self._cache_changed()
        logger.debug(f"Resyncing {len(listed)} objects")
        self._schedule(listed.keys(), WatchEventType.MODIFIED)

    def _schedule(self, keys: Iterable[str], event_type: WatchEventType) -> None:
        for key in keys:
            # A key still pending keeps its place and event type.
            self._pending.setdefault(key, event_type)
        if self._pending:
            self._pending_ready.set()

    async def _emit(self, cancel: asyncio.Event) -> None:
        while not cancel.is_set():
            if not self._pending:
                self._pending_ready.clear()
                await self._pending_ready.wait()
                continue

            key = next(iter(self._pending))
            event_type = self._pending.pop(key)
            obj = self._cache.get(key)
            if obj is None:
                # Deleted since it was scheduled
                continue
            self._send(WatchEvent(type=event_type, object=obj))

            if self.rate_wait > 0 and await sleep(self.rate_wait, cancel):
                return

    def _handle(self, event: WatchEvent) -> None:
        if event.type == WatchEventType.ERROR:
            self._send_error(event.error or OperatorError("watch returned an error"))
            return
        if event.type not in (
            WatchEventType.ADDED,
            WatchEventType.MODIFIED,
            WatchEventType.DELETED,
        ) or event.object is None:
            self._send_error(InvalidEventError(f"invalid watch event: {event!r}"))
            return

        obj = event.object
        cached = self._cache.get(obj.key)

        if event.type == WatchEventType.ADDED:
            self._cache[obj.key] = obj
            self._cache_changed()
            if cached is None:
                self._send(event)
        elif event.type == WatchEventType.MODIFIED:
            if (
                cached is not None
                and obj.resource_version
                and cached.resource_version == obj.resource_version
            ):
                logger.debug(f"Dropping duplicate event for {obj.key}")
                return
            self._cache[obj.key] = obj
            self._cache_changed()
            if self._pending.get(obj.key) == WatchEventType.ADDED:
                # First sight not emitted yet
                del self._pending[obj.key]
                event = WatchEvent(type=WatchEventType.ADDED, object=obj)
            self._send(event)
        else:
            self._pending.pop(obj.key, None)
            self._cache.pop(obj.key, None)
            self._cache_changed()
            self._send(event)

    def _send(self, event: WatchEvent) -> None:
        deleting = event.type == WatchEventType.DELETED or (
            event.object is not None and event.object.deletion_requested
        )
        if deleting:
            self._count("delete")
            self._streams.deletes.put_nowait(event)
        else:
            self._count("update")
            self._streams.updates.put_nowait(event)

    def _send_error(self, err: BaseException) -> None:
        self._count("error")
        self._streams.errors.put_nowait(err)

    def _count(self, kind: str) -> None:
        if self.metrics is not None:
            self.metrics.watch_events.labels(kind).inc()

    def _cache_changed(self) -> None:
        if self.metrics is not None:
            self.metrics.cache_size.set(len(self._cache))
            self.metrics.cache_last_updated.set_to_current_time()

    def _deletion_family(self) -> GaugeMetricFamily:
        namespace = self.metrics.namespace if self.metrics else DEFAULT_NAMESPACE
        return GaugeMetricFamily(
            f"{namespace}_informer_deletion_timestamp",
            "Unix time at which deletion of a cached object was requested.",
            labels=["exported_name", "exported_namespace"],
        )

    def describe(self):
        return [self._deletion_family()]

    def collect(self):
        family = self._deletion_family()
        for obj in list(self._cache.values()):
            if obj.deletion_timestamp is not None:
                family.add_metric(
                    [obj.name, obj.namespace], obj.deletion_timestamp.timestamp()
                )
        yield family
