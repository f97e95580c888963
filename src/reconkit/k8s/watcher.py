"""
Custom Object Watcher - List/watch of custom objects via the Kubernetes API.

The kubernetes client is synchronous. Lists run in a worker thread and the
watch stream is pumped from a worker thread into an asyncio queue.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from kubernetes import client, watch
from kubernetes.client.exceptions import ApiException

from reconkit.errors import OperatorError
from reconkit.informer.watcher import ListOptions, WatchEvent, WatchEventType, Watcher
from reconkit.k8s.client import translate_api_error
from reconkit.objects import ObservedObject

logger = logging.getLogger(__name__)

DEFAULT_WATCH_TIMEOUT = 300

# Queue marker for the end of the watch stream.
_DONE = object()


class CustomObjectWatcher(Watcher):
    """
    Watcher for the custom objects of one group, version and plural.

    Args:
        group: API group, e.g. 'example.reconkit.io'
        version: API version, e.g. 'v1'
        plural: Plural resource name, e.g. 'databases'
        api: CustomObjectsApi instance. Created on demand if omitted.
    """

    def __init__(
        self,
        group: str,
        version: str,
        plural: str,
        api: Optional[client.CustomObjectsApi] = None,
    ):
        self.group = group
        self.version = version
        self.plural = plural
        self.api = api or client.CustomObjectsApi()

    def _call_args(self, options: ListOptions):
        kwargs: Dict[str, Any] = {}
        if options.label_selector:
            kwargs["label_selector"] = options.label_selector
        if options.field_selector:
            kwargs["field_selector"] = options.field_selector
        if options.namespace:
            return (
                self.api.list_namespaced_custom_object,
                (self.group, self.version, options.namespace, self.plural),
                kwargs,
            )
        return (
            self.api.list_cluster_custom_object,
            (self.group, self.version, self.plural),
            kwargs,
        )

    async def list(self, options: ListOptions) -> List[ObservedObject]:
        func, args, kwargs = self._call_args(options)
        if options.timeout_seconds:
            kwargs["timeout_seconds"] = options.timeout_seconds
        try:
            result = await asyncio.to_thread(func, *args, **kwargs)
        except ApiException as e:
            raise translate_api_error(e, f"{self.plural}.{self.group}")
        return [ObservedObject.from_dict(item) for item in result.get("items", [])]

    async def watch(self, options: ListOptions) -> AsyncIterator[WatchEvent]:
        func, args, kwargs = self._call_args(options)
        kwargs["timeout_seconds"] = options.timeout_seconds or DEFAULT_WATCH_TIMEOUT

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        w = watch.Watch()

        def pump() -> None:
            try:
                for event in w.stream(func, *args, **kwargs):
                    loop.call_soon_threadsafe(queue.put_nowait, event)
            except Exception as e:
                loop.call_soon_threadsafe(queue.put_nowait, e)
            finally:
                loop.call_soon_threadsafe(queue.put_nowait, _DONE)

        loop.run_in_executor(None, pump)
        try:
            while True:
                item = await queue.get()
                if item is _DONE:
                    break
                if isinstance(item, ApiException):
                    raise translate_api_error(item, f"watch of {self.plural}.{self.group}")
                if isinstance(item, Exception):
                    raise item
                yield to_watch_event(item)
        finally:
            # The worker thread notices this after its next event or timeout.
            w.stop()


def to_watch_event(event: Dict[str, Any]) -> WatchEvent:
    """Convert a raw event of ``kubernetes.watch.Watch.stream``."""
    raw_type = event.get("type", "")
    try:
        event_type = WatchEventType(raw_type)
    except ValueError:
        return WatchEvent(type=raw_type)

    obj = event.get("object")
    if event_type == WatchEventType.ERROR:
        message = obj.get("message", "") if isinstance(obj, dict) else str(obj)
        return WatchEvent(type=event_type, error=OperatorError(f"watch error: {message}"))
    return WatchEvent(type=event_type, object=ObservedObject.from_dict(obj or {}))
