"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from reconkit.crd.backend import CRDBackend
from reconkit.crd.descriptor import CRDDescriptor, CRDStatus
from reconkit.errors import AlreadyExistsError, NotFoundError
from reconkit.finalizer import FinalizerPatcher
from reconkit.informer.watcher import ListOptions, WatchEvent, Watcher
from reconkit.metrics import OperatorMetrics
from reconkit.objects import ObservedObject
from reconkit.resources.base import Resource, UpdateStates


class RecordingResource(Resource):
    """
    Resource recording every call into a shared list as (resource, operation).

    ``hooks`` maps an operation name to a callable ``hook(ctx, obj)`` run
    before the operation returns. A hook may raise.
    """

    def __init__(
        self,
        name: str,
        calls: Optional[List] = None,
        update_states: Any = UpdateStates("c", "d", "u"),
        hooks: Optional[Dict[str, Any]] = None,
    ):
        self._name = name
        self.calls = calls if calls is not None else []
        self.update_states = update_states
        self.hooks = hooks or {}
        self.states: List = []

    @property
    def name(self) -> str:
        return self._name

    async def _record(self, operation, ctx, obj, result=None):
        self.calls.append((self._name, operation))
        hook = self.hooks.get(operation)
        if hook is not None:
            hook(ctx, obj)
        return result

    async def get_current_state(self, ctx, obj):
        return await self._record("get_current_state", ctx, obj, "current")

    async def get_desired_state(self, ctx, obj):
        return await self._record("get_desired_state", ctx, obj, "desired")

    async def get_create_state(self, ctx, obj, current, desired):
        return await self._record("get_create_state", ctx, obj, "create")

    async def get_delete_state(self, ctx, obj, current, desired):
        return await self._record("get_delete_state", ctx, obj, "delete")

    async def get_update_state(self, ctx, obj, current, desired):
        return await self._record("get_update_state", ctx, obj, self.update_states)

    async def process_create_state(self, ctx, obj, state):
        self.states.append(("create", state))
        await self._record("process_create_state", ctx, obj)

    async def process_delete_state(self, ctx, obj, state):
        self.states.append(("delete", state))
        await self._record("process_delete_state", ctx, obj)

    async def process_update_state(self, ctx, obj, state):
        self.states.append(("update", state))
        await self._record("process_update_state", ctx, obj)


class FakeWatcher(Watcher):
    """In-memory list/watch source. Live events are fed through ``push``."""

    def __init__(self, objects: Optional[List[ObservedObject]] = None):
        self.objects: Dict[str, ObservedObject] = {o.key: o for o in objects or []}
        self.list_calls = 0
        self.list_errors: List[Exception] = []
        self.watch_calls = 0
        self.watching = asyncio.Event()
        self._events: Optional[asyncio.Queue] = None

    async def list(self, options: ListOptions) -> List[ObservedObject]:
        self.list_calls += 1
        if self.list_errors:
            raise self.list_errors.pop(0)
        return list(self.objects.values())

    async def watch(self, options: ListOptions):
        self.watch_calls += 1
        self._events = asyncio.Queue()
        self.watching.set()
        while True:
            item = await self._events.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def push(self, event: Optional[WatchEvent]) -> None:
        self._events.put_nowait(event)

    def put(self, obj: ObservedObject) -> None:
        self.objects[obj.key] = obj

    def remove(self, key: str) -> None:
        self.objects.pop(key, None)


class FakeFinalizerPatcher(FinalizerPatcher):
    """Records finalizer patches and applies them to the passed objects."""

    def __init__(self):
        self.added: List[str] = []
        self.removed: List[str] = []

    async def add(self, obj, token):
        if obj.has_finalizer(token):
            return False
        obj.finalizers.append(token)
        self.added.append(obj.key)
        return True

    async def remove(self, obj, token):
        if not obj.has_finalizer(token):
            return False
        obj.finalizers.remove(token)
        self.removed.append(obj.key)
        return True


class FakeCRDBackend(CRDBackend):
    """In-memory type registry reporting scripted statuses."""

    def __init__(self, statuses: Optional[List[CRDStatus]] = None, exists=False):
        self.statuses = list(statuses or [])
        self.exists = exists
        self.created: List[str] = []
        self.deleted: List[str] = []
        self.updated: List[str] = []
        self.gets = 0
        self.get_errors: List[Exception] = []
        self.delete_error: Optional[Exception] = None
        self.delete_errors: List[Exception] = []

    async def create(self, descriptor):
        self.created.append(descriptor.name)
        if self.exists:
            raise AlreadyExistsError(f"CRD {descriptor.name} already exists")
        self.exists = True

    async def get(self, name):
        self.gets += 1
        if self.get_errors:
            raise self.get_errors.pop(0)
        if not self.exists:
            raise NotFoundError(f"CRD {name} not found")
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0] if self.statuses else CRDStatus()

    async def delete(self, name):
        self.deleted.append(name)
        if self.delete_errors:
            raise self.delete_errors.pop(0)
        if self.delete_error is not None:
            raise self.delete_error
        if not self.exists:
            raise NotFoundError(f"CRD {name} not found")
        self.exists = False

    async def update(self, descriptor):
        self.updated.append(descriptor.name)


def make_status(established=None, names_accepted=None) -> CRDStatus:
    conditions = []
    if established is not None:
        conditions.append({"type": "Established", "status": established})
    if names_accepted is not None:
        conditions.append({"type": "NamesAccepted", "status": names_accepted})
    return CRDStatus(conditions=conditions)


@pytest.fixture
def make_object():
    """Factory for observed objects."""

    def _make(
        name: str = "test-object",
        namespace: str = "default",
        deleted: bool = False,
        finalizers: Optional[List[str]] = None,
        resource_version: str = "1",
        annotations: Optional[Dict[str, str]] = None,
    ) -> ObservedObject:
        return ObservedObject(
            name=name,
            namespace=namespace,
            deletion_timestamp=(
                datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc) if deleted else None
            ),
            finalizers=list(finalizers or []),
            resource_version=resource_version,
            uid=f"uid-{name}",
            api_version="example.reconkit.io/v1",
            kind="Database",
            annotations=dict(annotations or {}),
        )

    return _make


@pytest.fixture
def calls():
    """Shared call log for recording resources."""
    return []


@pytest.fixture
def recording_resource():
    """Factory for recording resources."""
    return RecordingResource


@pytest.fixture
def fake_watcher():
    return FakeWatcher


@pytest.fixture
def finalizer_patcher():
    return FakeFinalizerPatcher()


@pytest.fixture
def crd_backend():
    return FakeCRDBackend


@pytest.fixture
def crd_status():
    return make_status


@pytest.fixture
def metrics():
    """Metrics with a private registry."""
    return OperatorMetrics()


@pytest.fixture
def descriptor():
    """Sample custom type descriptor."""
    return CRDDescriptor(
        group="example.reconkit.io",
        version="v1",
        kind="Database",
        plural="databases",
        singular="database",
        scope="Namespaced",
        openapi_schema={
            "type": "object",
            "properties": {
                "spec": {
                    "type": "object",
                    "required": ["engine"],
                    "properties": {"engine": {"type": "string"}},
                }
            },
        },
    )
