"""
Resource Decorators - Shared plumbing for resources wrapping a resource.

A decorator implements the full ``Resource`` contract by routing every
operation through ``_call``, which subclasses override to add behaviour
around the inner resource.
"""

from typing import Any

from reconkit.context import ReconcileContext
from reconkit.errors import ConfigurationError
from reconkit.objects import ObservedObject
from reconkit.resources.base import Resource, UpdateStates


class ResourceDecorator(Resource):
    """Base class for resources decorating another resource."""

    def __init__(self, resource: Resource):
        if resource is None:
            raise ConfigurationError(
                f"{type(self).__name__} requires a resource to wrap"
            )
        self._resource = resource

    @property
    def name(self) -> str:
        return self._resource.name

    @property
    def underlying(self) -> Resource:
        """The wrapped resource."""
        return self._resource

    async def _call(self, operation: str, ctx: ReconcileContext, *args: Any) -> Any:
        return await getattr(self._resource, operation)(ctx, *args)

    async def get_current_state(
        self, ctx: ReconcileContext, obj: ObservedObject
    ) -> Any:
        return await self._call("get_current_state", ctx, obj)

    async def get_desired_state(
        self, ctx: ReconcileContext, obj: ObservedObject
    ) -> Any:
        return await self._call("get_desired_state", ctx, obj)

    async def get_create_state(
        self, ctx: ReconcileContext, obj: ObservedObject, current: Any, desired: Any
    ) -> Any:
        return await self._call("get_create_state", ctx, obj, current, desired)

    async def get_delete_state(
        self, ctx: ReconcileContext, obj: ObservedObject, current: Any, desired: Any
    ) -> Any:
        return await self._call("get_delete_state", ctx, obj, current, desired)

    async def get_update_state(
        self, ctx: ReconcileContext, obj: ObservedObject, current: Any, desired: Any
    ) -> UpdateStates:
        return await self._call("get_update_state", ctx, obj, current, desired)

    async def process_create_state(
        self, ctx: ReconcileContext, obj: ObservedObject, state: Any
    ) -> None:
        await self._call("process_create_state", ctx, obj, state)

    async def process_delete_state(
        self, ctx: ReconcileContext, obj: ObservedObject, state: Any
    ) -> None:
        await self._call("process_delete_state", ctx, obj, state)

    async def process_update_state(
        self, ctx: ReconcileContext, obj: ObservedObject, state: Any
    ) -> None:
        await self._call("process_update_state", ctx, obj, state)
