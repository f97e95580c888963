"""
Chain Execution - Runs an ordered list of resources for one object.

The three entry points differ only in the steps executed per resource.
Resources run strictly in the given order and the first error aborts the
chain. There is no compensation for resources which already ran.
"""

import logging
from typing import Awaitable, Callable, Sequence

from reconkit.context import (
    ReconcileContext,
    is_canceled,
    is_resource_canceled,
)
from reconkit.errors import ExecutionFailedError
from reconkit.objects import ObservedObject
from reconkit.resources.base import Resource

logger = logging.getLogger(__name__)

Steps = Callable[[ReconcileContext, ObservedObject, Resource], Awaitable[None]]


def _interrupted(ctx: ReconcileContext) -> bool:
    return is_canceled(ctx) or is_resource_canceled(ctx)


async def _create_steps(
    ctx: ReconcileContext, obj: ObservedObject, resource: Resource
) -> None:
    current = await resource.get_current_state(ctx, obj)
    if _interrupted(ctx):
        return
    desired = await resource.get_desired_state(ctx, obj)
    if _interrupted(ctx):
        return
    create = await resource.get_create_state(ctx, obj, current, desired)
    if _interrupted(ctx):
        return
    await resource.process_create_state(ctx, obj, create)


async def _delete_steps(
    ctx: ReconcileContext, obj: ObservedObject, resource: Resource
) -> None:
    current = await resource.get_current_state(ctx, obj)
    if _interrupted(ctx):
        return
    desired = await resource.get_desired_state(ctx, obj)
    if _interrupted(ctx):
        return
    delete = await resource.get_delete_state(ctx, obj, current, desired)
    if _interrupted(ctx):
        return
    await resource.process_delete_state(ctx, obj, delete)


async def _update_steps(
    ctx: ReconcileContext, obj: ObservedObject, resource: Resource
) -> None:
    current = await resource.get_current_state(ctx, obj)
    if _interrupted(ctx):
        return
    desired = await resource.get_desired_state(ctx, obj)
    if _interrupted(ctx):
        return
    states = await resource.get_update_state(ctx, obj, current, desired)
    if _interrupted(ctx):
        return

    if isinstance(states, (str, bytes)) or not isinstance(states, Sequence):
        raise ExecutionFailedError(
            f"resource '{resource.name}' returned {type(states).__name__} "
            "from get_update_state, expected (create, delete, update)"
        )
    if len(states) != 3:
        raise ExecutionFailedError(
            f"resource '{resource.name}' returned {len(states)} update states, "
            "expected 3"
        )
    create, delete, update = states

    # Order matters: create before delete before update.
    await resource.process_create_state(ctx, obj, create)
    if _interrupted(ctx):
        return
    await resource.process_delete_state(ctx, obj, delete)
    if _interrupted(ctx):
        return
    await resource.process_update_state(ctx, obj, update)


async def _process(
    ctx: ReconcileContext,
    obj: ObservedObject,
    resources: Sequence[Resource],
    steps: Steps,
    kind: str,
) -> None:
    if not resources:
        raise ExecutionFailedError(f"cannot process {kind}: resource chain is empty")

    for resource in resources:
        if is_canceled(ctx):
            logger.debug(f"Reconciliation of {obj.key} canceled before '{resource.name}'")
            return
        await steps(ctx.for_resource(resource.name), obj, resource)


async def process_create(
    ctx: ReconcileContext, obj: ObservedObject, resources: Sequence[Resource]
) -> None:
    """
    Run the create steps of every resource in order.

    Per resource: get_current_state, get_desired_state, get_create_state,
    process_create_state.

    Raises:
        ExecutionFailedError: If the chain is empty.
    """
    await _process(ctx, obj, resources, _create_steps, "create")


async def process_delete(
    ctx: ReconcileContext, obj: ObservedObject, resources: Sequence[Resource]
) -> None:
    """
    Run the delete steps of every resource in order.

    Per resource: get_current_state, get_desired_state, get_delete_state,
    process_delete_state.

    Raises:
        ExecutionFailedError: If the chain is empty.
    """
    await _process(ctx, obj, resources, _delete_steps, "delete")


async def process_update(
    ctx: ReconcileContext, obj: ObservedObject, resources: Sequence[Resource]
) -> None:
    """
    Run the update steps of every resource in order.

    Per resource: get_current_state, get_desired_state, get_update_state and
    then process_create_state, process_delete_state, process_update_state
    with the three states returned.

    Raises:
        ExecutionFailedError: If the chain is empty or a resource returns a
            malformed update state.
    """
    await _process(ctx, obj, resources, _update_steps, "update")
