"""
Resource Base - Abstract interface for units of reconciliation work.

A resource manages one kind of side effect of a reconciled object, e.g. a
config map, a cloud bucket or a DNS record. The chain calls its operations in
a fixed order: read the current state, compute the desired state, derive the
create/delete/update states and apply them.

State values are opaque to the framework. Whatever ``get_current_state``
returns is handed back to ``get_create_state`` for the same object in the
same pass, and so on.
"""

from abc import ABC, abstractmethod
from typing import Any, NamedTuple

from reconkit.context import ReconcileContext
from reconkit.objects import ObservedObject


class UpdateStates(NamedTuple):
    """The three states computed by ``get_update_state``."""

    create: Any = None
    delete: Any = None
    update: Any = None


class Resource(ABC):
    """
    Abstract base class for resources.

    All operations must be idempotent: the same object is reconciled again
    on every event and every resync.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this resource (e.g., 'configmap')."""
        pass

    @abstractmethod
    async def get_current_state(
        self, ctx: ReconcileContext, obj: ObservedObject
    ) -> Any:
        """
        Read the state which currently exists for the object.

        Args:
            ctx: The reconcile context of the pass
            obj: The reconciled object

        Returns:
            The current state, or None if nothing exists yet
        """
        pass

    @abstractmethod
    async def get_desired_state(
        self, ctx: ReconcileContext, obj: ObservedObject
    ) -> Any:
        """
        Compute the state which should exist for the object.

        Args:
            ctx: The reconcile context of the pass
            obj: The reconciled object

        Returns:
            The desired state
        """
        pass

    @abstractmethod
    async def get_create_state(
        self, ctx: ReconcileContext, obj: ObservedObject, current: Any, desired: Any
    ) -> Any:
        """Return the state which has to be created, or None."""
        pass

    @abstractmethod
    async def get_delete_state(
        self, ctx: ReconcileContext, obj: ObservedObject, current: Any, desired: Any
    ) -> Any:
        """Return the state which has to be deleted, or None."""
        pass

    @abstractmethod
    async def get_update_state(
        self, ctx: ReconcileContext, obj: ObservedObject, current: Any, desired: Any
    ) -> UpdateStates:
        """
        Compute what an update pass has to do.

        Returns:
            A (create, delete, update) triple. Any member may be None.
        """
        pass

    @abstractmethod
    async def process_create_state(
        self, ctx: ReconcileContext, obj: ObservedObject, state: Any
    ) -> None:
        """Apply a create state. Called even when the state is None."""
        pass

    @abstractmethod
    async def process_delete_state(
        self, ctx: ReconcileContext, obj: ObservedObject, state: Any
    ) -> None:
        """Apply a delete state. Called even when the state is None."""
        pass

    @abstractmethod
    async def process_update_state(
        self, ctx: ReconcileContext, obj: ObservedObject, state: Any
    ) -> None:
        """Apply an update state. Called even when the state is None."""
        pass


OPERATIONS = (
    "get_current_state",
    "get_desired_state",
    "get_create_state",
    "get_delete_state",
    "get_update_state",
    "process_create_state",
    "process_delete_state",
    "process_update_state",
)
