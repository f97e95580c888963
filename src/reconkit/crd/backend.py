"""
CRD Backend - Abstract interface for registering custom types.
"""

from abc import ABC, abstractmethod

from reconkit.crd.descriptor import CRDDescriptor, CRDStatus


class CRDBackend(ABC):
    """
    Abstract type-registration API.

    Implementations raise ``AlreadyExistsError`` from ``create`` for an
    existing type and ``NotFoundError`` for unknown names.
    """

    @abstractmethod
    async def create(self, descriptor: CRDDescriptor) -> None:
        """Register a new type."""
        pass

    @abstractmethod
    async def get(self, name: str) -> CRDStatus:
        """Return the current status of a registered type."""
        pass

    @abstractmethod
    async def delete(self, name: str) -> None:
        """Remove a registered type."""
        pass

    @abstractmethod
    async def update(self, descriptor: CRDDescriptor) -> None:
        """Replace the definition of an existing type."""
        pass
