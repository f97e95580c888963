"""
Finalizers - Patch builders and the patch API for finalizer tokens.

Patches are RFC 6902 JSON patches. Every patch carries a ``test`` operation
on ``/metadata/resourceVersion`` so that it only applies to the version of
the object it was computed from.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from reconkit.objects import ObservedObject

Patch = List[Dict[str, Any]]

DEFAULT_FINALIZER_DOMAIN = "reconkit.io"


def finalizer_name(operator_name: str, domain: str = DEFAULT_FINALIZER_DOMAIN) -> str:
    """Return the finalizer token of an operator, '<domain>/<operator-name>'."""
    return f"{domain}/{operator_name}"


def _test_resource_version(obj: ObservedObject) -> Dict[str, Any]:
    return {
        "op": "test",
        "path": "/metadata/resourceVersion",
        "value": obj.resource_version,
    }


def create_add_finalizer_patch(obj: ObservedObject, token: str) -> Optional[Patch]:
    """
    Build the patch adding ``token`` to the object's finalizers.

    Returns:
        The patch, or None if the object already carries the token or is
        marked for deletion.
    """
    if obj.deletion_requested or obj.has_finalizer(token):
        return None

    patch: Patch = [_test_resource_version(obj)]
    if not obj.finalizers:
        patch.append({"op": "add", "path": "/metadata/finalizers", "value": []})
    patch.append({"op": "add", "path": "/metadata/finalizers/-", "value": token})
    return patch


def create_remove_finalizer_patch(
    obj: ObservedObject, token: str
) -> Optional[Patch]:
    """
    Build the patch removing ``token`` from the object's finalizers.

    Returns:
        The patch, or None if the object does not carry the token.
    """
    if not obj.has_finalizer(token):
        return None
    remaining = [f for f in obj.finalizers if f != token]
    return [
        _test_resource_version(obj),
        {"op": "replace", "path": "/metadata/finalizers", "value": remaining},
    ]


class FinalizerPatcher(ABC):
    """Abstract API applying finalizer patches to objects."""

    @abstractmethod
    async def add(self, obj: ObservedObject, token: str) -> bool:
        """
        Add the finalizer token to the object.

        Returns:
            True if the object was patched, False if nothing had to be done.
        """
        pass

    @abstractmethod
    async def remove(self, obj: ObservedObject, token: str) -> bool:
        """
        Remove the finalizer token from the object.

        An object which is already gone counts as done.

        Returns:
            True if the object was patched, False if nothing had to be done.
        """
        pass
