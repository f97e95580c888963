"""
Observed Objects - The framework's view of an object in the cluster API.

Objects are owned by the API server. The framework only reads them and asks
for finalizer patches.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as used by the API, e.g. '2024-01-15T10:30:00Z'."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass
class ObservedObject:
    """An object watched by the informer and reconciled by the controller."""

    name: str
    namespace: str = ""
    deletion_timestamp: Optional[datetime] = None
    finalizers: List[str] = field(default_factory=list)
    resource_version: str = ""
    uid: str = ""
    api_version: str = ""
    kind: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def key(self) -> str:
        """Identity of the object: 'namespace/name', or 'name' if cluster scoped."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @property
    def deletion_requested(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def spec(self) -> Dict[str, Any]:
        return self.raw.get("spec") or {}

    def has_finalizer(self, token: str) -> bool:
        return token in self.finalizers

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ObservedObject":
        """
        Build an object from its API representation.

        Args:
            data: The object as returned by the API, with a 'metadata' section.

        Returns:
            A new ObservedObject referencing ``data`` as its raw form.
        """
        metadata = data.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace") or "",
            deletion_timestamp=parse_timestamp(metadata.get("deletionTimestamp")),
            finalizers=list(metadata.get("finalizers") or []),
            resource_version=str(metadata.get("resourceVersion") or ""),
            uid=metadata.get("uid") or "",
            api_version=data.get("apiVersion") or "",
            kind=data.get("kind") or "",
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            raw=data,
        )
