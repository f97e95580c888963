"""Event recording as core/v1 Events."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from reconkit.events import EventRecorder, EventType
from reconkit.k8s.client import translate_api_error
from reconkit.objects import ObservedObject

logger = logging.getLogger(__name__)


class KubernetesEventRecorder(EventRecorder):
    """Creates a core/v1 Event referencing the reconciled object."""

    def __init__(self, component: str, api: Optional[client.CoreV1Api] = None):
        self.component = component
        self.api = api or client.CoreV1Api()

    def build_event(
        self, obj: ObservedObject, event_type: EventType, reason: str, message: str
    ) -> dict:
        now = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        now = now.replace("+00:00", "Z")
        return {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "generateName": f"{obj.name}.",
                "namespace": obj.namespace or "default",
            },
            "involvedObject": {
                "apiVersion": obj.api_version,
                "kind": obj.kind,
                "name": obj.name,
                "namespace": obj.namespace or None,
                "uid": obj.uid,
                "resourceVersion": obj.resource_version,
            },
            "type": event_type.value,
            "reason": reason,
            "message": message,
            "source": {"component": self.component},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }

    async def emit(
        self,
        obj: ObservedObject,
        event_type: EventType,
        reason: str,
        message: str,
    ) -> None:
        body = self.build_event(obj, event_type, reason, message)
        try:
            await asyncio.to_thread(
                self.api.create_namespaced_event, body["metadata"]["namespace"], body
            )
        except ApiException as e:
            raise translate_api_error(e, f"event for {obj.key}")
