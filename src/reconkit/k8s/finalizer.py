"""
Custom Object Finalizer Patcher - Finalizer patches via the Kubernetes API.

The object is re-read before every attempt so the patch is computed from
the latest version. A failed resourceVersion test means the object changed
in between and the attempt is retried under the backoff policy.
After a successful patch the finalizers and resource version of the passed
object are updated, so later steps of the same pass see the change.
"""

import asyncio
import logging
from typing import Optional

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from reconkit.backoff import BackoffPolicy, retry_notify
from reconkit.errors import ConflictError, NotFoundError
from reconkit.finalizer import (
    FinalizerPatcher,
    Patch,
    create_add_finalizer_patch,
    create_remove_finalizer_patch,
)
from reconkit.k8s.client import translate_api_error
from reconkit.objects import ObservedObject

logger = logging.getLogger(__name__)


class CustomObjectFinalizerPatcher(FinalizerPatcher):
    """Applies finalizer patches to custom objects."""

    def __init__(
        self,
        group: str,
        version: str,
        plural: str,
        api: Optional[client.CustomObjectsApi] = None,
        policy: Optional[BackoffPolicy] = None,
    ):
        self.group = group
        self.version = version
        self.plural = plural
        self.api = api or client.CustomObjectsApi()
        self.policy = policy or BackoffPolicy(max_attempts=5, initial_interval=0.2)

    async def _get(self, obj: ObservedObject) -> Optional[ObservedObject]:
        try:
            if obj.namespace:
                data = await asyncio.to_thread(
                    self.api.get_namespaced_custom_object,
                    self.group,
                    self.version,
                    obj.namespace,
                    self.plural,
                    obj.name,
                )
            else:
                data = await asyncio.to_thread(
                    self.api.get_cluster_custom_object,
                    self.group,
                    self.version,
                    self.plural,
                    obj.name,
                )
        except ApiException as e:
            if e.status == 404:
                return None
            raise translate_api_error(e, obj.key)
        return ObservedObject.from_dict(data)

    async def _patch(self, obj: ObservedObject, patch: Patch):
        try:
            if obj.namespace:
                return await asyncio.to_thread(
                    self.api.patch_namespaced_custom_object,
                    self.group,
                    self.version,
                    obj.namespace,
                    self.plural,
                    obj.name,
                    patch,
                )
            else:
                return await asyncio.to_thread(
                    self.api.patch_cluster_custom_object,
                    self.group,
                    self.version,
                    self.plural,
                    obj.name,
                    patch,
                )
        except ApiException as e:
            raise translate_api_error(e, obj.key)

    async def _apply(self, obj: ObservedObject, token: str, build) -> bool:
        async def attempt() -> bool:
            current = await self._get(obj)
            if current is None:
                return False
            patch = build(current, token)
            if patch is None:
                self._sync(obj, current.finalizers, current.resource_version)
                return False
            try:
                patched = await self._patch(current, patch)
            except NotFoundError:
                return False
            # The last operation carries the complete list, or the added token
            last = patch[-1]
            if last["op"] == "replace":
                finalizers = list(last["value"])
            else:
                finalizers = current.finalizers + [last["value"]]
            version = current.resource_version
            if isinstance(patched, dict):
                version = str(patched.get("metadata", {}).get("resourceVersion") or version)
            self._sync(obj, finalizers, version)
            return True

        def on_retry(err: BaseException, wait: float) -> None:
            logger.warning(f"Finalizer patch of {obj.key} conflicted, retrying: {err}")

        return await retry_notify(
            attempt,
            self.policy,
            notify=on_retry,
            retry_on=lambda e: isinstance(e, ConflictError),
        )

    @staticmethod
    def _sync(obj: ObservedObject, finalizers, resource_version: str) -> None:
        obj.finalizers = list(finalizers)
        obj.resource_version = resource_version

    async def add(self, obj: ObservedObject, token: str) -> bool:
        return await self._apply(obj, token, create_add_finalizer_patch)

    async def remove(self, obj: ObservedObject, token: str) -> bool:
        return await self._apply(obj, token, create_remove_finalizer_patch)
