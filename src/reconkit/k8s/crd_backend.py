"""CRD registration through the apiextensions.k8s.io/v1 API."""

import asyncio
import logging
from typing import Optional

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from reconkit.crd.backend import CRDBackend
from reconkit.crd.descriptor import CRDDescriptor, CRDStatus
from reconkit.k8s.client import translate_api_error

logger = logging.getLogger(__name__)


class KubernetesCRDBackend(CRDBackend):
    """Registers custom types as CustomResourceDefinitions."""

    def __init__(self, api: Optional[client.ApiextensionsV1Api] = None):
        self.api = api or client.ApiextensionsV1Api()

    async def create(self, descriptor: CRDDescriptor) -> None:
        try:
            await asyncio.to_thread(
                self.api.create_custom_resource_definition, descriptor.to_manifest()
            )
        except ApiException as e:
            raise translate_api_error(e, f"CRD {descriptor.name}")

    async def get(self, name: str) -> CRDStatus:
        try:
            crd = await asyncio.to_thread(
                self.api.read_custom_resource_definition, name
            )
        except ApiException as e:
            raise translate_api_error(e, f"CRD {name}")
        manifest = self.api.api_client.sanitize_for_serialization(crd)
        return CRDStatus.from_manifest(manifest)

    async def delete(self, name: str) -> None:
        try:
            await asyncio.to_thread(self.api.delete_custom_resource_definition, name)
        except ApiException as e:
            raise translate_api_error(e, f"CRD {name}")

    async def update(self, descriptor: CRDDescriptor) -> None:
        name = descriptor.name
        try:
            existing = await asyncio.to_thread(
                self.api.read_custom_resource_definition, name
            )
            manifest = descriptor.to_manifest()
            manifest["metadata"]["resourceVersion"] = existing.metadata.resource_version
            await asyncio.to_thread(
                self.api.replace_custom_resource_definition, name, manifest
            )
        except ApiException as e:
            raise translate_api_error(e, f"CRD {name}")
