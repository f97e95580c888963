"""
CRD Descriptor - Description of a custom object type and its status.
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator

from reconkit.errors import ConfigurationError
from reconkit.validation import (
    validate_group_format,
    validate_name_format,
    validate_openapi_schema,
    validate_object_against_schema,
)

logger = logging.getLogger(__name__)

ESTABLISHED = "Established"
NAMES_ACCEPTED = "NamesAccepted"

# Used when a descriptor carries no schema of its own.
DEFAULT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "x-kubernetes-preserve-unknown-fields": True,
}


class CRDDescriptor(BaseModel):
    """A custom type registration."""

    group: str = Field(..., description="API group", examples=["example.reconkit.io"])
    version: str = Field(..., description="API version", examples=["v1"])
    kind: str = Field(..., description="Object kind", examples=["Database"])
    plural: str = Field(..., description="Plural resource name", examples=["databases"])
    singular: str = Field(..., description="Singular resource name", examples=["database"])
    scope: Literal["Cluster", "Namespaced"] = "Namespaced"
    openapi_schema: Optional[Dict[str, Any]] = Field(
        default=None, description="OpenAPI v3 schema of the objects"
    )

    @field_validator("group")
    @classmethod
    def validate_group(cls, v: str) -> str:
        return validate_group_format(v, "group")

    @field_validator("version", "plural", "singular")
    @classmethod
    def validate_names(cls, v: str, info) -> str:
        return validate_name_format(v, info.field_name)

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if not v or not v[0].isupper() or not v.isalnum():
            raise ValueError("kind must be an alphanumeric CamelCase name")
        return v

    @field_validator("openapi_schema")
    @classmethod
    def validate_schema(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if v is not None:
            is_valid, error = validate_openapi_schema(v)
            if not is_valid:
                raise ValueError(error)
        return v

    @property
    def name(self) -> str:
        """The registration name, '<plural>.<group>'."""
        return f"{self.plural}.{self.group}"

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"

    def validate_object(self, obj: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
        """Check an object against the descriptor schema, if any."""
        if self.openapi_schema is None:
            return True, None
        return validate_object_against_schema(obj, self.openapi_schema)

    def to_manifest(self) -> Dict[str, Any]:
        """Render the apiextensions.k8s.io/v1 CustomResourceDefinition."""
        return {
            "apiVersion": "apiextensions.k8s.io/v1",
            "kind": "CustomResourceDefinition",
            "metadata": {"name": self.name},
            "spec": {
                "group": self.group,
                "scope": self.scope,
                "names": {
                    "kind": self.kind,
                    "plural": self.plural,
                    "singular": self.singular,
                },
                "versions": [
                    {
                        "name": self.version,
                        "served": True,
                        "storage": True,
                        "schema": {
                            "openAPIV3Schema": self.openapi_schema or DEFAULT_SCHEMA
                        },
                        "subresources": {"status": {}},
                    }
                ],
            },
        }

    @classmethod
    def from_manifest(cls, manifest: Dict[str, Any]) -> "CRDDescriptor":
        """
        Build a descriptor from a CustomResourceDefinition manifest.

        Only the first version of the manifest is used.
        """
        spec = manifest.get("spec") or {}
        names = spec.get("names") or {}
        versions = spec.get("versions") or []
        if not versions:
            raise ConfigurationError("CRD manifest defines no versions")
        version = versions[0]
        schema = (version.get("schema") or {}).get("openAPIV3Schema")
        return cls(
            group=spec.get("group", ""),
            version=version.get("name", ""),
            kind=names.get("kind", ""),
            plural=names.get("plural", ""),
            singular=names.get("singular") or names.get("kind", "").lower(),
            scope=spec.get("scope", "Namespaced"),
            openapi_schema=schema,
        )


class CRDCondition(BaseModel):
    """One status condition of a registered type."""

    type: str
    # None means the API reported 'Unknown'
    status: Optional[bool] = None
    reason: str = ""
    message: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            lowered = v.lower()
            if lowered == "true":
                return True
            if lowered == "false":
                return False
            return None
        return v


class CRDStatus(BaseModel):
    """Status of a registered type as reported by the API."""

    conditions: List[CRDCondition] = Field(default_factory=list)

    def condition(self, condition_type: str) -> Optional[CRDCondition]:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    @property
    def established(self) -> bool:
        condition = self.condition(ESTABLISHED)
        return condition is not None and condition.status is True

    @property
    def names_rejected(self) -> bool:
        condition = self.condition(NAMES_ACCEPTED)
        return condition is not None and condition.status is False

    @classmethod
    def from_manifest(cls, manifest: Dict[str, Any]) -> "CRDStatus":
        status = manifest.get("status") or {}
        return cls(conditions=status.get("conditions") or [])


def load_descriptor(path: str) -> CRDDescriptor:
    """
    Load a descriptor from a YAML file.

    The file may hold either a CustomResourceDefinition manifest or the
    descriptor fields directly.

    Raises:
        ConfigurationError: If the file cannot be read or is invalid.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read CRD manifest {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"CRD manifest {path} is not a mapping")

    try:
        if data.get("kind") == "CustomResourceDefinition":
            return CRDDescriptor.from_manifest(data)
        return CRDDescriptor(**data)
    except ValueError as e:
        raise ConfigurationError(f"Invalid CRD manifest {path}: {e}")
