"""
CRD - Registration of the custom types an operator watches.
"""

from reconkit.crd.backend import CRDBackend
from reconkit.crd.descriptor import (
    CRDCondition,
    CRDDescriptor,
    CRDStatus,
    load_descriptor,
)
from reconkit.crd.ensure import ensure, ensure_deleted

__all__ = [
    "CRDBackend",
    "CRDCondition",
    "CRDDescriptor",
    "CRDStatus",
    "ensure",
    "ensure_deleted",
    "load_descriptor",
]
