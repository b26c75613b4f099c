"""Pydantic models for API objects and persisted drain state."""

from .annotation import (
    ANNOTATION_KEY,
    ControllerAnnotation,
    ControllerIdentity,
    DrainPhase,
    NodeAnnotation,
)
from .kube import (
    ApiResource,
    ApiResourceList,
    Controller,
    Node,
    OwnerReference,
    Pod,
    PodDisruptionBudget,
    PodPhase,
)

__all__ = [
    "ANNOTATION_KEY",
    "ControllerAnnotation",
    "ControllerIdentity",
    "DrainPhase",
    "NodeAnnotation",
    "ApiResource",
    "ApiResourceList",
    "Controller",
    "Node",
    "OwnerReference",
    "Pod",
    "PodDisruptionBudget",
    "PodPhase",
]
