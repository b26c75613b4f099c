"""Reads and writes the drain state annotation of a node."""

import asyncio
import logging

from pydantic import ValidationError

from ..models.annotation import ANNOTATION_KEY, NodeAnnotation
from ..models.kube import Node
from .kube_client import REQUEST_ERRORS, KubeClient

logger = logging.getLogger(__name__)


class DrainStateStore:
    """Drain state persistence on the node object itself."""

    def __init__(self, kube_client: KubeClient, save_attempts: int = 10):
        self.kube = kube_client
        self.save_attempts = save_attempts
        self._locks: dict[str, asyncio.Lock] = {}

    def load(self, node: Node) -> NodeAnnotation:
        """Parse the node's annotation. Missing or invalid state yields an empty one."""
        raw = node.metadata.annotations.get(ANNOTATION_KEY)
        if not raw:
            return NodeAnnotation()
        try:
            return NodeAnnotation.model_validate_json(raw)
        except ValidationError as e:
            logger.error(
                "Invalid JSON in annotation %s of node %s, starting from empty state: %s",
                ANNOTATION_KEY,
                node.name,
                e,
            )
            return NodeAnnotation()

    @staticmethod
    def build_patch(annotation: NodeAnnotation) -> dict:
        return {"metadata": {"annotations": {ANNOTATION_KEY: annotation.to_json()}}}

    async def save(self, node: Node, annotation: NodeAnnotation) -> bool:
        """
        Merge-patch the annotation onto the node.

        Only the drain state key is sent, so other annotations on the node are
        left untouched. Saves of one node run one at a time and each sends the
        state as it is once its turn comes, so a slower earlier write can never
        land after a newer one. Returns False once all attempts failed; the
        next pass starts again from whatever state was last persisted.
        """
        lock = self._locks.setdefault(node.name, asyncio.Lock())
        async with lock:
            patch = self.build_patch(annotation)
            for attempt in range(1, self.save_attempts + 1):
                try:
                    await self.kube.patch_node(node.name, patch)
                    return True
                except REQUEST_ERRORS as e:
                    logger.error(
                        "Failed to patch node %s (attempt %d/%d): %s",
                        node.name,
                        attempt,
                        self.save_attempts,
                        e,
                    )
            return False
