"""
Reconciliation loop.

Polls all nodes on a fixed period and reconciles each node independently.
No state is carried from one pass to the next apart from what the nodes'
annotations hold.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from ..config import Settings
from ..models.kube import Node
from ..telemetry.metrics import NODE_FAILURES, TICK_DURATION, TICKS
from ..telemetry.tracing import traced
from .kube_client import REQUEST_ERRORS, KubeClient
from .node_drain_service import NodeDrainService
from .tick_cache import TickCache

logger = logging.getLogger(__name__)


class ReconciliationLoop:
    """Periodic driver of the node drain service."""

    def __init__(
        self,
        settings: Settings,
        kube_client: KubeClient,
        drain_service: NodeDrainService,
    ):
        self.period = settings.drain.poll_period_seconds
        self.kube = kube_client
        self.drain_service = drain_service
        self.last_tick: Optional[datetime] = None
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @traced("reconcile_tick")
    async def tick(self) -> None:
        """Reconcile every node once. A pass never overlaps a pass still in flight."""
        if self._lock.locked():
            logger.warning("Previous reconciliation pass still running, skipping")
            return

        async with self._lock:
            TICKS.inc()
            with TICK_DURATION.time():
                try:
                    nodes = await self.kube.get_nodes()
                except REQUEST_ERRORS as e:
                    logger.error("Failed to list nodes: %s", e)
                    return

                cache = TickCache()
                await asyncio.gather(*(self._process_node(node, cache) for node in nodes))
            self.last_tick = datetime.now(timezone.utc)

    async def _process_node(self, node: Node, cache: TickCache) -> None:
        try:
            await self.drain_service.process_node(node, cache)
        except Exception:
            NODE_FAILURES.labels(node=node.name).inc()
            logger.exception("Failed to process node %s", node.name)

    async def run(self) -> None:
        """Run passes forever, one every poll period."""
        logger.info("Reconciling nodes every %ss", self.period)
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                await self.tick()
            except Exception:
                logger.exception("Reconciliation pass failed")
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.period - elapsed))

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self.run(), name="reconciliation-loop")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reconciliation loop stopped")
