"""Lookup cache scoped to a single reconciliation pass."""

import asyncio
from typing import Any, Awaitable, Callable, Hashable


class TickCache:
    """
    Memoizes discovery and policy lookups for one pass over all nodes.

    The loop creates a fresh instance per pass and hands it to every node, so
    resource-name mappings never outlive an API server upgrade by more than
    one poll period. Concurrent lookups of the same key share one request.
    """

    def __init__(self) -> None:
        self._values: dict[Hashable, Any] = {}
        self._tasks: dict[Hashable, asyncio.Task] = {}

    async def get_or_fetch(self, key: Hashable, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for ``key`` or run ``fetch`` once to fill it."""
        if key in self._values:
            return self._values[key]

        existing = self._tasks.get(key)
        if existing is not None:
            return await asyncio.shield(existing)

        task = asyncio.ensure_future(fetch())
        self._tasks[key] = task
        try:
            value = await task
            self._values[key] = value
            return value
        finally:
            if self._tasks.get(key) is task:
                self._tasks.pop(key, None)
