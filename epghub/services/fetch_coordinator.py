"""
Fetch Coordination

Prevents two refreshes of the same provider from running at the same time.
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RefreshInProgress(Exception):
    """Raised when a refresh for the provider is already running"""
    pass


class FetchCoordinator:
    """
    Coordinates refresh operations per provider.

    Uses one asyncio.Lock per provider id; a second request for a provider that
    is already refreshing is rejected instead of queued.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, provider_id: str) -> asyncio.Lock:
        lock = self._locks.get(provider_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[provider_id] = lock
        return lock

    async def execute(self, provider_id: str, fetch_func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute a refresh operation with concurrency protection.

        Args:
            provider_id: Provider being refreshed
            fetch_func: Async function to execute

        Returns:
            Result from fetch_func

        Raises:
            RefreshInProgress: If a refresh for this provider is already running
        """
        lock = self._lock_for(provider_id)
        if lock.locked():
            logger.warning("Refresh for provider %s already in progress, skipping", provider_id)
            raise RefreshInProgress(f"Refresh for provider '{provider_id}' already in progress")

        async with lock:
            return await fetch_func()

    def is_fetching(self, provider_id: str) -> bool:
        lock = self._locks.get(provider_id)
        return lock.locked() if lock else False
