"""
Core interfaces for the watcher pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from .models import LedgerEvent, RefreshTask


class Transform(ABC):
    """Universal transform interface for pipeline stages.

    Every stage consumes an async iterator and yields another one, which is
    what lets the orchestrator chain sources, the watcher and sinks.
    """

    @abstractmethod
    async def __call__(
        self, items: AsyncIterator[Any]
    ) -> AsyncIterator[Any]:
        """Transform an async iterator of items to another async iterator."""
        ...


class Fetcher(Transform):
    """Abstract base class for ledger event sources.

    Fetchers ignore their input stream and yield :class:`LedgerEvent`s.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this fetcher."""
        pass

    @abstractmethod
    async def fetch(self) -> AsyncIterator[LedgerEvent]:
        """Yield ledger events in the order they were observed."""
        pass

    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[LedgerEvent]:
        """Transform interface: ignore input stream and yield fetched events."""
        async for _ in items:
            async for event in self.fetch():
                yield event
            break  # a single seed item triggers the source


class Sink(Transform):
    """Abstract base class for refresh task sinks.

    Sinks hand each item off and yield it unchanged, so several can be chained.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this sink."""
        pass

    @abstractmethod
    async def handle(self, item: RefreshTask) -> None:
        """Deliver one refresh task."""
        pass

    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[Any]:
        """Transform interface: handle items and pass them through."""
        async for item in items:
            await self.handle(item)
            yield item
