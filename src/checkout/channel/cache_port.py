"""Cache channel port: invalidation of read-through cache entries."""

from abc import ABC, abstractmethod


class CachePort(ABC):
    """Abstract interface for cache invalidation adapters."""

    @abstractmethod
    def invalidate(self, keys: set[str]) -> None:
        """Drop every cached entry tagged with one of ``keys``."""
        ...
