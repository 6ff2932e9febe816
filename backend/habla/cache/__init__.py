"""In-memory caches shared across backend services."""

from .state_cache import StateCache

__all__ = ["StateCache"]
