"""In-memory backend."""

from .api import Backend

__all__ = ["Backend"]
