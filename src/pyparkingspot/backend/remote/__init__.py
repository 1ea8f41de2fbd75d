"""Remote REST backend."""

from .api import Backend

__all__ = ["Backend"]
