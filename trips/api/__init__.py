"""Trip API routes."""

from . import lifecycle

__all__ = ["lifecycle"]
