"""Route template API routes."""

from . import routes

__all__ = ["routes"]
