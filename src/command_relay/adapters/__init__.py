"""Gateway adapters for the external system commands act upon."""

from .memory import InMemoryResourceGateway

__all__ = ["InMemoryResourceGateway"]
