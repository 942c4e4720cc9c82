"""Chat adapters, dispatch and outgoing stream encoding."""

from .dispatcher import ChatDispatcher, resolve_provider
from .streaming import start_stream

__all__ = ["ChatDispatcher", "resolve_provider", "start_stream"]
