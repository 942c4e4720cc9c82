"""REST clients for the upstream model vendors."""

from .base import VendorClient
from .gemini import GeminiClient
from .openai import OpenAIClient

__all__ = ["GeminiClient", "OpenAIClient", "VendorClient"]
