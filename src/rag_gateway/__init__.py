"""Multi-provider streaming chat gateway with document grounding."""

__version__ = "0.1.0"
