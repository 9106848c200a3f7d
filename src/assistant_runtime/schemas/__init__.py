"""Request models for the HTTP surface."""

from .responses import ResponseStreamRequest

__all__ = ["ResponseStreamRequest"]
