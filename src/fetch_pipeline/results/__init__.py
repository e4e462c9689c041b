"""
Result adapters: promise mode and stream mode over one pipeline.
"""
from .promise import RequestPromise
from .stream import RequestStream

__all__ = ["RequestPromise", "RequestStream"]
