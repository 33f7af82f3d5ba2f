"""
Connectors to the pico engine.

The engine is an external collaborator reached only over HTTP; everything
that touches the wire goes through `EngineTransport`.
"""

from .engine_client import EngineTransport

__all__ = ["EngineTransport"]
