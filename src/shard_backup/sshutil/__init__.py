"""SSH transport helpers."""

from .remote import RemoteError, RemoteResult, RemoteRunner

__all__ = ["RemoteError", "RemoteResult", "RemoteRunner"]
