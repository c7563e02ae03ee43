"""Tournament host package: wraps the Podrida engine with networking and storage."""

from .server import HostServer

__all__ = ["HostServer"]
