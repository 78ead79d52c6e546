from .base import Backend, BackendHandle, Operation

__all__ = ["Backend", "BackendHandle", "Operation"]
