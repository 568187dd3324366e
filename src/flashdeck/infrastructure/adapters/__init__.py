# Infrastructure Storage Adapters Package
from .file_backend import FileStorageBackend
from .memory_backend import MemoryStorageBackend

__all__ = ["FileStorageBackend", "MemoryStorageBackend"]
