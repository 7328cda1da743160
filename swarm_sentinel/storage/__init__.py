"""
Swarm Sentinel - Shared Storage

Partage NFS de contrôle entre noeuds avec chaîne de repli.
"""

from .interfaces import (
    # Enums
    StorageState,
    SharedFile,
    ReadSource,
    # Data classes
    SharedStorageHandle,
    StorageRead,
    # Interfaces
    IStorageBackend,
    IPeerFileSource,
)
from .file_store import LocalFileStore, UnreadableFileError
from .defaults import DEFAULT_LB_CONFIG, default_for
from .nfs_backend import NfsStorageBackend, DockerVolumePeerSource
from .shared_storage import SharedStorageCoordinator, SharedStorageError

__all__ = [
    # Enums
    "StorageState",
    "SharedFile",
    "ReadSource",
    # Data classes
    "SharedStorageHandle",
    "StorageRead",
    # Interfaces
    "IStorageBackend",
    "IPeerFileSource",
    # Implementations
    "LocalFileStore",
    "NfsStorageBackend",
    "DockerVolumePeerSource",
    "SharedStorageCoordinator",
    # Defaults
    "DEFAULT_LB_CONFIG",
    "default_for",
    # Exceptions
    "SharedStorageError",
    "UnreadableFileError",
]
