"""Object store clients for gsprotocol."""

from typing import TYPE_CHECKING

from gsprotocol.storage.backend import (
    BucketHandle,
    ObjectHandle,
    StorageClient,
    StorageReader,
)

if TYPE_CHECKING:
    from gsprotocol.config import StorageConfig

__all__ = [
    "BucketHandle",
    "create_storage_client",
    "ObjectHandle",
    "StorageClient",
    "StorageReader",
]


def create_storage_client(config: "StorageConfig") -> StorageClient:
    """Create an object store client based on configuration.

    Args:
        config: The storage configuration.

    Returns:
        A client implementing the StorageClient protocol.

    Raises:
        ValueError: If the backend is unknown.
    """
    backend = config.backend

    if backend == "gcs":
        try:
            from gsprotocol.storage.gcs import GCSStorageClient
        except ImportError as exc:
            raise ImportError(
                "gcloud-aio-storage is required for the GCS backend. "
                "Install with: pip install gsprotocol"
            ) from exc
        return GCSStorageClient(
            service_file=config.gcs_service_file or None,
            api_root=config.gcs_api_root or None,
        )

    elif backend == "memory":
        from gsprotocol.storage.memory import MemoryStorageClient

        return MemoryStorageClient()

    else:
        raise ValueError(f"Unknown storage backend: {backend}")
