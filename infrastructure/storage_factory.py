from core.config import BUCKET_NAME, STORAGE_BACKEND
from domain.exceptions import ConfigurationError
from domain.ports import StorageProvider
from infrastructure.memory_bucket import InMemoryStorageProvider
from infrastructure.spaces_client import SpacesStorageProvider


def get_storage_provider(backend: str = STORAGE_BACKEND) -> StorageProvider:
    """
    Devuelve la implementación de StorageProvider según STORAGE_BACKEND.
    """
    if backend == "spaces":
        return SpacesStorageProvider()
    if backend == "memory":
        return InMemoryStorageProvider(buckets=[BUCKET_NAME] if BUCKET_NAME else [])
    raise ConfigurationError(f"Unknown storage backend '{backend}'. Valid options: spaces, memory")
