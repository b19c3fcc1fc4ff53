"""Almacenamiento de objetos en memoria, para desarrollo local y tests."""

import hashlib
import logging
import threading
from typing import Callable, Dict, Iterable, Optional
from urllib.parse import quote

from domain.exceptions import TransportError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class _StoredObject:
    def __init__(self, data: bytes, metadata: Dict[str, str], content_type: str, key_digest: Optional[str]):
        self.data = data
        self.metadata = metadata
        self.content_type = content_type
        self.key_digest = key_digest


class InMemoryStorageProvider:
    def __init__(self, buckets: Iterable[str] = (), chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size
        self._lock = threading.Lock()
        self._buckets: Dict[str, Dict[str, _StoredObject]] = {name: {} for name in buckets}

    def create_bucket(self, name: str) -> "InMemoryBucket":
        with self._lock:
            self._buckets.setdefault(name, {})
        return self.bucket(name)

    def bucket(self, name: str) -> "InMemoryBucket":
        return InMemoryBucket(name, self)


class InMemoryBucket:
    def __init__(self, name: str, provider: InMemoryStorageProvider):
        self.name = name
        self._provider = provider

    @property
    def _objects(self) -> Dict[str, _StoredObject]:
        try:
            return self._provider._buckets[self.name]
        except KeyError:
            raise TransportError(f"Bucket {self.name} does not exist", status_code=404) from None

    @staticmethod
    def _digest(key: Optional[bytes]) -> Optional[str]:
        return hashlib.sha256(key).hexdigest() if key else None

    def _get(self, path: str, encryption_key: Optional[bytes]) -> _StoredObject:
        with self._provider._lock:
            stored = self._objects.get(path)
        if stored is None:
            raise TransportError(f"No such object: {self.name}/{path}", status_code=404)
        if stored.key_digest != self._digest(encryption_key):
            raise TransportError(
                f"The provided encryption key does not match the key of {self.name}/{path}",
                status_code=400,
            )
        return stored

    def exists(self) -> bool:
        with self._provider._lock:
            return self.name in self._provider._buckets

    def upload(
        self,
        path: str,
        data: bytes,
        *,
        metadata: Dict[str, str],
        content_type: str = "application/octet-stream",
        encryption_key: Optional[bytes] = None,
        timeout: float = 0,
        on_chunk: Optional[Callable[[int], None]] = None,
    ) -> None:
        chunk_size = self._provider.chunk_size
        written = bytearray()
        for start in range(0, len(data), chunk_size):
            chunk = data[start:start + chunk_size]
            written.extend(chunk)
            if on_chunk:
                on_chunk(len(chunk))

        stored = _StoredObject(bytes(written), dict(metadata), content_type, self._digest(encryption_key))
        with self._provider._lock:
            self._objects[path] = stored
        logger.debug(f"Stored {self.name}/{path} ({len(data)} bytes)")

    def delete(self, path: str) -> None:
        with self._provider._lock:
            if self._objects.pop(path, None) is None:
                raise TransportError(f"No such object: {self.name}/{path}", status_code=404)

    def get_metadata(self, path: str, *, encryption_key: Optional[bytes] = None) -> Dict[str, str]:
        return dict(self._get(path, encryption_key).metadata)

    def set_metadata(
        self,
        path: str,
        metadata: Dict[str, str],
        *,
        encryption_key: Optional[bytes] = None,
    ) -> None:
        stored = self._get(path, encryption_key)
        with self._provider._lock:
            stored.metadata = dict(metadata)

    def download(self, path: str, *, encryption_key: Optional[bytes] = None) -> bytes:
        return self._get(path, encryption_key).data

    def public_url(self, path: str) -> str:
        return f"memory://{self.name}/{quote(path.lstrip('/'))}"
