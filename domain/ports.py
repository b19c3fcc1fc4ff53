from typing import Callable, Dict, Optional, Protocol

from domain.schemas.file_schema import FileType


class Bucket(Protocol):
    """Acceso a un bucket concreto del almacenamiento de objetos."""

    def exists(self) -> bool:
        ...

    def upload(
        self,
        path: str,
        data: bytes,
        *,
        metadata: Dict[str, str],
        content_type: str,
        encryption_key: Optional[bytes],
        timeout: float,
        on_chunk: Optional[Callable[[int], None]] = None,
    ) -> None:
        """Escribe el objeto completo en una única petición no reanudable.

        Args:
            path: Ruta del objeto dentro del bucket.
            data: Contenido del objeto.
            metadata: Metadatos personalizados que se guardan con el objeto.
            content_type: Tipo MIME que se envía con el objeto.
            encryption_key: Clave aportada por el cliente, o None.
            timeout: Tiempo máximo de la petición en segundos.
            on_chunk: Se llama con el tamaño de cada bloque escrito.
        """
        ...

    def delete(self, path: str) -> None:
        ...

    def get_metadata(self, path: str, *, encryption_key: Optional[bytes] = None) -> Dict[str, str]:
        ...

    def set_metadata(
        self,
        path: str,
        metadata: Dict[str, str],
        *,
        encryption_key: Optional[bytes] = None,
    ) -> None:
        ...

    def download(self, path: str, *, encryption_key: Optional[bytes] = None) -> bytes:
        ...

    def public_url(self, path: str) -> str:
        ...


class StorageProvider(Protocol):
    def bucket(self, name: str) -> Bucket:
        ...


class ImageResizer(Protocol):
    def resize(self, data: bytes, width: int, height: int, fit: Optional[str] = None) -> bytes:
        ...


class TypeSniffer(Protocol):
    def detect(self, data: bytes) -> Optional[FileType]:
        """Devuelve la extensión y el MIME leídos de los bytes del archivo."""
        ...
