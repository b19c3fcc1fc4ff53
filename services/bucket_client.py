"""Sube, descarga y elimina archivos de un bucket de almacenamiento de objetos.

``BucketClient`` convierte lo que envía el llamador (bytes, texto base64 u
objetos con ``read()``) en bytes, genera opcionalmente copias redimensionadas
de las imágenes y sube cada archivo resultante, opcionalmente cifrado con una
clave aportada por el cliente.

Uso::

    client = BucketClient("playup", SpacesStorageProvider(), encrypt_key=key)
    await client.open()
    report = await client.upsert_files(FileContent(
        folder_name="avatars",
        file_name="user-1.png",
        file_data=png_bytes,
        resize_options=[ImageSize.THUMBNAIL.to_resize_options()],
    ))
"""

import asyncio
import base64
import binascii
import inspect
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as SchemaValidationError

from core.config import LEGACY_PATH_CHECK, UPLOAD_MAX_CONCURRENCY, UPLOAD_TIMEOUT
from domain.exceptions import ConfigurationError, ConversionError, TransportError, ValidationError
from domain.ports import Bucket, ImageResizer, StorageProvider, TypeSniffer
from domain.schemas.file_schema import (
    DerivedFile,
    FileContent,
    ResizeOptions,
    UpsertOutcome,
    UpsertReport,
    UpsertResult,
)
from services.content_type_service import ContentTypeService
from services.image_processing_service import ImageProcessingService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]
FileInput = Union[FileContent, Dict[str, Any]]

FOLDER_PATTERN = re.compile(r"[A-Za-z0-9-]+(/[A-Za-z0-9-]+)*")
FILE_NAME_PATTERN = re.compile(r"[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*")
LEGACY_PATTERN = re.compile(r"[A-Za-z0-9-]")


class _ProgressTracker:
    """Convierte los bloques que informa el hilo de subida en porcentajes dentro del loop.

    Un error del callback se registra y no interrumpe la subida.
    """

    def __init__(
        self,
        file_path: str,
        total_bytes: int,
        callback: Optional[ProgressCallback],
        loop: asyncio.AbstractEventLoop,
    ):
        self.file_path = file_path
        self.total_bytes = total_bytes
        self.uploaded_bytes = 0
        self.last_percentage = 0.0
        self._callback = callback
        self._loop = loop

    def _notify(self, percentage: float) -> None:
        try:
            self._callback(self.file_path, percentage)
        except Exception as e:
            logger.error(f"Error en el callback de progreso de {self.file_path}: {e}")

    def advance(self, chunk_size: int) -> None:
        self.uploaded_bytes += chunk_size
        if not self.total_bytes:
            return
        self.last_percentage = min(100.0, self.uploaded_bytes / self.total_bytes * 100)
        logger.debug(f"{self.file_path}: {self.last_percentage:.1f}%")
        if self._callback:
            self._loop.call_soon_threadsafe(self._notify, self.last_percentage)

    def finish(self) -> None:
        # Los avisos de advance() ya se ejecutaron: preceden al resultado de la subida en el loop
        if self.last_percentage < 100.0:
            self.last_percentage = 100.0
            if self._callback:
                self._notify(100.0)


class BucketClient:
    def __init__(
        self,
        bucket_name: Optional[str],
        storage_provider: Optional[StorageProvider],
        encrypt_key: Optional[str] = None,
        *,
        resizer: Optional[ImageResizer] = None,
        sniffer: Optional[TypeSniffer] = None,
        max_concurrency: int = UPLOAD_MAX_CONCURRENCY,
        upload_timeout: float = UPLOAD_TIMEOUT,
        legacy_path_check: bool = LEGACY_PATH_CHECK,
    ):
        if not bucket_name:
            raise ConfigurationError("bucket_name is required")
        if storage_provider is None:
            raise ConfigurationError("storage_provider is required")
        if max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")

        self.bucket_name = bucket_name
        self._provider = storage_provider
        self._encrypt_key = encrypt_key.encode("utf-8") if encrypt_key else None
        self._resizer = resizer or ImageProcessingService()
        self._sniffer = sniffer or ContentTypeService()
        self._max_concurrency = max_concurrency
        self._upload_timeout = upload_timeout
        self._legacy_path_check = legacy_path_check
        self._bucket: Optional[Bucket] = None

    async def open(self) -> "BucketClient":
        """Obtiene el bucket del proveedor y comprueba que existe.

        Se puede llamar varias veces; cada operación la llama en su primer uso.

        Raises:
            ConfigurationError: Si el bucket no existe.
        """
        if self._bucket is not None:
            return self

        bucket = self._provider.bucket(self.bucket_name)
        if not await asyncio.to_thread(bucket.exists):
            raise ConfigurationError(f"Storage bucket does not exist: {self.bucket_name}")

        self._bucket = bucket
        logger.info(f"Bucket listo: {self.bucket_name}")
        return self

    async def _get_bucket(self) -> Bucket:
        await self.open()
        return self._bucket

    async def get_buffer(self, data: Any) -> bytes:
        """Convierte bytes, texto base64 o un objeto con read() en bytes.

        Raises:
            ConversionError: Si no se puede leer o decodificar el contenido.
        """
        if isinstance(data, (bytes, bytearray, memoryview)):
            return bytes(data)

        if isinstance(data, str):
            try:
                return base64.b64decode(data)
            except (binascii.Error, ValueError) as e:
                raise ConversionError(f"Failed to decode base64 file data: {e}") from e

        read = getattr(data, "read", None)
        if callable(read):
            try:
                if inspect.iscoroutinefunction(read):
                    content = await read()
                else:
                    content = await asyncio.to_thread(read)
            except Exception as e:
                raise ConversionError(f"Failed to convert blob to buffer: {e}") from e
            if isinstance(content, str):
                return content.encode("utf-8")
            return bytes(content)

        raise ConversionError(f"Unsupported file data type: {type(data).__name__}")

    def is_image(self, data: bytes) -> bool:
        file_type = self._sniffer.detect(data)
        return file_type is not None and file_type.mime.startswith("image/")

    async def resize(self, data: bytes, options: ResizeOptions) -> bytes:
        return await asyncio.to_thread(
            self._resizer.resize, data, options.width, options.height, options.fit
        )

    def _check_name(self, pattern: re.Pattern, value: str) -> bool:
        if self._legacy_path_check:
            return LEGACY_PATTERN.search(value) is not None
        return pattern.fullmatch(value) is not None

    def normalize_path(self, folder_name: str, file_name: str) -> Tuple[str, str]:
        """Cambia espacios por guiones y valida carpeta y nombre de archivo.

        Raises:
            ValidationError: Si alguna de las dos partes tiene caracteres no válidos.
        """
        folder_name = folder_name.replace(" ", "-")
        file_name = file_name.replace(" ", "-")

        if not self._check_name(FOLDER_PATTERN, folder_name):
            raise ValidationError(
                f"Failed to upsert file, folderPath=[{folder_name}] contains invalid characters"
            )
        if not self._check_name(FILE_NAME_PATTERN, file_name):
            raise ValidationError(
                f"Failed to upsert file, fileName=[{file_name}] contains invalid characters"
            )
        return folder_name, file_name

    async def upsert_file(
        self,
        folder_name: str,
        file_name: str,
        file_data: bytes,
        metadata: Optional[Dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UpsertResult:
        """Crea o sobrescribe un objeto en ``folder_name/file_name``.

        La ruta guardada, la ruta devuelta y la URL usan los nombres normalizados.

        Raises:
            ValidationError: Antes de cualquier petición, si los nombres no son válidos.
            TransportError: Si la subida falla. No se reintenta.
        """
        folder_name, file_name = self.normalize_path(folder_name, file_name)
        file_path = f"{folder_name}/{file_name}"
        bucket = await self._get_bucket()

        file_type = self._sniffer.detect(file_data)
        tracker = _ProgressTracker(file_path, len(file_data), on_progress, asyncio.get_running_loop())

        try:
            await asyncio.to_thread(
                bucket.upload,
                file_path,
                file_data,
                metadata={k: str(v) for k, v in (metadata or {}).items()},
                content_type=file_type.mime if file_type else "application/octet-stream",
                encryption_key=self._encrypt_key,
                timeout=self._upload_timeout,
                on_chunk=tracker.advance,
            )
        except Exception as e:
            logger.error(f"Error al subir {file_path}: {e}")
            raise TransportError(
                f"File upload failed: {e}", status_code=getattr(e, "status_code", None)
            ) from e

        tracker.finish()
        logger.info(f"Subido {file_path} ({len(file_data)} bytes)")

        return UpsertResult(
            file_url=bucket.public_url(file_path),
            file_path=file_path,
            file_name=file_name,
            file_type=file_type.ext if file_type else None,
            file_content_type=file_type.mime if file_type else None,
        )

    async def get_files_to_update(self, file: FileInput) -> List[DerivedFile]:
        """Expande un descriptor en el archivo original más uno por cada redimensionado.

        Raises:
            ValidationError: Si el descriptor está mal formado o se pide redimensionar
                algo que no es una imagen.
            ConversionError: Si no se puede leer el contenido.
        """
        try:
            file = FileContent.model_validate(file)
        except SchemaValidationError as e:
            raise ValidationError(f"Invalid file descriptor: {e}") from e

        buffer = await self.get_buffer(file.file_data)

        if file.resize_options and not self.is_image(buffer):
            raise ValidationError("Is not possible to resize a non-image file.")

        metadata = dict(file.file_metadata or {})
        files_to_upsert = [
            DerivedFile(
                folder_name=file.folder_name,
                file_name=file.file_name,
                file_data=buffer,
                file_metadata=metadata,
            )
        ]

        for resize_option in file.resize_options or []:
            files_to_upsert.append(
                DerivedFile(
                    folder_name=file.folder_name,
                    file_name=resize_option.file_resize_prefix + (resize_option.file_name or file.file_name),
                    file_data=await self.resize(buffer, resize_option),
                    file_metadata=metadata,
                )
            )

        return files_to_upsert

    async def upsert_files(
        self,
        files: Union[FileInput, Sequence[FileInput]],
        on_progress: Optional[ProgressCallback] = None,
        fail_fast: bool = False,
    ) -> UpsertReport:
        """Sube uno o varios descriptores junto con sus versiones redimensionadas.

        Cada descriptor se expande en sus archivos derivados y todos se suben
        con, como mucho, ``max_concurrency`` subidas en curso. El informe
        conserva el orden de entrada.

        Por defecto un error solo marca su propio resultado. Con ``fail_fast``
        se lanza el primer error: los fallos de preparación y de nombres
        cancelan el lote antes de subir nada, y un fallo de subida cancela el
        resto.
        """
        if isinstance(files, (FileContent, dict)):
            files = [files]
        files = list(files)

        expansions = await asyncio.gather(
            *(self.get_files_to_update(file) for file in files),
            return_exceptions=True,
        )

        # Una entrada por archivo derivado, o una por descriptor que falló
        worklist: List[Tuple[UpsertOutcome, Optional[DerivedFile]]] = []
        for file, expansion in zip(files, expansions):
            if isinstance(expansion, BaseException):
                if fail_fast or not isinstance(expansion, Exception):
                    raise expansion
                folder_name, file_name = self._names_of(file)
                worklist.append((self._failed(folder_name, file_name, expansion), None))
                continue
            for derived in expansion:
                try:
                    self.normalize_path(derived.folder_name, derived.file_name)
                except ValidationError as e:
                    if fail_fast:
                        raise
                    worklist.append((self._failed(derived.folder_name, derived.file_name, e), None))
                    continue
                outcome = UpsertOutcome(folder_name=derived.folder_name, file_name=derived.file_name)
                worklist.append((outcome, derived))

        await self._get_bucket()
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def upload(outcome: UpsertOutcome, derived: DerivedFile) -> None:
            async with semaphore:
                try:
                    outcome.result = await self.upsert_file(
                        derived.folder_name,
                        derived.file_name,
                        derived.file_data,
                        derived.file_metadata,
                        on_progress,
                    )
                except Exception as e:
                    if fail_fast:
                        raise
                    self._record_error(outcome, e)

        tasks = [
            asyncio.create_task(upload(outcome, derived))
            for outcome, derived in worklist
            if derived is not None
        ]
        if tasks:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            for task in tasks:
                if task in done and not task.cancelled() and task.exception() is not None:
                    raise task.exception()

        report = UpsertReport(outcomes=[outcome for outcome, _ in worklist])
        if report.errors:
            logger.warning(f"{len(report.errors)} de {len(report.outcomes)} archivos no se subieron")
        return report

    @staticmethod
    def _names_of(file: Any) -> Tuple[str, str]:
        # Un descriptor mal formado puede no traer carpeta o nombre
        if isinstance(file, FileContent):
            return file.folder_name, file.file_name
        if isinstance(file, dict):
            return str(file.get("folder_name", "")), str(file.get("file_name", ""))
        return "", ""

    @staticmethod
    def _record_error(outcome: UpsertOutcome, error: Exception) -> None:
        outcome.error = str(error)
        outcome._exception = error

    def _failed(self, folder_name: str, file_name: str, error: Exception) -> UpsertOutcome:
        outcome = UpsertOutcome(folder_name=folder_name, file_name=file_name)
        self._record_error(outcome, error)
        return outcome

    async def delete_file(self, file_path: str) -> bool:
        """Elimina un objeto. Los errores del almacenamiento se propagan sin cambios."""
        bucket = await self._get_bucket()
        await asyncio.to_thread(bucket.delete, file_path)
        logger.info(f"Eliminado {file_path}")
        return True

    async def download(self, file_path: str, metadata: Optional[Dict[str, Any]] = None) -> bytes:
        """Descarga el objeto completo, fusionando antes ``metadata`` con sus metadatos.

        Las claves de ``metadata`` tienen prioridad sobre las guardadas.
        """
        bucket = await self._get_bucket()
        if metadata:
            old_metadata = await asyncio.to_thread(
                bucket.get_metadata, file_path, encryption_key=self._encrypt_key
            )
            merged = {**old_metadata, **{k: str(v) for k, v in metadata.items()}}
            await asyncio.to_thread(
                bucket.set_metadata, file_path, merged, encryption_key=self._encrypt_key
            )

        return await asyncio.to_thread(bucket.download, file_path, encryption_key=self._encrypt_key)
