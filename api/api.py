from functools import lru_cache
from typing import List
import json
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import TypeAdapter, ValidationError as SchemaValidationError

from core.config import BUCKET_ENCRYPT_KEY, BUCKET_NAME
from domain.enums.image_sizes import ImageSize
from domain.exceptions import (
    BucketError,
    ConfigurationError,
    ConversionError,
    TransportError,
    ValidationError,
)
from domain.schemas.file_schema import DownloadRequest, FileContent, ResizeOptions
from infrastructure.storage_factory import get_storage_provider
from services.bucket_client import BucketClient
from services.content_type_service import ContentTypeService

logger = logging.getLogger(__name__)

router = APIRouter()
content_types = ContentTypeService()
resize_options_adapter = TypeAdapter(List[ResizeOptions])


@lru_cache
def get_bucket_client() -> BucketClient:
    return BucketClient(
        bucket_name=BUCKET_NAME,
        storage_provider=get_storage_provider(),
        encrypt_key=BUCKET_ENCRYPT_KEY,
    )


def _to_http_error(e: BucketError) -> HTTPException:
    if isinstance(e, (ValidationError, ConversionError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, TransportError):
        if e.status_code == 404:
            return HTTPException(status_code=404, detail=str(e))
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, ConfigurationError):
        logger.error(f"Bucket mal configurado: {e}")
    return HTTPException(status_code=500, detail=str(e))


def _parse_resize_options(image_sizes: List[str], resize_options: str) -> List[ResizeOptions]:
    try:
        options = [ImageSize[size].to_resize_options() for size in image_sizes]
    except KeyError:
        raise HTTPException(400, f"Tamaño de imagen no válido. Opciones disponibles: {', '.join([size.name for size in ImageSize])}")

    try:
        options.extend(resize_options_adapter.validate_json(resize_options or "[]"))
    except SchemaValidationError as e:
        raise HTTPException(400, f"resize_options no válido: {e}")
    return options


@router.get("/health")
async def health_check():
    return {"status": "ok"}


@router.post("/files")
async def upload_file(
        folder_name: str = Form(...),
        file_name: str = Form(...),
        file: UploadFile = File(...),
        image_sizes: List[str] = Form([]),  # Nombres de ImageSize, ej: THUMBNAIL
        resize_options: str = Form("[]"),  # JSON array de ResizeOptions
        metadata: str = Form("{}"),  # JSON object
        fail_fast: bool = Form(False),
        client: BucketClient = Depends(get_bucket_client),
):
    """
    Sube un archivo y, si es una imagen, sus versiones redimensionadas.

    Tamaños válidos para el parámetro 'image_sizes':
    - PROFILE_PICTURE: (1080, 1080) - Formato 1:1 para fotos de perfil
    - PROFILE_BANNER: (1200, 600) - Formato 2:1 para banners de perfil
    - HEADER_BANNER: (1920, 1080) - Formato 16:9 para cabeceras
    - STORY_BANNER: (1080, 1920) - Formato 9:16 para historias
    - POST_BANNER: (1200, 1200) - Formato 1:1 para publicaciones
    - AD_BANNER: (1200, 628) - Formato 1.91:1 para anuncios
    - THUMBNAIL: (500, 500) - Formato 1:1 para miniaturas
    """
    options = _parse_resize_options(image_sizes, resize_options)

    try:
        file_metadata = json.loads(metadata or "{}")
    except json.JSONDecodeError:
        raise HTTPException(400, "metadata debe ser un objeto JSON")
    if not isinstance(file_metadata, dict):
        raise HTTPException(400, "metadata debe ser un objeto JSON")

    descriptor = FileContent(
        folder_name=folder_name,
        file_name=file_name,
        file_data=file,
        file_metadata=file_metadata,
        resize_options=options or None,
    )

    def log_progress(file_path: str, percentage: float):
        logger.debug(f"Subiendo {file_path}: {percentage:.0f}%")

    try:
        report = await client.upsert_files(descriptor, on_progress=log_progress, fail_fast=fail_fast)
    except BucketError as e:
        raise _to_http_error(e)
    finally:
        await file.close()

    return {"ok": report.ok, **report.model_dump()}


@router.post("/files/download")
async def download_with_metadata(
        request: DownloadRequest,
        client: BucketClient = Depends(get_bucket_client),
):
    try:
        content = await client.download(request.file_path, request.metadata)
    except BucketError as e:
        raise _to_http_error(e)
    return _file_response(content)


@router.get("/files/{file_path:path}")
async def download_file(file_path: str, client: BucketClient = Depends(get_bucket_client)):
    try:
        content = await client.download(file_path)
    except BucketError as e:
        raise _to_http_error(e)
    return _file_response(content)


@router.delete("/files/{file_path:path}")
async def delete_file(file_path: str, client: BucketClient = Depends(get_bucket_client)):
    try:
        deleted = await client.delete_file(file_path)
    except BucketError as e:
        raise _to_http_error(e)
    return {"deleted": deleted}


def _file_response(content: bytes) -> Response:
    file_type = content_types.detect(content)
    return Response(content=content, media_type=file_type.mime if file_type else "application/octet-stream")
