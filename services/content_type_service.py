"""Detección del tipo de contenido a partir de los bytes del archivo (magic bytes)."""

import logging
from typing import Optional

import filetype

from domain.schemas.file_schema import FileType

logger = logging.getLogger(__name__)


class ContentTypeService:

    def detect(self, data: bytes) -> Optional[FileType]:
        """Devuelve extensión y MIME según la cabecera del buffer, o None si no se reconoce"""
        if not data:
            return None

        kind = filetype.guess(data)
        if kind is None:
            logger.debug(f"Tipo de contenido desconocido ({len(data)} bytes)")
            return None
        return FileType(ext=kind.extension, mime=kind.mime)
