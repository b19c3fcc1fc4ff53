"""Excepciones que lanza el cliente del bucket."""
from typing import Optional


class BucketError(Exception):
    """Clase base de todos los errores del cliente del bucket."""
    pass


class ConfigurationError(BucketError):
    """Falta el nombre del bucket o el proveedor, o el bucket no existe."""
    pass


class ValidationError(BucketError, ValueError):
    """Nombre de carpeta o archivo no válido, o redimensionado de algo que no es una imagen."""
    pass


class ConversionError(BucketError):
    """El contenido no se pudo convertir en bytes ni decodificar como imagen."""
    pass


class TransportError(BucketError, RuntimeError):
    """El almacenamiento rechazó la petición o no se pudo contactar."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
