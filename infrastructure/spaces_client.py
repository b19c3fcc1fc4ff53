import base64
import hashlib
import hmac
import datetime
import io
import requests
from typing import Callable, Dict, Optional
from urllib.parse import quote, urlparse
import logging

from core.config import DO_SPACES_ENDPOINT, DO_SPACES_REGION, DO_SPACES_SECRET, DO_SPACES_KEY
from domain.exceptions import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

META_PREFIX = "x-amz-meta-"
SSE_PREFIX = "x-amz-server-side-encryption-customer-"
COPY_SSE_PREFIX = "x-amz-copy-source-server-side-encryption-customer-"
DEFAULT_TIMEOUT = 30


class _ProgressReader:
    """Cuerpo de la petición que avisa de cada bloque que lee la conexión"""

    def __init__(self, data: bytes, on_chunk: Optional[Callable[[int], None]] = None):
        self._stream = io.BytesIO(data)
        self._length = len(data)
        self._on_chunk = on_chunk

    def __len__(self):
        return self._length

    def read(self, size: int = -1) -> bytes:
        chunk = self._stream.read(size)
        if chunk and self._on_chunk:
            self._on_chunk(len(chunk))
        return chunk


class SpacesStorageProvider:
    def __init__(
        self,
        access_key: Optional[str] = DO_SPACES_KEY,
        secret_key: Optional[str] = DO_SPACES_SECRET,
        region: str = DO_SPACES_REGION,
        endpoint: str = DO_SPACES_ENDPOINT,
    ):
        if not access_key or not secret_key:
            raise ConfigurationError("DO_SPACES_KEY and DO_SPACES_SECRET are required")
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self.endpoint_host = urlparse(endpoint).netloc or f"{region}.digitaloceanspaces.com"

    def bucket(self, name: str) -> "SpacesBucket":
        return SpacesBucket(name, self)


class SpacesBucket:
    """Bucket de Digital Ocean Spaces (API compatible con S3) firmado con AWS SigV4"""

    def __init__(self, name: str, provider: SpacesStorageProvider):
        self.bucket = name
        self.access_key = provider.access_key
        self.secret_key = provider.secret_key
        self.region = provider.region
        self.host = f"{name}.{provider.endpoint_host}"
        self.service = "s3"
        self.request_type = "aws4_request"

    def _sign(self, key: bytes, msg: str) -> bytes:
        """Firma un mensaje con la clave proporcionada"""
        return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()

    def _get_signing_key(self, date_stamp: str) -> bytes:
        """Genera la clave de firma en 4 pasos"""
        k_date = self._sign(f"AWS4{self.secret_key}".encode(), date_stamp)
        k_region = self._sign(k_date, self.region)
        k_service = self._sign(k_region, self.service)
        return self._sign(k_service, self.request_type)

    def _create_canonical_request(self, method: str, path: str, headers: dict, content_hash: str) -> str:
        """Crea la solicitud canónica para la firma"""
        sorted_headers = sorted(headers.items(), key=lambda x: x[0].lower())

        canonical_headers = "\n".join([f"{k.lower()}:{str(v).strip()}" for k, v in sorted_headers])
        signed_headers = ";".join([k.lower() for k, v in sorted_headers])

        return "\n".join([
            method,
            path,
            "",  # query string vacío
            canonical_headers,
            "",
            signed_headers,
            content_hash
        ])

    def _generate_signature(self, canonical_request: str, date_stamp: str, amz_date: str, signing_key: bytes) -> str:
        """Genera la firma final"""
        credential_scope = f"{date_stamp}/{self.region}/{self.service}/{self.request_type}"
        string_to_sign = "\n".join([
            "AWS4-HMAC-SHA256",
            amz_date,
            credential_scope,
            hashlib.sha256(canonical_request.encode()).hexdigest()
        ])
        return hmac.new(signing_key, string_to_sign.encode(), hashlib.sha256).hexdigest()

    @staticmethod
    def _encryption_headers(key: Optional[bytes], prefix: str = SSE_PREFIX) -> Dict[str, str]:
        """Cabeceras SSE-C para una clave de cifrado aportada por el cliente"""
        if not key:
            return {}
        return {
            f"{prefix}algorithm": "AES256",
            f"{prefix}key": base64.b64encode(key).decode(),
            f"{prefix}key-MD5": base64.b64encode(hashlib.md5(key).digest()).decode(),
        }

    @staticmethod
    def _metadata_headers(metadata: Optional[Dict[str, str]]) -> Dict[str, str]:
        return {f"{META_PREFIX}{k.lower()}": str(v) for k, v in (metadata or {}).items()}

    def _request(
        self,
        method: str,
        file_path: str,
        extra_headers: Optional[Dict[str, str]] = None,
        body=b"",
        content_hash: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> requests.Response:
        # 1. Preparar parámetros de fecha
        now = datetime.datetime.now(datetime.timezone.utc)
        amz_date = now.strftime("%Y%m%dT%H%M%SZ")
        date_stamp = now.strftime("%Y%m%d")

        # 2. Codificar path y crear URL
        encoded_path = "/" + quote(file_path.lstrip('/'))
        url = f"https://{self.host}{encoded_path}"

        # 3. Calcular hash del contenido
        if content_hash is None:
            content_hash = hashlib.sha256(body or b"").hexdigest()

        # 4. Crear headers
        headers = {
            "Host": self.host,
            "x-amz-content-sha256": content_hash,
            "x-amz-date": amz_date,
            **(extra_headers or {}),
        }

        # 5. Crear solicitud canónica
        canonical_request = self._create_canonical_request(
            method=method,
            path=encoded_path,
            headers=headers,
            content_hash=content_hash
        )

        # 6. Generar firma
        signing_key = self._get_signing_key(date_stamp)
        signature = self._generate_signature(
            canonical_request=canonical_request,
            date_stamp=date_stamp,
            amz_date=amz_date,
            signing_key=signing_key
        )

        # 7. Construir headers finales
        credential_scope = f"{date_stamp}/{self.region}/{self.service}/{self.request_type}"
        signed_headers = ";".join(sorted([k.lower() for k in headers.keys()]))

        headers["Authorization"] = (
            f"AWS4-HMAC-SHA256 "
            f"Credential={self.access_key}/{credential_scope}, "
            f"SignedHeaders={signed_headers}, "
            f"Signature={signature}"
        )

        # 8. Enviar solicitud
        try:
            response = requests.request(
                method,
                url,
                headers=headers,
                data=body,
                timeout=timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Error de conexión: {str(e)}")
            raise TransportError(f"Error de conexión con Digital Ocean Spaces: {e}") from e

        if not response.ok:
            logger.error(f"Error en Digital Ocean: {response.status_code} - {response.text}")
            raise TransportError(
                f"DO Spaces error: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

        return response

    def exists(self) -> bool:
        """Comprueba que el bucket existe"""
        try:
            self._request("HEAD", "/")
        except TransportError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def upload(
        self,
        path: str,
        data: bytes,
        *,
        metadata: Dict[str, str],
        content_type: str = "application/octet-stream",
        encryption_key: Optional[bytes] = None,
        timeout: float = DEFAULT_TIMEOUT,
        on_chunk: Optional[Callable[[int], None]] = None,
    ) -> None:
        """Sube un archivo a Digital Ocean Spaces en una única petición PUT"""
        headers = {
            "Content-Type": content_type,
            "x-amz-acl": "public-read",
            **self._metadata_headers(metadata),
            **self._encryption_headers(encryption_key),
        }
        self._request(
            "PUT",
            path,
            extra_headers=headers,
            body=_ProgressReader(data, on_chunk),
            content_hash=hashlib.sha256(data).hexdigest(),
            timeout=timeout,
        )

    def delete(self, path: str) -> None:
        """Elimina un archivo de Digital Ocean Spaces por su ruta"""
        self._request("DELETE", path)

    def _head(self, path: str, encryption_key: Optional[bytes]) -> requests.Response:
        return self._request("HEAD", path, extra_headers=self._encryption_headers(encryption_key))

    def get_metadata(self, path: str, *, encryption_key: Optional[bytes] = None) -> Dict[str, str]:
        """Devuelve los metadatos personalizados (x-amz-meta-*) del objeto"""
        response = self._head(path, encryption_key)
        return {
            k.lower()[len(META_PREFIX):]: v
            for k, v in response.headers.items()
            if k.lower().startswith(META_PREFIX)
        }

    def set_metadata(
        self,
        path: str,
        metadata: Dict[str, str],
        *,
        encryption_key: Optional[bytes] = None,
    ) -> None:
        """Reemplaza los metadatos copiando el objeto sobre sí mismo"""
        # La copia con REPLACE también reemplaza el Content-Type
        content_type = self._head(path, encryption_key).headers.get("Content-Type", "application/octet-stream")
        headers = {
            "Content-Type": content_type,
            "x-amz-acl": "public-read",
            "x-amz-copy-source": quote(f"/{self.bucket}/{path.lstrip('/')}"),
            "x-amz-metadata-directive": "REPLACE",
            **self._metadata_headers(metadata),
            **self._encryption_headers(encryption_key),
            **self._encryption_headers(encryption_key, prefix=COPY_SSE_PREFIX),
        }
        self._request("PUT", path, extra_headers=headers)

    def download(self, path: str, *, encryption_key: Optional[bytes] = None) -> bytes:
        """Descarga el objeto completo"""
        response = self._request("GET", path, extra_headers=self._encryption_headers(encryption_key))
        return response.content

    def public_url(self, path: str) -> str:
        return f"https://{self.host}/{quote(path.lstrip('/'))}"
