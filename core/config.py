from typing import Optional

from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()  # Carga las variables de entorno desde .env


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "spaces")
    BUCKET_NAME: Optional[str] = os.getenv("BUCKET_NAME", "playup")
    BUCKET_ENCRYPT_KEY: Optional[str] = os.getenv("BUCKET_ENCRYPT_KEY") or None
    DO_SPACES_KEY: Optional[str] = os.getenv("DO_SPACES_KEY")
    DO_SPACES_SECRET: Optional[str] = os.getenv("DO_SPACES_SECRET")
    DO_SPACES_REGION: str = os.getenv("DO_SPACES_REGION", "nyc3")
    DO_SPACES_ENDPOINT: str = os.getenv("DO_SPACES_ENDPOINT", "https://nyc3.digitaloceanspaces.com")
    UPLOAD_TIMEOUT: float = float(os.getenv("UPLOAD_TIMEOUT", "5"))  # segundos
    UPLOAD_MAX_CONCURRENCY: int = int(os.getenv("UPLOAD_MAX_CONCURRENCY", "8"))
    LEGACY_PATH_CHECK: bool = _env_bool("LEGACY_PATH_CHECK")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()

STORAGE_BACKEND = settings.STORAGE_BACKEND
BUCKET_NAME = settings.BUCKET_NAME
BUCKET_ENCRYPT_KEY = settings.BUCKET_ENCRYPT_KEY
DO_SPACES_KEY = settings.DO_SPACES_KEY
DO_SPACES_SECRET = settings.DO_SPACES_SECRET
DO_SPACES_REGION = settings.DO_SPACES_REGION
DO_SPACES_ENDPOINT = settings.DO_SPACES_ENDPOINT
UPLOAD_TIMEOUT = settings.UPLOAD_TIMEOUT
UPLOAD_MAX_CONCURRENCY = settings.UPLOAD_MAX_CONCURRENCY
LEGACY_PATH_CHECK = settings.LEGACY_PATH_CHECK
LOG_LEVEL = settings.LOG_LEVEL
