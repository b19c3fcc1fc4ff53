"""Fixtures compartidas: bucket en memoria, imágenes generadas y dobles que registran las subidas."""

import io
import threading
import time

import pytest
import pytest_asyncio
from PIL import Image

from infrastructure.memory_bucket import InMemoryBucket, InMemoryStorageProvider
from services.bucket_client import BucketClient

BUCKET = "test-bucket"
ENCRYPT_KEY = "0123456789abcdef0123456789abcdef"

# Cajas ftyp completas: tamaño, "ftyp", marca principal, versión, marcas compatibles
MP4_HEADER = b"\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00mp42isom"
AVIF_HEADER = b"\x00\x00\x00\x1cftypavif\x00\x00\x00\x00avifmif1miaf"
HEIC_HEADER = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic"


def make_image(fmt: str = "PNG", size=(64, 32), mode: str = "RGB", color="red") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


class RecordingBucket(InMemoryBucket):
    """Bucket en memoria que registra las subidas y el máximo de subidas simultáneas."""

    def __init__(self, name, provider, delay: float = 0.0):
        super().__init__(name, provider)
        self.delay = delay
        self.uploaded = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._counter_lock = threading.Lock()

    def upload(self, path, data, **kwargs):
        with self._counter_lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            super().upload(path, data, **kwargs)
            self.uploaded.append(path)
        finally:
            with self._counter_lock:
                self.in_flight -= 1


class RecordingProvider(InMemoryStorageProvider):
    def __init__(self, delay: float = 0.0, **kwargs):
        super().__init__(buckets=[BUCKET], **kwargs)
        self.recorder = RecordingBucket(BUCKET, self, delay=delay)

    def bucket(self, name):
        if name == BUCKET:
            return self.recorder
        return super().bucket(name)


@pytest.fixture
def png_bytes() -> bytes:
    return make_image("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image("JPEG")


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider(chunk_size=16)


@pytest_asyncio.fixture
async def client(provider) -> BucketClient:
    instance = BucketClient(BUCKET, provider, max_concurrency=4)
    await instance.open()
    return instance


@pytest_asyncio.fixture
async def encrypted_client(provider) -> BucketClient:
    instance = BucketClient(BUCKET, provider, encrypt_key=ENCRYPT_KEY)
    await instance.open()
    return instance
