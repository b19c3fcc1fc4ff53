"""Tests del bucket de Spaces firmado con SigV4, con la capa HTTP simulada."""

import base64
import hashlib
from unittest.mock import MagicMock, patch

import pytest
import requests

from domain.exceptions import ConfigurationError, TransportError
from infrastructure.spaces_client import SpacesBucket, SpacesStorageProvider

KEY = b"0123456789abcdef0123456789abcdef"


def ok_response(**kwargs):
    return MagicMock(ok=True, status_code=200, headers=kwargs.get("headers", {}), content=kwargs.get("content", b""))


@pytest.fixture
def bucket() -> SpacesBucket:
    provider = SpacesStorageProvider(
        access_key="access",
        secret_key="secret",
        region="nyc3",
        endpoint="https://nyc3.digitaloceanspaces.com",
    )
    return provider.bucket("playup")


@pytest.fixture
def mock_request():
    with patch("infrastructure.spaces_client.requests.request") as mocked:
        mocked.return_value = ok_response()
        yield mocked


def test_provider_requires_credentials():
    with pytest.raises(ConfigurationError):
        SpacesStorageProvider(access_key=None, secret_key=None)


def test_public_url(bucket):
    assert bucket.public_url("my docs/a.txt") == "https://playup.nyc3.digitaloceanspaces.com/my%20docs/a.txt"


def test_canonical_request_layout(bucket):
    canonical = bucket._create_canonical_request(
        method="PUT",
        path="/docs/a.txt",
        headers={"x-amz-date": "20240101T000000Z", "Host": "playup.nyc3.digitaloceanspaces.com"},
        content_hash="abc",
    )
    assert canonical == "\n".join([
        "PUT",
        "/docs/a.txt",
        "",
        "host:playup.nyc3.digitaloceanspaces.com",
        "x-amz-date:20240101T000000Z",
        "",
        "host;x-amz-date",
        "abc",
    ])


def test_upload_sends_signed_put(bucket, mock_request):
    bucket.upload(
        "docs/a.txt",
        b"hello",
        metadata={"Owner": "ana"},
        content_type="text/plain",
        timeout=5,
    )

    args, kwargs = mock_request.call_args
    assert args == ("PUT", "https://playup.nyc3.digitaloceanspaces.com/docs/a.txt")
    headers = kwargs["headers"]
    assert headers["Authorization"].startswith("AWS4-HMAC-SHA256 Credential=access/")
    assert "SignedHeaders=content-type;host;x-amz-acl;x-amz-content-sha256;x-amz-date;x-amz-meta-owner" in headers["Authorization"]
    assert headers["x-amz-content-sha256"] == hashlib.sha256(b"hello").hexdigest()
    assert headers["x-amz-meta-owner"] == "ana"
    assert headers["x-amz-acl"] == "public-read"
    assert headers["Content-Type"] == "text/plain"
    assert "x-amz-server-side-encryption-customer-key" not in headers
    assert kwargs["timeout"] == 5
    assert len(kwargs["data"]) == 5


def test_upload_with_customer_key(bucket, mock_request):
    bucket.upload("docs/a.txt", b"hello", metadata={}, content_type="text/plain", encryption_key=KEY, timeout=5)

    headers = mock_request.call_args.kwargs["headers"]
    assert headers["x-amz-server-side-encryption-customer-algorithm"] == "AES256"
    assert headers["x-amz-server-side-encryption-customer-key"] == base64.b64encode(KEY).decode()
    assert headers["x-amz-server-side-encryption-customer-key-MD5"] == base64.b64encode(hashlib.md5(KEY).digest()).decode()


def test_upload_reports_every_chunk_read_by_the_connection(bucket, mock_request):
    def drain(method, url, headers, data, timeout):
        while data.read(4):
            pass
        return ok_response()

    mock_request.side_effect = drain
    chunks = []
    bucket.upload("docs/a.txt", b"0123456789", metadata={}, content_type="text/plain", timeout=5, on_chunk=chunks.append)
    assert chunks == [4, 4, 2]


def test_error_status_raises_transport_error(bucket, mock_request):
    mock_request.return_value = MagicMock(ok=False, status_code=403, text="AccessDenied")
    with pytest.raises(TransportError, match="AccessDenied") as exc_info:
        bucket.delete("docs/a.txt")
    assert exc_info.value.status_code == 403


def test_connection_error_raises_transport_error(bucket, mock_request):
    mock_request.side_effect = requests.exceptions.ConnectionError("refused")
    with pytest.raises(TransportError, match="refused"):
        bucket.download("docs/a.txt")


def test_exists(bucket, mock_request):
    assert bucket.exists() is True
    assert mock_request.call_args.args == ("HEAD", "https://playup.nyc3.digitaloceanspaces.com/")

    mock_request.return_value = MagicMock(ok=False, status_code=404, text="NoSuchBucket")
    assert bucket.exists() is False


def test_exists_propagates_other_errors(bucket, mock_request):
    mock_request.return_value = MagicMock(ok=False, status_code=403, text="AccessDenied")
    with pytest.raises(TransportError):
        bucket.exists()


def test_get_metadata(bucket, mock_request):
    mock_request.return_value = ok_response(headers={"X-Amz-Meta-Owner": "ana", "Content-Type": "text/plain"})
    assert bucket.get_metadata("docs/a.txt") == {"owner": "ana"}


def test_set_metadata_copies_object_onto_itself(bucket, mock_request):
    mock_request.return_value = ok_response(headers={"Content-Type": "image/png"})

    bucket.set_metadata("docs/a.png", {"owner": "ana"}, encryption_key=KEY)

    head, put = mock_request.call_args_list
    assert head.args[0] == "HEAD"
    assert put.args[0] == "PUT"
    headers = put.kwargs["headers"]
    assert headers["x-amz-copy-source"] == "/playup/docs/a.png"
    assert headers["x-amz-metadata-directive"] == "REPLACE"
    assert headers["x-amz-meta-owner"] == "ana"
    assert headers["Content-Type"] == "image/png"
    assert headers["x-amz-copy-source-server-side-encryption-customer-key"] == base64.b64encode(KEY).decode()
    assert headers["x-amz-server-side-encryption-customer-key"] == base64.b64encode(KEY).decode()


def test_download(bucket, mock_request):
    mock_request.return_value = ok_response(content=b"payload")
    assert bucket.download("docs/a.txt", encryption_key=KEY) == b"payload"
    assert mock_request.call_args.kwargs["headers"]["x-amz-server-side-encryption-customer-algorithm"] == "AES256"
