"""Unit tests for avatar object storage"""
import pytest
from unittest.mock import AsyncMock, patch

import httpx

from ecoquest.exceptions import ConfigurationError, StorageError
from ecoquest.storage.avatars import AvatarStorage
from ecoquest.validators import validate_image


BASE_URL = "https://project.supabase.test"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("ecoquest.resilience.retry.asyncio.sleep", new=AsyncMock()):
        yield


@pytest.fixture
def image():
    return validate_image("me.png", "image/png", PNG_BYTES)


def make_storage(handler, max_retries=2):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AvatarStorage(
        base_url=BASE_URL + "/",
        service_key="service-key",
        bucket="avatars",
        client=client,
        max_retries=max_retries,
    )


@pytest.mark.asyncio
async def test_upload_avatar(image):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"Key": "avatars/user-1/avatar.png"})

    storage = make_storage(handler)

    path = await storage.upload_avatar("user-1", image)

    assert path == "user-1/avatar.png"
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/storage/v1/object/avatars/user-1/avatar.png"
    assert request.headers["authorization"] == "Bearer service-key"
    assert request.headers["x-upsert"] == "true"
    assert request.headers["content-type"] == "image/png"
    assert request.content == PNG_BYTES


def test_public_url(image):
    storage = make_storage(lambda request: httpx.Response(200))

    assert storage.public_url("user-1/avatar.png") == (
        f"{BASE_URL}/storage/v1/object/public/avatars/user-1/avatar.png"
    )


@pytest.mark.asyncio
async def test_upload_retries_server_errors(image):
    responses = iter([httpx.Response(503), httpx.Response(200)])
    calls = []

    def handler(request):
        calls.append(request)
        return next(responses)

    storage = make_storage(handler)

    assert await storage.upload_avatar("user-1", image) == "user-1/avatar.png"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_upload_client_error_not_retried(image):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(413, json={"error": "Payload too large"})

    storage = make_storage(handler)

    with pytest.raises(StorageError) as exc_info:
        await storage.upload_avatar("user-1", image)

    assert exc_info.value.status_code == 413
    assert exc_info.value.path == "user-1/avatar.png"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_upload_network_failure(image):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    storage = make_storage(handler, max_retries=1)

    with pytest.raises(StorageError):
        await storage.upload_avatar("user-1", image)

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_upload_requires_credentials(image):
    storage = AvatarStorage(base_url="", service_key="")

    assert storage.enabled is False
    with pytest.raises(ConfigurationError):
        await storage.upload_avatar("user-1", image)
