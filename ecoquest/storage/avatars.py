"""
Avatar object storage

Talks to the hosted storage REST API:
- upload:     POST {base_url}/storage/v1/object/{bucket}/{path}
- public URL: {base_url}/storage/v1/object/public/{bucket}/{path}

Images must pass ecoquest.validators.validate_image first.
"""

import logging
from typing import Optional

import httpx

from ecoquest import config
from ecoquest.exceptions import ConfigurationError, StorageError, wrap_external_exception
from ecoquest.observability.metrics import avatar_uploads_total
from ecoquest.resilience.retry import retry_with_backoff
from ecoquest.validators import ImageUpload

logger = logging.getLogger(__name__)


class AvatarStorage:
    """Upload avatars and resolve their public URLs"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: Optional[int] = None,
    ):
        self.base_url = (base_url if base_url is not None else config.SUPABASE_URL).rstrip("/")
        self.service_key = service_key if service_key is not None else config.SUPABASE_SERVICE_KEY
        self.bucket = bucket or config.AVATAR_BUCKET
        self.max_retries = config.PERSISTENCE_MAX_RETRIES if max_retries is None else max_retries
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.base_url and self.service_key)

    def avatar_path(self, user_id: str, image: ImageUpload) -> str:
        return f"{user_id}/avatar.{image.extension}"

    def public_url(self, path: str) -> str:
        """Public URL for a stored object path"""
        if not self.base_url:
            raise ConfigurationError("SUPABASE_URL is required for avatar URLs", config_key="SUPABASE_URL")
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path.lstrip('/')}"

    async def upload_avatar(self, user_id: str, image: ImageUpload) -> str:
        """
        Upload (or replace) a user's avatar

        Returns:
            Stored object path, e.g. "5f0c.../avatar.png"

        Raises:
            ConfigurationError: storage credentials are missing
            StorageError: the upload failed after retries
        """
        if not self.enabled:
            raise ConfigurationError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY are required for avatar uploads",
                config_key="SUPABASE_SERVICE_KEY",
            )

        path = self.avatar_path(user_id, image)
        try:
            await retry_with_backoff(self._put_object, path, image, max_retries=self.max_retries, target="storage")
        except (httpx.HTTPError, StorageError) as e:
            avatar_uploads_total.labels(status="failed").inc()
            error = wrap_external_exception(e, operation="upload_avatar", user_id=user_id)
            if isinstance(error, StorageError):
                error.path = path
            raise error

        avatar_uploads_total.labels(status="success").inc()
        logger.info(f"Uploaded avatar for user {user_id} to {path} ({len(image.data)} bytes)")
        return path

    async def _put_object(self, path: str, image: ImageUpload) -> None:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Content-Type": image.content_type,
            "x-upsert": "true",
        }

        if self._client is not None:
            response = await self._client.post(url, content=image.data, headers=headers)
            response.raise_for_status()
            return

        async with httpx.AsyncClient(timeout=config.STORAGE_TIMEOUT_SECONDS) as client:
            response = await client.post(url, content=image.data, headers=headers)
            response.raise_for_status()
