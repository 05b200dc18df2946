"""Client for the blob store's presigned URL endpoint."""

from typing import Optional

import httpx

from ...modules.common.exceptions import IndexingError, IndexingErrorKind
from ..config.settings import Settings
from ..logging import get_logger

logger = get_logger(__name__)

PRESIGNED_URL_PATH = "/api/file/s3/get-presigned-get-url"


class PresignedUrlClient:
    """Exchanges stored file keys for short-lived retrieval URLs.

    Authenticates with the internal API key as a bearer token.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PresignedUrlClient":
        return cls(settings.STORAGE_API_URL, settings.INTERNAL_API_KEY, timeout=settings.STORAGE_REQUEST_TIMEOUT)

    async def get_presigned_url(self, key: str) -> str:
        """Return a retrieval URL for ``key``.

        Raises:
            IndexingError: If the request fails or the response has no URL
        """
        try:
            response = await self._client.post(PRESIGNED_URL_PATH, json={"key": key})
            response.raise_for_status()
            url = response.json().get("url")
        except (httpx.HTTPError, ValueError) as e:
            raise IndexingError.wrap(e, IndexingErrorKind.EXTERNAL_SERVICE, "get_presigned_url", key=key) from e

        if not url:
            raise IndexingError(
                IndexingErrorKind.EXTERNAL_SERVICE,
                "Presigned URL response did not contain a url",
                {"operation": "get_presigned_url", "key": key},
            )
        return str(url)

    async def close(self) -> None:
        await self._client.aclose()
