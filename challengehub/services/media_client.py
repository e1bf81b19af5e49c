"""Client for the media service that stores submission videos."""

from dataclasses import dataclass

import httpx

from challengehub.errors import ServiceUnavailableError
from challengehub.logging_config import get_logger

logger = get_logger(__name__)

AVAILABLE_STATUSES = frozenset({"ready", "available", "active"})


@dataclass(frozen=True)
class MediaAsset:
    file_id: str
    public_url: str | None
    available: bool


class MediaClient:
    """Resolves opaque media file ids via ``GET {base_url}/files/{id}``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def resolve(self, file_id: str) -> MediaAsset:
        """Look up a file. Unknown ids come back as unavailable.

        Raises:
            ServiceUnavailableError: The media service could not answer.
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.get(f"/files/{file_id}")
        except httpx.HTTPError as e:
            logger.warning("media_lookup_failed", file_id=file_id, error=str(e))
            raise ServiceUnavailableError(
                "Media service unavailable", {"file_id": file_id}
            ) from e

        if resp.status_code == 404:
            return MediaAsset(file_id=file_id, public_url=None, available=False)
        if resp.status_code != 200:
            logger.warning("media_lookup_bad_status", file_id=file_id, status_code=resp.status_code)
            raise ServiceUnavailableError(
                "Media service returned an error",
                {"file_id": file_id, "status_code": resp.status_code},
            )

        data = resp.json()
        status = str(data.get("status", "ready")).lower()
        public_url = data.get("publicUrl")
        return MediaAsset(
            file_id=file_id,
            public_url=public_url,
            available=bool(public_url) and status in AVAILABLE_STATUSES,
        )
