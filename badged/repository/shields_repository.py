"""Badge image repository backed by a shields-style image service."""

from typing import Optional

import httpx

from badged.config.settings import Settings

DEFAULT_MIME_TYPE = "image/svg+xml"


class ShieldsRepository:
    """Repository for fetching rendered badge images."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize shields repository."""
        self.settings = settings
        self.client = httpx.AsyncClient(
            headers={"User-Agent": self.settings.user_agent},
            timeout=self.settings.request_timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    async def get_badge(self, badge_uri: str) -> tuple[bytes, str]:
        """
        Download a badge image.

        Returns (content, content_type). Raises httpx errors on failure.
        """
        response = await self.client.get(badge_uri)
        response.raise_for_status()
        content_type = response.headers.get("content-type", DEFAULT_MIME_TYPE)
        return response.content, content_type
