import logging
import posixpath
from email.utils import formatdate
from typing import Optional

import httpx
from litestar import Controller, Request, get
from litestar.enums import MediaType
from litestar.response import Response
from litestar.status_codes import (
    HTTP_200_OK,
    HTTP_206_PARTIAL_CONTENT,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from badged.repository.github_repository import UpstreamUnavailableError
from badged.repository.shields_repository import DEFAULT_MIME_TYPE
from badged.schema.badge import BadgeIdentity, BadgeKind
from badged.service.badge_service import BadgeService

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Normalize a request path into a cache key."""
    return posixpath.normpath(path.lower())


def badge_headers() -> dict[str, str]:
    """Headers that keep badge images from being cached by proxies."""
    return {
        # Allow badge to be accessed from anywhere
        "Access-Control-Allow-Origin": "*",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Expires": formatdate(usegmt=True),
        "Via": "Badged",
    }


class BadgeController(Controller):
    """Controller for download count badges."""

    path = "/"

    async def _badge_response(
        self,
        badge_service: BadgeService,
        identity: BadgeIdentity,
        badge: Optional[str],
    ) -> Response:
        count = await badge_service.resolve_count(identity)
        status_code = HTTP_200_OK if count is not None else HTTP_206_PARTIAL_CONTENT

        try:
            content, content_type = await badge_service.render_badge(
                count, identity.suffix, badge
            )
        except httpx.HTTPError as e:
            logger.error(f"Badge image request failed for {identity.path}: {e}")
            content = badge_service.placeholder_badge(identity.suffix)
            content_type = DEFAULT_MIME_TYPE
            status_code = HTTP_206_PARTIAL_CONTENT

        return Response(
            content=content,
            media_type=content_type,
            status_code=status_code,
            headers=badge_headers(),
        )

    @get("/status", media_type=MediaType.HTML)
    async def api_status(self, badge_service: BadgeService) -> Response:
        """Show the GitHub API quota usage."""
        try:
            rate = await badge_service.rate_limit_status()
        except (UpstreamUnavailableError, httpx.HTTPError) as e:
            logger.error(f"Could not get GH API status: {e}")
            return Response(
                content="GH API Status<br>unavailable",
                media_type=MediaType.HTML,
                status_code=HTTP_503_SERVICE_UNAVAILABLE,
            )

        body = "GH API Status<br>"
        body += f"limit: {rate.limit}<br>"
        body += f"remaining: {rate.remaining}<br>"
        body += f"used: {rate.used}<br>"
        body += f"reset: {rate.reset.isoformat()}<br>"
        return Response(content=body, media_type=MediaType.HTML)

    @get("/{owner:str}/{repo:str}")
    async def latest(
        self,
        request: Request,
        owner: str,
        repo: str,
        badge_service: BadgeService,
        badge: Optional[str] = None,
    ) -> Response:
        """
        Badge for the latest release.

        Args:
            owner: Repository owner
            repo: Repository name
            badge: Optional shields URI template containing `%s`
        """
        identity = BadgeIdentity(
            kind=BadgeKind.LATEST,
            owner=owner,
            repo=repo,
            path=normalize_path(request.url.path),
        )
        return await self._badge_response(badge_service, identity, badge)

    @get("/{owner:str}/{repo:str}/total")
    async def total(
        self,
        request: Request,
        owner: str,
        repo: str,
        badge_service: BadgeService,
        badge: Optional[str] = None,
    ) -> Response:
        """Badge for the all-time download count of every release."""
        identity = BadgeIdentity(
            kind=BadgeKind.TOTAL,
            owner=owner,
            repo=repo,
            path=normalize_path(request.url.path),
        )
        return await self._badge_response(badge_service, identity, badge)

    @get("/{owner:str}/{repo:str}/{release_id:int}")
    async def release_by_id(
        self,
        request: Request,
        owner: str,
        repo: str,
        release_id: int,
        badge_service: BadgeService,
        badge: Optional[str] = None,
    ) -> Response:
        """Badge for a single release by its numeric id."""
        identity = BadgeIdentity(
            kind=BadgeKind.RELEASE_ID,
            owner=owner,
            repo=repo,
            release_id=release_id,
            path=normalize_path(request.url.path),
        )
        return await self._badge_response(badge_service, identity, badge)

    @get("/{owner:str}/{repo:str}/tags/{tag:str}")
    async def release_by_tag(
        self,
        request: Request,
        owner: str,
        repo: str,
        tag: str,
        badge_service: BadgeService,
        badge: Optional[str] = None,
    ) -> Response:
        """Badge for a single release by its tag."""
        identity = BadgeIdentity(
            kind=BadgeKind.TAG,
            owner=owner,
            repo=repo,
            tag=tag,
            path=normalize_path(request.url.path),
        )
        return await self._badge_response(badge_service, identity, badge)
