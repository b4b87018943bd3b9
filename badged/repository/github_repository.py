"""GitHub releases API repository."""

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from urllib.parse import quote

import httpx

from badged.config.settings import Settings
from badged.schema.github import PaginationLinks, RateLimitStatus, UpstreamResponse

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/vnd.github.v3.full+json"


class UpstreamUnavailableError(Exception):
    """Raised when the GitHub API cannot be reached or times out."""


def _page_number(url: Optional[str]) -> Optional[int]:
    """Extract the `page` query parameter from a pagination link."""
    if not url:
        return None
    page = httpx.URL(url).params.get("page")
    try:
        return int(page) if page is not None else None
    except ValueError:
        return None


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    # "-0000" parses as naive
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GitHubRepository:
    """Repository for conditional requests against the GitHub releases API."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize GitHub repository."""
        self.settings = settings
        headers = {
            # Required for GitHub API
            "User-Agent": self.settings.user_agent,
            "Accept": ACCEPT_HEADER,
        }
        # Only add oauth token if set
        if self.settings.github_token:
            headers["Authorization"] = f"token {self.settings.github_token}"

        self.client = httpx.AsyncClient(
            base_url=self.settings.github_api_url,
            headers=headers,
            timeout=self.settings.request_timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    def releases_uri(self, owner: str, repo: str, *parts: str | int) -> str:
        """Build the releases API path for a repository."""
        base = f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}/releases"
        if not parts:
            return base
        return "/".join([base, *(quote(str(p), safe="") for p in parts)])

    def page_uri(self, collection_uri: str, page: Optional[int] = None) -> str:
        """Add pagination query parameters to a collection URI."""
        params = {"per_page": self.settings.page_size}
        if page:
            params["page"] = page
        return str(httpx.URL(collection_uri, params=params))

    async def fetch(self, uri: str, etag: Optional[str] = None) -> UpstreamResponse:
        """
        Fetch a releases resource.

        If `etag` is given the request is conditional (If-None-Match); a 304
        or 403 comes back as a regular response, never as an exception.
        Network failures and timeouts raise UpstreamUnavailableError.
        """
        headers = {"If-None-Match": etag} if etag else None
        try:
            response = await self.client.get(uri, headers=headers)
        except httpx.RequestError as e:
            raise UpstreamUnavailableError(f"GET {uri} failed: {e!r}") from e

        logger.debug(f"GET {response.request.url} -> {response.status_code}")

        body = None
        if response.is_success and response.content:
            try:
                body = response.json()
            except ValueError:
                logger.error(f"Invalid JSON body from {response.request.url}")

        links = response.links
        remaining = response.headers.get("x-ratelimit-remaining")

        return UpstreamResponse(
            uri=str(response.request.url),
            status_code=response.status_code,
            body=body,
            etag=response.headers.get("etag"),
            last_modified=response.headers.get("last-modified"),
            date=_parse_date(response.headers.get("date")),
            links=PaginationLinks(
                next=_page_number(links.get("next", {}).get("url")),
                last=_page_number(links.get("last", {}).get("url")),
            ),
            rate_limit_remaining=int(remaining) if remaining and remaining.isdigit() else None,
        )

    async def get_rate_limit(self) -> RateLimitStatus:
        """Get the core rate limit status of the API."""
        try:
            response = await self.client.get("/rate_limit")
            response.raise_for_status()
        except httpx.RequestError as e:
            raise UpstreamUnavailableError(f"GET /rate_limit failed: {e!r}") from e

        rate = response.json()["rate"]
        return RateLimitStatus(
            limit=rate["limit"],
            remaining=rate["remaining"],
            used=rate.get("used", rate["limit"] - rate["remaining"]),
            reset=datetime.fromtimestamp(rate["reset"], tz=timezone.utc),
        )
