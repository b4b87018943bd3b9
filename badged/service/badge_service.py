"""Badge service: resolve a download count and render it as a badge."""

import logging
from html import escape
from typing import Optional
from urllib.parse import quote, urlsplit

from badged.config.settings import Settings
from badged.repository.base_repository import CacheRepository
from badged.repository.github_repository import GitHubRepository
from badged.repository.shields_repository import ShieldsRepository
from badged.schema.badge import BadgeIdentity, BadgeKind
from badged.schema.github import RateLimitStatus
from badged.schema.result import Failed
from badged.service.freshness import FreshnessPolicy

logger = logging.getLogger(__name__)

PLACEHOLDER_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="20" '
    'role="img" aria-label="downloads: {text}">'
    '<rect width="{width}" height="20" rx="3" fill="#9f9f9f"/>'
    '<text x="{x}" y="14" fill="#fff" font-family="Verdana,sans-serif" '
    'font-size="11" text-anchor="middle">downloads: {text}</text></svg>'
)


def escape_badge_text(text: str) -> str:
    """Escape text for a shields static badge path segment."""
    return text.replace("-", "--").replace("_", "__")


class BadgeService:
    """Orchestrates cache, freshness policy and badge rendering per route shape."""

    def __init__(
        self,
        settings: Settings,
        cache_repo: CacheRepository,
        github_repo: GitHubRepository,
        shields_repo: ShieldsRepository,
        freshness: Optional[FreshnessPolicy] = None,
    ) -> None:
        """Initialize badge service."""
        self.settings = settings
        self.github_repo = github_repo
        self.shields_repo = shields_repo
        self.freshness = freshness or FreshnessPolicy(settings, cache_repo, github_repo)

    def upstream_uri(self, identity: BadgeIdentity) -> str:
        """Build the releases API URI a badge is computed from."""
        owner, repo = identity.owner, identity.repo
        if identity.kind is BadgeKind.LATEST:
            return self.github_repo.releases_uri(owner, repo, "latest")
        if identity.kind is BadgeKind.RELEASE_ID:
            return self.github_repo.releases_uri(owner, repo, identity.release_id)
        if identity.kind is BadgeKind.TAG:
            return self.github_repo.releases_uri(owner, repo, "tags", identity.tag)
        return self.github_repo.releases_uri(owner, repo)

    async def resolve_count(self, identity: BadgeIdentity) -> int | None:
        """
        Resolve the download count for a badge.

        Returns None (rendered as the placeholder) when no count can be
        determined; errors never propagate.
        """
        uri = self.upstream_uri(identity)
        key = identity.cache_key
        logger.info(f"GH API Request URL {uri}")

        try:
            if identity.kind is BadgeKind.TOTAL:
                resolution = await self.freshness.resolve_total(key, uri)
            else:
                resolution = await self.freshness.resolve_release(key, uri)
        except Exception:
            logger.exception(f"Unexpected error resolving {key}")
            return None

        if isinstance(resolution, Failed):
            logger.error(f"Could not resolve {key}: {resolution.kind.value} {resolution.detail}")
            return None

        logger.debug(f"Resolved {key} ({resolution.disposition.value}): {resolution.value}")
        return resolution.value

    def format_count(self, count: int | None) -> str:
        if count is None:
            return self.settings.placeholder
        return f"{count:,}"

    def _is_allowed_template(self, template: str) -> bool:
        if "%s" not in template:
            return False
        try:
            parts = urlsplit(template)
        except ValueError:
            return False
        return parts.scheme in ("http", "https") and (
            (parts.hostname or "").lower() in self.settings.badge_hosts
        )

    def badge_uri(
        self, count: int | None, suffix: str, template: Optional[str] = None
    ) -> str:
        """Build the badge image URI for a count."""
        if not template or not self._is_allowed_template(template):
            if template:
                logger.warning(f"Ignoring badge template {template!r}")
            template = self.settings.shields_uri

        text = " ".join(filter(None, [self.format_count(count), suffix]))
        return template.replace("%s", quote(escape_badge_text(text), safe=","))

    async def render_badge(
        self, count: int | None, suffix: str, template: Optional[str] = None
    ) -> tuple[bytes, str]:
        """Fetch the badge image. Returns (content, content_type)."""
        return await self.shields_repo.get_badge(self.badge_uri(count, suffix, template))

    def placeholder_badge(self, suffix: str) -> bytes:
        """Render a minimal badge locally when the image service is unreachable."""
        text = " ".join(filter(None, [self.settings.placeholder, suffix]))
        width = 80 + 7 * len(text)
        return PLACEHOLDER_SVG.format(
            width=width, x=width // 2, text=escape(text)
        ).encode("utf-8")

    async def rate_limit_status(self) -> RateLimitStatus:
        """Get the GitHub API quota status."""
        return await self.github_repo.get_rate_limit()
