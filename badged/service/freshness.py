"""Cache freshness policy: trust, revalidate or fetch."""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from badged.config.settings import Settings
from badged.repository.base_repository import CacheRepository, CacheUnavailableError
from badged.repository.github_repository import GitHubRepository, UpstreamUnavailableError
from badged.schema.cache import SingleReleaseRecord, TotalRecord
from badged.schema.result import Disposition, ErrorKind, Failed, Recovered, Resolution
from badged.service.aggregator import download_count

if TYPE_CHECKING:
    from badged.service.page_walker import PageWalker

logger = logging.getLogger(__name__)

HTTP_NOT_MODIFIED = 304
HTTP_FORBIDDEN = 403
HTTP_TOO_MANY_REQUESTS = 429


class CacheState(str, Enum):
    MISS = "miss"
    HIT_FRESH = "hit_fresh"
    HIT_STALE = "hit_stale"


class UpstreamOutcome(str, Enum):
    NOT_MODIFIED = "not_modified"
    FORBIDDEN = "forbidden"
    OK = "ok"
    UNKNOWN = "unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_status(status_code: int) -> UpstreamOutcome:
    """Map an upstream status code to the outcome the policy acts on."""
    if status_code == HTTP_NOT_MODIFIED:
        return UpstreamOutcome.NOT_MODIFIED
    if status_code in (HTTP_FORBIDDEN, HTTP_TOO_MANY_REQUESTS):
        # GitHub API limit reached
        return UpstreamOutcome.FORBIDDEN
    if 200 <= status_code < 300:
        return UpstreamOutcome.OK
    return UpstreamOutcome.UNKNOWN


def lookup_state(record: Any, now: datetime, interval: timedelta) -> CacheState:
    """Decide whether a cached record can be served without revalidation."""
    if record is None:
        return CacheState.MISS
    if now - record.last_updated >= interval:
        return CacheState.HIT_STALE
    return CacheState.HIT_FRESH


def _log_outcome(ok: bool, op: str, key: str) -> None:
    if ok:
        logger.info(f"{key} {op} successful")
    else:
        logger.error(f"{key} {op} unsuccessful")


class FreshnessPolicy:
    """Resolve download counts through the cache, revalidating when stale.

    Concurrent requests for the same stale key may both revalidate; the
    last write wins.
    """

    def __init__(
        self,
        settings: Settings,
        cache_repo: CacheRepository,
        github_repo: GitHubRepository,
        page_walker: Optional["PageWalker"] = None,
    ) -> None:
        self.settings = settings
        self.cache_repo = cache_repo
        self.github_repo = github_repo
        if page_walker is None:
            from badged.service.page_walker import PageWalker

            page_walker = PageWalker(settings, github_repo)
        self.page_walker = page_walker

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(seconds=self.settings.refresh_interval_seconds)

    async def _find(self, key: str, record_type: type) -> Any:
        record = await self.cache_repo.find_one(key)
        if record is not None and not isinstance(record, record_type):
            raise CacheUnavailableError(
                f"{key} holds a {record.kind} record, expected {record_type.__name__}"
            )
        return record

    async def _count_request(self, record: SingleReleaseRecord | TotalRecord) -> None:
        ok = await self.cache_repo.update_one(record.key, {"requests": record.requests + 1})
        _log_outcome(ok, "update requests", record.key)

    async def resolve_release(self, key: str, uri: str) -> Resolution:
        """Resolve the download count of a single release."""
        try:
            cached = await self._find(key, SingleReleaseRecord)
        except CacheUnavailableError as e:
            logger.error(f"Cache unavailable for {key}: {e}")
            return Failed(ErrorKind.CACHE_UNAVAILABLE, str(e))

        state = lookup_state(cached, utcnow(), self.refresh_interval)
        if state is CacheState.MISS:
            logger.debug(f"{key} NOT IN cache. Fetching...")
            return await self._fetch_release(key, uri)
        if state is CacheState.HIT_FRESH:
            logger.debug(f"{key} IN cache, no update required")
            return Recovered(cached.count, Disposition.HIT_FRESH)

        logger.debug(f"{key} IN cache, update required")
        return await self._revalidate_release(cached, uri)

    async def _fetch_release(self, key: str, uri: str) -> Resolution:
        try:
            response = await self.github_repo.fetch(uri)
        except UpstreamUnavailableError as e:
            return Failed(ErrorKind.UPSTREAM_UNAVAILABLE, str(e))

        outcome = classify_status(response.status_code)
        if outcome is UpstreamOutcome.FORBIDDEN:
            return Failed(
                ErrorKind.UPSTREAM_RATE_LIMITED,
                f"{response.status_code}: GitHub API limit reached for {uri}",
            )
        if outcome is not UpstreamOutcome.OK:
            logger.error(f"Got bad response {response.status_code} for {uri}")
            return Failed(
                ErrorKind.UPSTREAM_UNEXPECTED_STATUS,
                f"{response.status_code} from {uri}",
            )

        body = response.body if isinstance(response.body, dict) else {}
        record = SingleReleaseRecord(
            key=key,
            source_uri=response.uri,
            release_id=body.get("id"),
            tag=body.get("tag_name"),
            etag=response.etag,
            last_modified=response.last_modified,
            count=download_count(response.body),
            last_updated=response.date or utcnow(),
            requests=1,
        )
        _log_outcome(await self.cache_repo.insert_one(record), "insert", key)
        return Recovered(record.count, Disposition.MISS)

    async def _revalidate_release(
        self, cached: SingleReleaseRecord, uri: str
    ) -> Resolution:
        try:
            response = await self.github_repo.fetch(uri, cached.etag)
        except UpstreamUnavailableError as e:
            logger.error(f"{cached.key}: {e}. Serving from cache...")
            return Recovered(cached.count, Disposition.FALLBACK)

        outcome = classify_status(response.status_code)

        if outcome is UpstreamOutcome.NOT_MODIFIED:
            logger.debug(f"{cached.key} has NOT changed. Serving from cache...")
            await self._count_request(cached)
            return Recovered(cached.count, Disposition.UNCHANGED)

        if outcome is UpstreamOutcome.FORBIDDEN:
            logger.warning(
                f"{cached.key}: GitHub API limit reached "
                f"(remaining={response.rate_limit_remaining}). Serving from cache..."
            )
            await self._count_request(cached)
            return Recovered(cached.count, Disposition.RATE_LIMITED)

        if outcome is UpstreamOutcome.OK:
            logger.debug(f"{cached.key} HAS changed. Updating cache & serving...")
            body = response.body if isinstance(response.body, dict) else {}
            updated = cached.model_copy(
                update={
                    "source_uri": response.uri,
                    "release_id": body.get("id", cached.release_id),
                    "tag": body.get("tag_name", cached.tag),
                    "etag": response.etag,
                    "last_modified": response.last_modified,
                    "count": download_count(response.body),
                    "last_updated": max(cached.last_updated, response.date or utcnow()),
                    "requests": cached.requests + 1,
                }
            )
            fields = updated.model_dump(mode="json", exclude={"kind", "key"})
            _log_outcome(
                await self.cache_repo.update_one(cached.key, fields),
                "update download",
                cached.key,
            )
            return Recovered(updated.count, Disposition.CHANGED)

        logger.error(
            f"Got bad response {response.status_code} for {uri}. Serving from cache..."
        )
        return Recovered(cached.count, Disposition.FALLBACK)

    async def resolve_total(self, key: str, uri: str) -> Resolution:
        """Resolve the download count across every release of a repository."""
        try:
            cached = await self._find(key, TotalRecord)
        except CacheUnavailableError as e:
            logger.error(f"Cache unavailable for {key}: {e}")
            return Failed(ErrorKind.CACHE_UNAVAILABLE, str(e))

        state = lookup_state(cached, utcnow(), self.refresh_interval)
        if state is CacheState.HIT_FRESH:
            logger.debug(f"{key} IN cache, no update required")
            return Recovered(cached.count, Disposition.HIT_FRESH)

        walk = await self.page_walker.walk_all_pages(uri, cached)

        if state is CacheState.MISS:
            logger.debug(f"{key} NOT IN cache. Fetching...")
            if isinstance(walk, Failed):
                return walk
            result = walk.value
            record = TotalRecord(
                key=key,
                source_uri=result.source_uri,
                pages=result.pages,
                last_page=result.last_page,
                count=result.count,
                last_updated=result.last_updated,
                requests=1,
            )
            _log_outcome(await self.cache_repo.insert_one(record), "insert", key)
            return Recovered(record.count, Disposition.MISS)

        if isinstance(walk, Failed):
            logger.error(f"{key}: {walk.kind.value} {walk.detail}. Serving from cache...")
            return Recovered(cached.count, Disposition.FALLBACK)

        result = walk.value
        if result.changed:
            logger.debug(f"{key} HAS changed. Updating cache & serving...")
            updated = cached.model_copy(
                update={
                    "pages": result.pages,
                    "last_page": result.last_page,
                    "count": result.count,
                    "last_updated": max(cached.last_updated, result.last_updated),
                    "requests": cached.requests + 1,
                }
            )
            fields = updated.model_dump(mode="json", exclude={"kind", "key", "source_uri"})
            _log_outcome(
                await self.cache_repo.update_one(key, fields),
                "update totalDownload",
                key,
            )
            return Recovered(updated.count, Disposition.CHANGED)

        logger.debug(f"{key} has NOT changed")
        await self._count_request(cached)
        if result.rate_limited:
            return Recovered(cached.count, Disposition.RATE_LIMITED)
        return Recovered(cached.count, Disposition.UNCHANGED)
