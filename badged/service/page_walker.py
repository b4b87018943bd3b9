"""Walk every page of a paginated releases collection."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from badged.config.settings import Settings
from badged.repository.github_repository import GitHubRepository, UpstreamUnavailableError
from badged.schema.cache import PageRecord, TotalRecord
from badged.schema.github import UpstreamResponse
from badged.schema.result import Disposition, ErrorKind, Failed, Recovered
from badged.service.aggregator import download_count
from badged.service.freshness import UpstreamOutcome, classify_status, utcnow

logger = logging.getLogger(__name__)

FIRST_PAGE = 1


@dataclass
class WalkResult:
    """Merged outcome of a successful walk over pages 1..last_page."""

    count: int
    pages: dict[int, PageRecord]
    last_page: int
    last_updated: datetime
    source_uri: str
    page_dispositions: dict[int, Disposition] = field(default_factory=dict)
    last_page_changed: bool = False

    @property
    def changed(self) -> bool:
        return self.last_page_changed or any(
            d is Disposition.CHANGED for d in self.page_dispositions.values()
        )

    @property
    def rate_limited(self) -> bool:
        return any(d is Disposition.RATE_LIMITED for d in self.page_dispositions.values())


def resolve_page(
    page_no: int, response: UpstreamResponse, cached_page: Optional[PageRecord]
) -> Recovered[PageRecord] | Failed:
    """Turn one page response into the page to keep, or a failure."""
    outcome = classify_status(response.status_code)

    if outcome is UpstreamOutcome.NOT_MODIFIED and cached_page is not None:
        logger.debug(f"Page {page_no} has NOT changed. Serving from cache...")
        return Recovered(cached_page, Disposition.UNCHANGED)

    if outcome is UpstreamOutcome.FORBIDDEN:
        if cached_page is None:
            return Failed(
                ErrorKind.UPSTREAM_RATE_LIMITED,
                f"page {page_no}: {response.status_code}: GitHub API limit reached",
            )
        return Recovered(cached_page, Disposition.RATE_LIMITED)

    if outcome is UpstreamOutcome.OK:
        logger.debug(f"Page {page_no} HAS changed. Updating cache & serving...")
        page = PageRecord(
            page=page_no,
            etag=response.etag,
            source_uri=response.uri,
            last_modified=response.last_modified,
            count=download_count(response.body),
        )
        return Recovered(page, Disposition.CHANGED)

    logger.error(f"Got bad response {response.status_code} for page {page_no} ({response.uri})")
    if cached_page is None:
        return Failed(
            ErrorKind.UPSTREAM_UNEXPECTED_STATUS,
            f"page {page_no}: unexpected status {response.status_code}",
        )
    return Recovered(cached_page, Disposition.FALLBACK)


class PageWalker:
    """Fetch pages 1..N of a collection and merge them into one count."""

    def __init__(self, settings: Settings, github_repo: GitHubRepository) -> None:
        self.settings = settings
        self.github_repo = github_repo

    async def _fetch_page(
        self, collection_uri: str, page_no: int, cached_page: Optional[PageRecord]
    ) -> tuple[UpstreamResponse, Recovered[PageRecord] | Failed]:
        page_uri = self.github_repo.page_uri(
            collection_uri, None if page_no == FIRST_PAGE else page_no
        )
        etag = cached_page.etag if cached_page else None
        response = await self.github_repo.fetch(page_uri, etag)
        return response, resolve_page(page_no, response, cached_page)

    def _last_page(
        self, first: UpstreamResponse, cached: Optional[TotalRecord]
    ) -> int:
        links = first.links
        if links.last or links.next:
            logger.debug("Response IS paginated")
            return max(links.last or FIRST_PAGE, links.next or FIRST_PAGE)
        if cached is not None and classify_status(first.status_code) is not UpstreamOutcome.OK:
            # Non-2xx responses may omit the Link header
            return cached.last_page
        logger.debug("Response is NOT paginated")
        return FIRST_PAGE

    async def walk_all_pages(
        self, collection_uri: str, cached: Optional[TotalRecord] = None
    ) -> Recovered[WalkResult] | Failed:
        """
        Fetch every page of `collection_uri`, revalidating cached pages.

        Either all pages 1..last_page are resolved and summed, or the walk
        fails as a whole.
        """
        cached_pages = cached.pages if cached else {}
        results: dict[int, Recovered[PageRecord] | Failed] = {}

        async def fetch_sibling(page_no: int, semaphore: asyncio.Semaphore) -> None:
            async with semaphore:
                try:
                    _, results[page_no] = await self._fetch_page(
                        collection_uri, page_no, cached_pages.get(page_no)
                    )
                except UpstreamUnavailableError as e:
                    results[page_no] = Failed(
                        ErrorKind.UPSTREAM_UNAVAILABLE, f"page {page_no}: {e}"
                    )

        try:
            async with asyncio.timeout(self.settings.page_walk_timeout_seconds):
                first, results[FIRST_PAGE] = await self._fetch_page(
                    collection_uri, FIRST_PAGE, cached_pages.get(FIRST_PAGE)
                )
                if isinstance(results[FIRST_PAGE], Failed):
                    return self._failure(results)

                last_page = self._last_page(first, cached)
                semaphore = asyncio.Semaphore(self.settings.max_concurrent_pages)
                async with asyncio.TaskGroup() as tg:
                    for page_no in range(FIRST_PAGE + 1, last_page + 1):
                        tg.create_task(fetch_sibling(page_no, semaphore))
        except UpstreamUnavailableError as e:
            return Failed(ErrorKind.UPSTREAM_UNAVAILABLE, str(e))
        except TimeoutError:
            return Failed(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                f"walk of {collection_uri} timed out after "
                f"{self.settings.page_walk_timeout_seconds}s",
            )

        if any(isinstance(r, Failed) for r in results.values()):
            return self._failure(results)

        pages = {page_no: results[page_no].value for page_no in range(FIRST_PAGE, last_page + 1)}
        count = sum(page.count for page in pages.values())
        logger.debug(f"Total download count for {collection_uri}: {count}")

        walk = WalkResult(
            count=count,
            pages=pages,
            last_page=last_page,
            last_updated=first.date or utcnow(),
            source_uri=first.uri,
            page_dispositions={n: results[n].disposition for n in pages},
            last_page_changed=cached is None or cached.last_page != last_page,
        )
        return Recovered(
            walk, Disposition.CHANGED if walk.changed else Disposition.UNCHANGED
        )

    def _failure(self, results: dict[int, Recovered[PageRecord] | Failed]) -> Failed:
        failures = [results[n] for n in sorted(results) if isinstance(results[n], Failed)]
        first_failure = failures[0]
        kind = (
            ErrorKind.UPSTREAM_RATE_LIMITED
            if first_failure.kind is ErrorKind.UPSTREAM_RATE_LIMITED
            else ErrorKind.INCOMPLETE_PAGINATION
        )
        detail = "; ".join(f.detail for f in failures)
        return Failed(kind, detail)
