"""Schemas for GitHub releases API responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class PaginationLinks(BaseModel):
    """Page numbers parsed from a Link header."""

    next: int | None = None
    last: int | None = None

    @property
    def is_paginated(self) -> bool:
        return self.last is not None


class UpstreamResponse(BaseModel):
    """A response from the releases API, successful or not."""

    uri: str
    status_code: int
    body: Any = None
    etag: str | None = None
    last_modified: str | None = None
    date: datetime | None = None
    links: PaginationLinks = PaginationLinks()
    rate_limit_remaining: int | None = None


class RateLimitStatus(BaseModel):
    """Core rate limit of the GitHub API."""

    limit: int
    remaining: int
    used: int
    reset: datetime
