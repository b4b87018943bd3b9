"""Cache record schemas stored by the cache repositories."""

from typing import Annotated, Literal, Union

from pydantic import AwareDatetime, BaseModel, Field, TypeAdapter


class PageRecord(BaseModel):
    """One cached page of a paginated releases collection."""

    page: int = Field(..., ge=1, description="Page number (1-based)")
    etag: str | None = Field(None, description="ETag of the page response")
    source_uri: str = Field(..., description="URI the page was fetched from")
    last_modified: str | None = Field(None, description="Upstream Last-Modified")
    count: int = Field(..., ge=0, description="Download count of the page")


class SingleReleaseRecord(BaseModel):
    """Cached download count of a single release (latest, by id or by tag)."""

    kind: Literal["release"] = "release"
    key: str
    source_uri: str
    release_id: int | None = None
    tag: str | None = None
    etag: str | None = None
    last_modified: str | None = None
    count: int = Field(..., ge=0)
    last_updated: AwareDatetime
    requests: int = 1


class TotalRecord(BaseModel):
    """Cached download count across every page of a releases collection."""

    kind: Literal["total"] = "total"
    key: str
    source_uri: str
    pages: dict[int, PageRecord] = Field(default_factory=dict)
    last_page: int = 1
    count: int = Field(..., ge=0)
    last_updated: AwareDatetime
    requests: int = 1


CacheRecord = Annotated[
    Union[SingleReleaseRecord, TotalRecord], Field(discriminator="kind")
]

_record_adapter: TypeAdapter[CacheRecord] = TypeAdapter(CacheRecord)


def parse_record(data: str | bytes | dict) -> SingleReleaseRecord | TotalRecord:
    """Parse a stored document into its record variant.

    Raises pydantic.ValidationError (or ValueError for bad JSON) on bad input.
    """
    if isinstance(data, dict):
        return _record_adapter.validate_python(data)
    return _record_adapter.validate_json(data)
