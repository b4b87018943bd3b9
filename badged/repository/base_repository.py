"""Base interface for cache repositories."""

from typing import Any, Optional, Protocol, runtime_checkable

from badged.schema.cache import SingleReleaseRecord, TotalRecord


class CacheUnavailableError(Exception):
    """Raised when the cache store cannot be read."""


@runtime_checkable
class CacheRepository(Protocol):
    """Protocol for cache repository implementations.

    Records are keyed by `record.key`. Writes report success as a bool and
    never raise; reads raise CacheUnavailableError when the store fails.
    """

    async def find_one(
        self, key: str
    ) -> Optional[SingleReleaseRecord | TotalRecord]: ...

    async def insert_one(self, record: SingleReleaseRecord | TotalRecord) -> bool: ...

    async def update_one(self, key: str, fields: dict[str, Any]) -> bool: ...

    async def disconnect(self) -> None: ...
