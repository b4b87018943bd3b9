"""Redis repository for cached download counts."""

import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from pydantic import ValidationError

from badged.config.settings import Settings
from badged.repository.base_repository import CacheRepository, CacheUnavailableError
from badged.schema.cache import SingleReleaseRecord, TotalRecord, parse_record

logger = logging.getLogger(__name__)


class RedisRepository(CacheRepository):
    """Repository for managing cached download records in Redis."""

    def __init__(self, settings: Settings) -> None:
        """Initialize Redis repository."""
        self.settings = settings
        self._client: Optional[Redis] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        # Close existing client if it exists to prevent connection leaks
        if self._client:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.debug(f"Ignoring error closing stale Redis client: {e}")
            self._client = None

        if self.settings.redis_url:
            redis_url = self.settings.redis_url
        elif self.settings.redis_password:
            redis_url = f"redis://:{self.settings.redis_password}@{self.settings.redis_host}:{self.settings.redis_port}/{self.settings.redis_db}"
        else:
            redis_url = f"redis://{self.settings.redis_host}:{self.settings.redis_port}/{self.settings.redis_db}"
        client = Redis.from_url(redis_url, decode_responses=True)

        # Test connection
        try:
            await client.ping()
        except (RedisError, OSError):
            await client.aclose()
            raise
        self._client = client

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _make_key(self, key: str) -> str:
        """Generate Redis key for a cache record."""
        return f"badged:download:{key}"

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        """Run a client command, reconnecting once on a dropped connection."""
        if not self._client:
            await self.connect()
        try:
            return await getattr(self._client, method)(*args, **kwargs)
        except (RedisConnectionError, OSError):
            await self.connect()
            return await getattr(self._client, method)(*args, **kwargs)

    async def find_one(
        self, key: str
    ) -> Optional[SingleReleaseRecord | TotalRecord]:
        """Get the cached record for a key."""
        try:
            data = await self._call("get", self._make_key(key))
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Error reading {key} from Redis: {e}") from e

        if not data:
            return None

        try:
            return parse_record(data)
        except ValidationError as e:
            raise CacheUnavailableError(f"Corrupt record for {key}: {e}") from e

    async def insert_one(self, record: SingleReleaseRecord | TotalRecord) -> bool:
        """Store a new record. Existing keys are left untouched."""
        try:
            created = await self._call(
                "set", self._make_key(record.key), record.model_dump_json(), nx=True
            )
        except (RedisError, OSError) as e:
            logger.error(f"Error inserting {record.key} into Redis: {e}")
            return False
        return bool(created)

    async def update_one(self, key: str, fields: dict[str, Any]) -> bool:
        """Merge fields into an existing record."""
        redis_key = self._make_key(key)
        try:
            data = await self._call("get", redis_key)
            if not data:
                return False
            document = json.loads(data)
            document.update(fields)
            # xx: never resurrect a key removed in between
            updated = await self._call("set", redis_key, json.dumps(document), xx=True)
        except (RedisError, OSError, ValueError) as e:
            logger.error(f"Error updating {key} in Redis: {e}")
            return False
        return bool(updated)
