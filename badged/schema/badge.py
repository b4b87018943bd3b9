"""Badge request identity."""

from enum import Enum

from pydantic import BaseModel


class BadgeKind(str, Enum):
    LATEST = "latest"
    RELEASE_ID = "release_id"
    TAG = "tag"
    TOTAL = "total"


class BadgeIdentity(BaseModel):
    """Which count a badge request asks for."""

    kind: BadgeKind
    owner: str
    repo: str
    path: str
    release_id: int | None = None
    tag: str | None = None

    @property
    def cache_key(self) -> str:
        """Key of the cache record backing this badge."""
        if self.kind is BadgeKind.RELEASE_ID:
            return f"release-id:{self.release_id}"
        if self.kind is BadgeKind.TAG:
            return f"tag:{self.owner.lower()}/{self.repo.lower()}:{self.tag}"
        return self.path

    @property
    def suffix(self) -> str:
        """Text shown after the count on the badge."""
        if self.kind is BadgeKind.RELEASE_ID:
            return str(self.release_id)
        if self.kind is BadgeKind.TAG:
            return self.tag or ""
        return self.kind.value
