"""Cache key and entry models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from slimroot.core.hasher import content_address

CacheStage = Literal["inspect", "closure", "layer"]


class CacheKey(BaseModel):
    """(subject content hash, configuration hash) for one pipeline stage.

    For the resolver the subject is the binary's content hash; for the
    layer builder it is the closure digest.
    """

    model_config = ConfigDict(frozen=True)

    stage: CacheStage
    subject_hash: str
    config_hash: str = ""

    @property
    def address(self) -> str:
        return content_address(self.model_dump(mode="json"))


class CacheEntry(BaseModel):
    """A stored value. Entries are never updated in place."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: CacheKey
    value: Any
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
