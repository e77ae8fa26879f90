"""Coin Radar - Fetch Layer"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class FetchResult(BaseModel):
    """Raw page or side-channel response returned by the fetch client."""

    model_config = ConfigDict(frozen=True)

    content: str
    status_code: int
    url: str
    fetched_at: datetime
    from_cache: bool = False


class FetchOptions(BaseModel):
    """Per-call overrides for FetchClient.fetch()."""

    force_browser: bool = False
    skip_cache: bool = False
    cache_ttl_seconds: int | None = None
    headers: dict[str, str] = Field(default_factory=dict)
