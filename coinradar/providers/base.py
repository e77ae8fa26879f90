"""Provider surface consumed by downstream pricing logic."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from coinradar.models import MarketPriceRecord, ProviderStatus


@runtime_checkable
class MarketDataProvider(Protocol):
    name: str

    def is_available(self) -> bool: ...

    async def search(self, query: str, limit: int | None = None) -> list[MarketPriceRecord]: ...

    async def get_price(self, item_id: str) -> MarketPriceRecord | None: ...

    async def needs_refresh(self) -> bool: ...

    async def refresh_cache(self) -> None: ...

    async def get_status(self) -> ProviderStatus: ...
