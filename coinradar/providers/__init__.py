"""Coin Radar - Market Data Providers"""

from coinradar.providers.base import MarketDataProvider
from coinradar.providers.cdn_exchange import CDNExchangeProvider

__all__ = ["CDNExchangeProvider", "MarketDataProvider"]
