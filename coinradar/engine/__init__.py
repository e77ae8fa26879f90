from coinradar.engine.market_price import build_item_id, parse_item_id, to_market_price
from coinradar.engine.table_parser import TableLocator, normalize_coin_id, parse_table

__all__ = [
    "TableLocator",
    "build_item_id",
    "normalize_coin_id",
    "parse_item_id",
    "parse_table",
    "to_market_price",
]
