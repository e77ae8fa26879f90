from coinradar.store.catalog_store import CatalogStore

__all__ = ["CatalogStore"]
