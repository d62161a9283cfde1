from .fetcher import CatalogFetcher

__all__ = ["CatalogFetcher"]
