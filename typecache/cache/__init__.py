from .type_cache import CacheStats, TypeCache

__all__ = ["CacheStats", "TypeCache"]
