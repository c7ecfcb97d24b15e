from driveconnector.cache.query_cache import CacheEntry, QueryCache, normalize_query

__all__ = ["CacheEntry", "QueryCache", "normalize_query"]
