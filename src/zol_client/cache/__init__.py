from .store import CacheEntry, CacheKeys, CacheLookup, CacheOptions, CacheResult, DataCache

__all__ = ["CacheEntry", "CacheKeys", "CacheLookup", "CacheOptions", "CacheResult", "DataCache"]
