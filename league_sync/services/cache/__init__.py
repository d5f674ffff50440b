from league_sync.services.cache.mirror import JsonFileMirror
from league_sync.services.cache.swr_cache import CacheLookup, CacheState, SwrCache

__all__ = ["CacheLookup", "CacheState", "JsonFileMirror", "SwrCache"]
