from league_sync.repositories.base import BaseRepository
from league_sync.repositories.store import Filter, Page, StoreGateway

__all__ = ["BaseRepository", "Filter", "Page", "StoreGateway"]
