from league_sync.services.integrity.service import CleanupResult, DataIntegrityService, IntegrityReport

__all__ = ["CleanupResult", "DataIntegrityService", "IntegrityReport"]
