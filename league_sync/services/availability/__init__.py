from league_sync.services.availability.calculator import (
    AvailabilityFilter,
    AvailabilityRecord,
    AvailabilityStats,
    ConflictingOwnership,
    PlayerAvailabilityCalculator,
    availability_key,
)

__all__ = [
    "AvailabilityFilter",
    "AvailabilityRecord",
    "AvailabilityStats",
    "ConflictingOwnership",
    "PlayerAvailabilityCalculator",
    "availability_key",
]
