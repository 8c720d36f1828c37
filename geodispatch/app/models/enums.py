"""
Driver location and ride offer enumerations.
"""

import enum


class DriverStatus(str, enum.Enum):
    """Driver availability as stored with the location record."""
    ONLINE = "online"
    OFFLINE = "offline"


class AccuracyTier(str, enum.Enum):
    """
    Which kind of fix the tracker last accepted.

    HIGH: GPS-grade one-shot request
    LOW: network / coarse request, also used by continuous tracking
    MOCK: fixed demo coordinate, acquisition bypassed
    """
    HIGH = "high"
    LOW = "low"
    MOCK = "mock"


class TrackerState(str, enum.Enum):
    """Location freshness states for a driver session."""
    UNINITIALIZED = "UNINITIALIZED"
    ACQUIRING = "ACQUIRING"
    FRESH = "FRESH"
    STALE = "STALE"
    FAILED = "FAILED"


class OfferState(str, enum.Enum):
    """Ride offer lifecycle."""
    OFFERED = "OFFERED"
    ACCEPTED = "ACCEPTED"  # Driver accepted, ride handed off
    REJECTED = "REJECTED"  # Driver declined
    EXPIRED = "EXPIRED"  # Deadline passed without an answer

    @property
    def is_terminal(self) -> bool:
        return self is not OfferState.OFFERED


class UserRole(str, enum.Enum):
    """Token roles. Tokens without a role belong to drivers."""
    DRIVER = "DRIVER"
    DISPATCHER = "DISPATCHER"  # Dispatch layer, may create ride offers
