"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    DRIVER_ASSIGNED = "driver_assigned"
    IN_PROGRESS = "in_progress"
    ON_SITE = "on_site"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {RideStatus.DRIVER_ASSIGNED, RideStatus.CANCELLED},
    RideStatus.DRIVER_ASSIGNED: {
        RideStatus.IN_PROGRESS,
        RideStatus.ON_SITE,
        RideStatus.CANCELLED,
    },
    RideStatus.IN_PROGRESS: {
        RideStatus.ON_SITE,
        RideStatus.COMPLETED,
        RideStatus.CANCELLED,
    },
    RideStatus.ON_SITE: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

# A driver assigned to a ride in one of these is busy
ACTIVE_STATUSES = frozenset(
    {RideStatus.DRIVER_ASSIGNED, RideStatus.IN_PROGRESS, RideStatus.ON_SITE}
)

TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})


class PaymentType(str, enum.Enum):
    CASH = "cash"
    CARD = "card"


class Role(str, enum.Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"
    ADMIN = "admin"
    MODERATOR = "moderator"
