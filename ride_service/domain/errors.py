"""
Typed failures raised by the ride core.

Each class carries a stable ``code``.  The HTTP layer maps codes to
statuses; several statuses may share one code when the cause is the same.
"""


class RideServiceError(Exception):
    """Base class for every business-rule failure."""

    code = "ride_service_error"

    def __init__(self, message: str = ""):
        self.message = message or (type(self).__doc__ or "").strip()
        super().__init__(self.message)


class InvalidCoordinate(RideServiceError):
    """Latitude or longitude is out of range."""

    code = "invalid_coordinate"


class InvalidRequest(RideServiceError):
    """A required value is missing or malformed."""

    code = "invalid_request"


class InvalidTransition(RideServiceError):
    """The ride's current status does not allow this action."""

    code = "invalid_transition"


class AlreadyAssigned(RideServiceError):
    """Another driver has already been assigned to the ride."""

    code = "already_assigned"


class NotEligible(RideServiceError):
    """The driver's presence state does not allow this action."""

    code = "not_eligible"


class Unauthorized(RideServiceError):
    """The actor's role or ownership does not allow this action."""

    code = "unauthorized"


class NotFound(RideServiceError):
    """The requested record does not exist."""

    code = "not_found"


class Conflict(RideServiceError):
    """Concurrent updates kept winning; retry later."""

    code = "conflict"


class StoreTimeout(RideServiceError):
    """The store did not answer in time; the operation can be retried."""

    code = "store_timeout"
