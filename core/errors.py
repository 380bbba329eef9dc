"""Error kinds raised by the incident core. The API maps them to HTTP responses."""


class IncidentServiceError(Exception):
    """Base class. `status_code` is the HTTP status the API answers with."""

    status_code = 500
    retryable = False

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__

    @property
    def kind(self) -> str:
        return self.__class__.__name__

    def to_dict(self):
        return {"detail": self.detail, "error": self.kind}


class InvalidInput(IncidentServiceError):
    """Malformed location, unknown category, empty identifiers."""

    status_code = 422


class Unauthorized(IncidentServiceError):
    """Role mismatch, ownership violation or target outside the caller's geofence."""

    status_code = 403


class NotFound(IncidentServiceError):
    status_code = 404


class InvalidTransition(IncidentServiceError):
    """Lifecycle rule violated (acting on a terminal or wrongly-staged incident)."""

    status_code = 409


class Conflict(IncidentServiceError):
    """A concurrent unit of work touched the same incident first."""

    status_code = 409
    retryable = True


class Unavailable(IncidentServiceError):
    """Store or lock not acquired within the configured timeout."""

    status_code = 503
    retryable = True
