"""Error types raised by the wallboard."""


class WallboardError(Exception):
    """Base class for wallboard errors."""


class APIException(WallboardError):
    """The collaborator API answered with a non-success status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RateLimitException(APIException):
    """Retries were exhausted while the API kept rate limiting us."""


class PersistenceError(WallboardError):
    """A user-initiated save of the wallboard config failed."""
