"""Domain exceptions surfaced to HTTP callers as JSON errors."""


class LendingError(Exception):
    """Base class for lending errors. `status_code` maps to the HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LendingError):
    """Request rejected before any mutation (unknown pool, insufficient balance...)."""

    status_code = 400


class NotFoundError(LendingError):
    status_code = 404


class AuthenticationError(LendingError):
    status_code = 401


class InfrastructureError(LendingError):
    """Database or other backing-service failure."""

    status_code = 500
