"""
Service-level error taxonomy.

Services raise these instead of returning sentinels; the handler
registered in ``conduit.main`` turns each into its HTTP status code.
"""


class ServiceError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    """Unknown user, article or slug."""

    status_code = 404


class ConflictError(ServiceError):
    """A uniqueness rule was violated (title, favorite, username, email)."""

    status_code = 409


class ForbiddenError(ServiceError):
    """The requester may not mutate the target (e.g. not the author)."""

    status_code = 403


class UnauthorizedError(ServiceError):
    status_code = 401


class InvalidInputError(ServiceError):
    """The payload is well-formed but cannot be stored (e.g. a title with no slug)."""

    status_code = 422
