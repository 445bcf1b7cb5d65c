"""
Error taxonomy shared by services and routes.

Services raise these; the API layer maps `status_code` onto the HTTP response.
"""


class OmniChatError(Exception):
    """Base class for errors surfaced to the caller."""

    status_code = 500
    kind = "internal_error"

    def __init__(self, message: str = "Internal error"):
        super().__init__(message)
        self.message = message


class AuthenticationError(OmniChatError):
    """No user context on the request."""

    status_code = 401
    kind = "unauthenticated"

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class NotFoundError(OmniChatError):
    """Entity is absent or belongs to another user."""

    status_code = 404
    kind = "not_found"

    def __init__(self, message: str = "The requested entity was not found"):
        super().__init__(message)


class OwnershipError(OmniChatError):
    """Entity exists but is owned by someone else."""

    status_code = 403
    kind = "forbidden"

    def __init__(self, message: str = "Not owned by user"):
        super().__init__(message)


class InvalidInputError(OmniChatError):
    status_code = 422
    kind = "invalid_input"


class PayloadTooLargeError(InvalidInputError):
    status_code = 413
    kind = "payload_too_large"


class UpstreamError(OmniChatError):
    """A dependency (database, gateway, storage) failed."""

    status_code = 502
    kind = "upstream_error"
