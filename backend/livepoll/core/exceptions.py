"""
Error taxonomy shared by the ceremony, session, poll and vote services.

Every service raises one of these; the HTTP layer turns them into
``{"error": <code>, "message": <text>, "details": <text>}`` bodies.
"""


class ApiError(Exception):
    """
    Base exception for all expected failures.

    Subclasses set ``default_status_code``, ``default_message`` and the
    machine-readable ``error_code`` returned to clients.
    """

    default_status_code = 400
    default_message = "Request failed"
    error_code = "BAD_REQUEST"

    def __init__(self, message=None, details=None, status_code=None):
        """
        Initialize exception.

        Args:
            message: Human readable message (defaults to default_message)
            details: Optional extra context, e.g. the violated rules
            status_code: HTTP status code (defaults to default_status_code)
        """
        self.message = message or self.default_message
        self.details = details
        self.status_code = status_code or self.default_status_code
        super().__init__(self.message)

    def to_dict(self):
        body = {"error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ApiError):
    """Raised for bad input or an operation the poll state does not allow."""

    default_status_code = 400
    default_message = "Please check your input and try again"
    error_code = "VALIDATION_ERROR"


class AuthenticationError(ApiError):
    """Raised when a session is missing/expired or a ceremony fails."""

    default_status_code = 401
    default_message = "Authentication failed"
    error_code = "AUTHENTICATION_ERROR"


class WebAuthnError(AuthenticationError):
    """Raised when a passkey response does not verify."""

    default_message = "Passkey verification failed"
    error_code = "WEBAUTHN_ERROR"


class ForbiddenError(ApiError):
    """Raised when an authenticated user is not allowed to act."""

    default_status_code = 403
    default_message = "You are not allowed to perform this action"
    error_code = "FORBIDDEN"


class NotFoundError(ApiError):
    default_status_code = 404
    default_message = "The requested resource was not found"
    error_code = "NOT_FOUND"


class ConflictError(ApiError):
    """Raised on duplicate usernames, credentials or votes."""

    default_status_code = 409
    default_message = "This resource already exists"
    error_code = "CONFLICT"


class InternalError(ApiError):
    default_status_code = 500
    default_message = "An internal error occurred"
    error_code = "INTERNAL_ERROR"
