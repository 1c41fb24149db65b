"""Application error taxonomy.

Every error carries a client-safe ``message`` and an optional ``detail`` that is
only ever written to the logs. The HTTP layer maps ``status_code`` onto the
response; anything security-relevant (which field collided, whether an email
exists) belongs in ``detail``, never in ``message``.
"""


class AppError(Exception):
    """Base class for classified application errors."""

    code = "internal"
    status_code = 500
    default_message = "An internal error occurred."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.detail:
            return f"[{self.code}] {self.message}: {self.detail}"
        return f"[{self.code}] {self.message}"


class ValidationError(AppError):
    """Malformed or out-of-policy input. The message is shown verbatim."""

    code = "invalid"
    status_code = 400
    default_message = "Invalid input."


class ConflictError(AppError):
    code = "conflict"
    status_code = 409
    default_message = "An account with that email or username already exists."


class AuthenticationError(AppError):
    """Credentials did not match."""

    code = "unauthorized"
    status_code = 401
    default_message = "Invalid email or password."


class UnauthorizedError(AuthenticationError):
    pass


class UnauthenticatedError(AppError):
    """No valid session backs the request."""

    code = "unauthenticated"
    status_code = 401
    default_message = "Not authenticated."


class ForbiddenError(AppError):
    """Credentials are fine but the account state disallows the action."""

    code = "forbidden"
    status_code = 403
    default_message = "Access denied."


class NotFoundError(AppError):
    """Token lookup failed. Never distinguishes unknown from expired."""

    code = "invalid_token"
    status_code = 400
    default_message = "Invalid or expired token."


class InvalidTokenError(NotFoundError):
    pass


class ProcessingError(AppError):
    code = "processing_failed"
    status_code = 500
    default_message = "Failed to process request."


class StoreError(AppError):
    code = "store_error"
    status_code = 500
    default_message = "An internal error occurred."


class StoreTimeoutError(StoreError):
    code = "timeout"
    status_code = 504
    default_message = "The request timed out. Please try again."


class StoreUnavailableError(StoreError):
    code = "store_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again."


class DeliveryError(AppError):
    """Outbound notification could not be delivered."""

    code = "delivery_failed"
    status_code = 503
    default_message = "We could not send the email. Please try again later."
