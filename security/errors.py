class SecurityError(Exception):
    """Base class for errors raised by the security core."""

    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(SecurityError):
    """Malformed input; raised before any state is touched."""

    status_code = 400


class AuthorizationError(SecurityError):
    """The actor lacks the capability for the requested operation."""

    status_code = 403


class NotFoundError(SecurityError):
    status_code = 404


class IdentityProviderError(SecurityError):
    """The external identity provider could not be reached or answered badly."""

    status_code = 503


class ImmutableRecordError(SecurityError):
    """An append-only row was about to be modified or deleted through the ORM."""

    status_code = 500
