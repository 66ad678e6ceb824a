"""Typed failures raised by the auth flow.

Each error carries a stable ``code``, a user-safe ``message`` and the HTTP
status the API layer should answer with.
"""


class AuthError(Exception):
    """Base class for auth flow failures.

    Attributes:
        code: Stable machine-readable error kind
        message: User-safe explanation
        status_code: HTTP status the API maps this error to
    """

    code = "auth_error"
    message = "Authentication error"
    status_code = 400

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class EmailAlreadyExists(AuthError):
    code = "email_already_exists"
    message = "Email already exists"


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    message = "Invalid email or password"
    status_code = 401


class EmailNotVerified(AuthError):
    code = "email_not_verified"
    message = "Please verify your email before logging in"
    status_code = 401


class EmailAlreadyVerified(AuthError):
    code = "email_already_verified"
    message = "Email is already verified"


class RefreshRevoked(AuthError):
    code = "refresh_revoked"
    message = "Refresh token revoked"
    status_code = 401


class TokenExpired(AuthError):
    code = "token_expired"
    message = "Token expired"
    status_code = 401


class UserNotFound(AuthError):
    code = "user_not_found"
    message = "User not found"
    status_code = 404


class VerificationTokenInvalid(AuthError):
    code = "verification_token_invalid"
    message = "Invalid verification token"


class VerificationTokenExpired(AuthError):
    code = "verification_token_expired"
    message = "Verification token has expired"


class ResetTokenInvalid(AuthError):
    code = "reset_token_invalid"
    message = "Invalid password reset token"


class ResetTokenAlreadyUsed(AuthError):
    code = "reset_token_already_used"
    message = "Password reset token has already been used"


class ResetTokenExpired(AuthError):
    code = "reset_token_expired"
    message = "Password reset token has expired"


class EmailDeliveryFailed(AuthError):
    """Raised by the email service when rendering or SMTP delivery fails."""

    code = "email_delivery_failed"
    message = "Failed to send email"
    status_code = 503
