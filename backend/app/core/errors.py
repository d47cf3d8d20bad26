"""API error classes.

Every domain-expected outcome of the credential and token flows maps to one
of these classes; the exception handlers in app.main turn them into the
standard error envelope. Storage and unexpected errors are not translated
here and surface as 500 INTERNAL_ERROR.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class WeakPasswordError(APIError):
    """New password does not satisfy the password policy (400)."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code="WEAK_PASSWORD",
            message=message,
            status_code=400,
        )


class TokenInvalidError(APIError):
    """Ephemeral token is missing, expired, or already used (400).

    Security: The three cases share one code and message so callers cannot
    discover which tokens exist or have been redeemed.
    """

    def __init__(self, message: str = "Invalid or expired token") -> None:
        super().__init__(
            code="TOKEN_INVALID",
            message=message,
            status_code=400,
        )


class AccountAlreadyActiveError(APIError):
    """Activation requested for an account that is already active (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="ALREADY_ACTIVE",
            message="Account is already activated",
            status_code=400,
        )


class AccountNotActivatedError(APIError):
    """Password reset requested for an account that was never activated (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="ACCOUNT_INACTIVE",
            message="Please activate your account before resetting your password",
            status_code=400,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid auth credentials provided.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when auth is valid but the identity is in the wrong state.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class AccountInactiveError(ForbiddenError):
    """Valid credentials for an account that has not been activated (403)."""

    def __init__(self) -> None:
        APIError.__init__(
            self,
            code="USER_INACTIVE",
            message="Please verify your email to activate your account.",
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Only raise for identities where revealing existence is acceptable.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class RateLimitedError(APIError):
    """An unexpired, unused token of the same purpose already exists (429)."""

    def __init__(self, message: str) -> None:
        super().__init__(
            code="RATE_LIMITED",
            message=message,
            status_code=429,
        )


class EmailDeliveryError(APIError):
    """Transactional email could not be delivered (503).

    Transient: the caller may retry. Tokens issued before the failed
    dispatch are kept and can be replaced by a resend.
    """

    def __init__(self, message: str = "Email delivery failed. Please try again.") -> None:
        super().__init__(
            code="EMAIL_DELIVERY_FAILED",
            message=message,
            status_code=503,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
