"""
Core exceptions for the application.

Every exception carries the HTTP status it maps to; a single handler in
``trackpro.main`` renders them as ``{"error": message}``.
"""


class APIException(Exception):
    """Base class for API exceptions."""
    status_code = 500

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(APIException):
    """Raised when a required parameter is missing or malformed."""
    status_code = 400

    def __init__(self, message: str = "Validation error", errors: dict = None):
        self.errors = errors or {}
        super().__init__(message)


class AuthenticationError(APIException):
    """Raised when an upstream access token or session token is rejected."""
    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class PaymentRequiredError(APIException):
    """Raised when a shop without active billing hits a gated endpoint."""
    status_code = 402

    def __init__(self, message: str = "Active billing plan required"):
        super().__init__(message)


class PermissionDeniedError(APIException):
    """Raised when a signed request fails verification."""
    status_code = 403

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class NotFoundError(APIException):
    """Raised when a requested resource is not found."""
    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class UpstreamServiceError(APIException):
    """Raised when Shopify fails in a way the caller may retry."""
    status_code = 500

    def __init__(self, message: str = "Upstream service error", upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class WebhookVerificationError(APIException):
    """Raised when a webhook signature does not match its body."""
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)
