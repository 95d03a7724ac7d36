"""
Custom exception hierarchy for the gateway bridge.

All application-level exceptions inherit from AppException so they can be
caught by a single global handler.
"""


class AppException(Exception):
    """Base for all app exceptions."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: dict | None = None,
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(AppException):
    """Raised when a required gateway setting (e.g. the API secret) is missing."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=500,
            error_code="CONFIGURATION_ERROR",
            message=message,
            details=details,
        )


class CallbackRejectedError(AppException):
    """
    Base for every reason a gateway callback is refused.

    The gateway sees one error category regardless of the subclass; the
    subclass only matters for logging and alerting on our side.
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=400,
            error_code="CALLBACK_REJECTED",
            message=message,
            details=details,
        )


class SignatureError(CallbackRejectedError):
    """Content-Hmac header missing or not matching the request body."""


class MalformedIdentifierError(CallbackRejectedError):
    """InvoiceId does not match app_merchant_order."""


class MalformedCallbackError(CallbackRejectedError):
    """Callback body cannot be decoded or a field has the wrong type."""


class BusinessValidationError(CallbackRejectedError):
    """Host business callback reported an error after the transaction was saved."""


class TransportError(AppException):
    """Raised when a connection to the gateway or the host cannot be established."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=502,
            error_code="TRANSPORT_ERROR",
            message=message,
            details=details,
        )


class UnsupportedCurrencyError(AppException):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=422,
            error_code="UNSUPPORTED_CURRENCY",
            message=message,
            details=details,
        )


class OrderNotFoundError(AppException):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=404,
            error_code="ORDER_NOT_FOUND",
            message=message,
            details=details,
        )


class ExternalServiceError(AppException):
    """Raised when an external API call (host application) fails."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=502,
            error_code="EXTERNAL_SERVICE_ERROR",
            message=message,
            details=details,
        )


class CallbackProcessingError(AppException):
    """Raised when a verified callback fails unexpectedly partway through."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            status_code=500,
            error_code="CALLBACK_PROCESSING_ERROR",
            message=message,
            details=details,
        )
