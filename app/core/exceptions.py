from fastapi import Request
from fastapi.responses import JSONResponse


class PortalError(Exception):
    """Base exception for Portal API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status: int = 500,
        details: dict | None = None,
    ):
        self.code = code
        self.message = message
        self.status = status
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        result = {
            "error": {
                "code": self.code,
                "message": self.message,
                "status": self.status,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


class AuthenticationError(PortalError):
    def __init__(self, message: str = "No authenticated owner for this request.", details: dict | None = None):
        super().__init__(code="authentication_required", message=message, status=401, details=details)


class InvalidRequestError(PortalError):
    def __init__(self, message: str = "Invalid request.", details: dict | None = None):
        super().__init__(code="invalid_request", message=message, status=422, details=details)


class NotFoundError(PortalError):
    def __init__(self, message: str = "Resource not found.", details: dict | None = None):
        super().__init__(code="not_found", message=message, status=404, details=details)


class SecretUnavailableError(PortalError):
    def __init__(self, message: str = "The plaintext key is no longer available.", details: dict | None = None):
        super().__init__(
            code="secret_unavailable",
            message=message,
            status=410,
            details=details or {"suggestion": "Keys are only shown once. Delete this key and create a new one."},
        )


class PersistenceError(PortalError):
    def __init__(self, message: str = "The key store is unavailable.", details: dict | None = None):
        super().__init__(
            code="persistence_error",
            message=message,
            status=503,
            details=details or {"retryable": True},
        )


class EntropySourceUnavailableError(PortalError):
    def __init__(self, message: str = "Secure random source is unavailable.", details: dict | None = None):
        super().__init__(code="entropy_unavailable", message=message, status=500, details=details)


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    """Global exception handler for PortalError and subclasses."""
    return JSONResponse(status_code=exc.status, content=exc.to_dict())
