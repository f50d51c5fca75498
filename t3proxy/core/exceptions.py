"""Core exceptions for the proxy."""

from typing import Any, Optional


class ProxyError(Exception):
    """Base exception for proxy errors.

    Carries everything needed to render an OpenAI-style error body.
    """

    status_code = 500
    error_type = "internal_server_error"
    code = "internal_error"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.code,
            }
        }


class MissingCredentialsError(ProxyError):
    """Raised when neither configured nor caller-supplied credentials exist."""

    status_code = 401
    error_type = "invalid_request_error"
    code = "invalid_api_key"


class InitializationError(ProxyError):
    """Raised when a new backend connection fails its liveness probe."""

    status_code = 502
    error_type = "api_error"
    code = "backend_initialization_failed"


class BackendRequestError(ProxyError):
    """Raised when the backend answers with a non-2xx status or cannot be reached."""

    status_code = 502
    error_type = "api_error"
    code = "backend_error"

    def __init__(self, status: Optional[int], message: Optional[str] = None) -> None:
        if message is None:
            message = f"Backend request failed with status {status}"
        super().__init__(message)
        self.status = status


class NoContentError(ProxyError):
    """Raised when a backend response carried neither text nor an image."""

    status_code = 502
    error_type = "api_error"
    code = "no_content"

    def __init__(self, message: str = "No valid content found in backend response") -> None:
        super().__init__(message)


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message, code=code)


class ClientDisconnected(Exception):
    """Raised when the caller goes away while a backend stream is open.

    Not a ``ProxyError``: nobody is left to receive an error body.
    """
