"""Project error hierarchy."""

from typing import Any, Dict, Optional


class NimProxyError(Exception):
    """Base error."""


class ConfigurationError(NimProxyError):
    """Raised at start-up when required settings are missing or invalid."""


class ProxyError(NimProxyError):
    """Error surfaced to the client as an OpenAI-style ``{"error": {...}}`` body."""

    status_code: int = 500
    error_type: str = "invalid_request_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
        code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"message": self.message, "type": self.error_type}
        if self.code is not None:
            error["code"] = self.code
        return {"error": error}


class AuthenticationError(ProxyError):
    status_code = 401
    error_type = "authentication_error"


class EndpointNotFoundError(ProxyError):
    status_code = 404

    def __init__(self, path: str) -> None:
        super().__init__(f"Endpoint {path} not found", code=404)


class RequestValidationFailed(ProxyError):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message, code=400)


class UpstreamError(ProxyError):
    """Upstream call failed; status mirrors the upstream status, else 500."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        status = status_code or 500
        super().__init__(message, status_code=status, code=status)
