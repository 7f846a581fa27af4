from typing import Any, Dict, Optional

from models import OpenAIErrorDetail, OpenAIErrorResponse


class ProxyError(Exception):
    """An error surfaced to the caller as an OpenAI-compatible error body."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_type: str = "invalid_request_error",
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return OpenAIErrorResponse(
            error=OpenAIErrorDetail(message=self.message, type=self.error_type, code=self.code)
        ).model_dump()


def method_not_allowed() -> ProxyError:
    return ProxyError("Method not allowed", 405, "invalid_request_error", "method_not_allowed")


def not_found() -> ProxyError:
    return ProxyError("Not found", 404, "invalid_request_error", "not_found")


def invalid_api_key() -> ProxyError:
    return ProxyError("Invalid API key", 401, "invalid_api_key", "invalid_api_key")
