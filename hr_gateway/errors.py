"""Error taxonomy for the gateway.

Every failure the gateway surfaces is a ``GatewayError`` tagged with an
``ErrorKind``. Callers dispatch on ``error.kind`` rather than on subclasses.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Error kinds with their public error code and HTTP status."""

    VALIDATION = ("VALIDATION_ERROR", 400)
    NOT_FOUND = ("NOT_FOUND", 404)
    RATE_LIMITED = ("RATE_LIMIT_EXCEEDED", 429)
    REMOTE_TIMEOUT = ("TIMEOUT_ERROR", 504)
    REMOTE_UNAVAILABLE = ("OLLAMA_ERROR", 503)
    INDEX_ERROR = ("INDEX_ERROR", 503)
    INTERNAL = ("INTERNAL_ERROR", 500)

    def __init__(self, code: str, status_code: int):
        self.code = code
        self.status_code = status_code


class GatewayError(Exception):
    """A gateway failure carrying its kind, message and optional retry hint."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.retry_after = retry_after

    @property
    def code(self) -> str:
        return self.kind.code

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def is_remote(self) -> bool:
        """True for failures of the embedding or generation service."""
        return self.kind in (ErrorKind.REMOTE_TIMEOUT, ErrorKind.REMOTE_UNAVAILABLE)

    def to_response(self, hide_internal: bool = False) -> Dict[str, Any]:
        """Build the ``{success: false, error: {...}}`` response body.

        Args:
            hide_internal: Replace the message of INTERNAL errors with a
                generic one (production mode)
        """
        message = self.message
        if hide_internal and self.kind is ErrorKind.INTERNAL:
            message = "Internal server error"

        error: Dict[str, Any] = {"code": self.code, "message": message}
        if self.retry_after is not None:
            error["retryAfter"] = self.retry_after

        return {"success": False, "error": error}

    def __repr__(self) -> str:
        return f"GatewayError({self.kind.name}, {self.message!r})"


def validation_error(message: str) -> GatewayError:
    return GatewayError(ErrorKind.VALIDATION, message)


def index_error(message: str) -> GatewayError:
    return GatewayError(ErrorKind.INDEX_ERROR, message)
