from __future__ import annotations

from collections.abc import Mapping
from typing import Any

API_NAME = "GitLab"


class APIError(Exception):
    """Single error shape for every failed GitLab request.

    ``status`` is ``None`` when no HTTP response was obtained (network
    failure, undecodable body). ``meta`` keeps the raw response and error
    value for diagnostics.
    """

    def __init__(
        self,
        message: str,
        status: int | None,
        api_name: str = API_NAME,
        meta: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.api_name = api_name
        self.meta = meta or {}

    def __str__(self) -> str:
        if self.status is None:
            return f"{self.api_name} API error: {self.message}"
        return f"{self.api_name} API error ({self.status}): {self.message}"


def error_message(error_value: Any) -> str:
    message: Any = None
    if isinstance(error_value, Mapping):
        message = error_value.get("message")
    elif isinstance(error_value, BaseException):
        message = getattr(error_value, "message", None) or (
            str(error_value) if error_value.args else None
        )
    else:
        message = getattr(error_value, "message", None)

    if message:
        return message if isinstance(message, str) else str(message)
    if isinstance(error_value, str):
        return error_value
    return ""


def normalize_error(error_value: Any, response: Any = None) -> APIError:
    status = getattr(response, "status_code", None) if response is not None else None
    return APIError(
        error_message(error_value),
        status,
        API_NAME,
        {"response": response, "error_value": error_value},
    )
