from __future__ import annotations

from typing import Any, Dict


class AppError(Exception):
    default_code = "system_error"
    default_message = "The operation could not be completed."
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        details: str | None = None,
        *,
        code: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        return self.details or self.default_message

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class ValidationError(AppError):
    default_code = "validation_error"
    default_message = "The event payload is invalid."
    default_http_status = 422
    default_critical = False


class NotFoundError(AppError):
    default_code = "not_found"
    default_message = "The referenced customer does not exist."
    default_http_status = 404
    default_critical = False


class SystemError(AppError):
    default_code = "system_error"
    default_message = "The operation could not be completed."
    default_http_status = 500
    default_critical = True
