"""Ошибки проверки.

Сетевые ошибки никогда не пробрасываются наружу: они классифицируются
в момент запроса и складываются в список ошибок прогона. Исключением
является только CheckStateError (запрос результатов до завершения прогона).
"""

from __future__ import annotations

from typing import Any, Optional

from .http import HttpResponse


class DrupalCheckError(Exception):
    """Базовая ошибка.

    - error_code: машинный идентификатор
    - message: человекочитаемое описание
    - details: дополнительный контекст (url, reason_code, status ...)
    """

    error_code: str = "DRUPALCHECK_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class TransportError(DrupalCheckError):
    """DNS/connect/TLS/timeout: ответа от сервера нет."""

    error_code = "TRANSPORT_ERROR"

    def __init__(self, url: str, reason_code: str, error_text: str = ""):
        super().__init__(
            f"{reason_code}: {url}",
            details={"url": url, "reason_code": reason_code, "error_text": error_text},
        )
        self.url = url
        self.reason_code = reason_code


class BadResponseError(DrupalCheckError):
    """Сервер ответил, но итоговый статус 4xx/5xx."""

    error_code = "BAD_RESPONSE"

    def __init__(self, url: str, status: int, response: Optional[HttpResponse] = None):
        super().__init__(f"HTTP {status}: {url}", details={"url": url, "status": status})
        self.url = url
        self.status = status
        self.response = response


class RequestError(DrupalCheckError):
    """Ошибка уровня запроса без пригодного ответа (невалидный URL, схема, цепочка редиректов)."""

    error_code = "REQUEST_ERROR"

    def __init__(self, url: str, reason_code: str, error_text: str = ""):
        super().__init__(
            f"{reason_code}: {url}",
            details={"url": url, "reason_code": reason_code, "error_text": error_text},
        )
        self.url = url
        self.reason_code = reason_code


class CheckStateError(DrupalCheckError):
    """Результаты запрошены до завершения прогона."""

    error_code = "CHECK_STATE"

    def __init__(self, state: str):
        super().__init__(f"check is not finished (state={state})", details={"state": state})
        self.state = state
