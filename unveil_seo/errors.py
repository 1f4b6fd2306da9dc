# File: unveil_seo/errors.py
"""unveil_seo.errors: Иерархия исключений проекта и их соответствие HTTP-статусам.

Каждое исключение несёт ``status`` (код ответа HTTP API) и ``message``,
который безопасно показывать клиенту. Подробности ошибок внешних сервисов
пишутся в лог, а наружу уходит общее сообщение.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

__all__: Sequence[str] = (
    "UnveilError",
    "InvalidRequestError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "ConflictError",
    "NotConfiguredError",
    "UpstreamError",
    "RateLimitedError",
    "InvalidTransitionError",
)


class UnveilError(Exception):
    """Базовое исключение Unveil SEO."""

    status: int = 500

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidRequestError(UnveilError):
    """Bad input shape or value range."""

    status = 400


class AuthenticationError(UnveilError):
    status = 401


class PermissionDeniedError(UnveilError):
    status = 403


class NotFoundError(UnveilError):
    status = 404


class ConflictError(UnveilError):
    status = 409


class NotConfiguredError(UnveilError):
    """Обязательная переменная окружения (ключ API и т.п.) не задана."""

    status = 500

    def __init__(self, setting: str) -> None:
        super().__init__(f"{setting} not configured")
        self.setting = setting


class UpstreamError(UnveilError):
    """Внешний сервис (краулер, эмбеддинги, хранилище) ответил ошибкой или недоступен."""

    status = 503
    public_message = "Upstream service unavailable"

    def __init__(
        self,
        message: str,
        *,
        service: str = "upstream",
        status_code: Optional[int] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message, details=details)
        self.service = service
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.public_message, "details": f"{self.service} request failed"}


class RateLimitedError(UpstreamError):
    """HTTP 429 from an external API."""

    public_message = "Upstream rate limit exceeded"


class InvalidTransitionError(UnveilError):
    """Недопустимый переход состояния задачи краулинга."""

    status = 409
