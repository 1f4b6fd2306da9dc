# File: unveil_seo/web/middleware.py
"""
Промежуточные обработчики aiohttp: единый JSON-формат ошибок и HTTP Basic
авторизация для ``/api/admin``.

Ответ об ошибке: ``{"error": ..., "details"?: ..., "timestamp": ...}``.
Ошибки внешних сервисов пишутся в лог полностью, а клиенту уходит общее
сообщение.
"""
from __future__ import annotations

import hmac
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import BasicAuth, hdrs, web

from unveil_seo.config import Secrets
from unveil_seo.errors import AuthenticationError, PermissionDeniedError, UnveilError, UpstreamError
from unveil_seo.logger import logger
from unveil_seo.utils import isoformat
from unveil_seo.web.keys import ENGINE_KEY

__all__ = ["error_response", "error_middleware", "admin_auth_middleware", "ADMIN_PREFIX"]

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

ADMIN_PREFIX = "/api/admin"
_REALM = 'Basic realm="unveil-seo-admin"'


def error_response(status: int, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> web.Response:
    return web.json_response({**body, "timestamp": isoformat()}, status=status, headers=headers)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException as exc:
        if exc.status < 400:
            raise
        return error_response(exc.status, {"error": exc.reason})
    except UpstreamError as exc:
        logger.error(
            "%s %s: %s failed (status %s): %s",
            request.method, request.path, exc.service, exc.status_code, exc.message,
        )
        return error_response(exc.status, exc.to_dict())
    except UnveilError as exc:
        if exc.status >= 500:
            logger.error("%s %s: %s", request.method, request.path, exc.message)
        else:
            logger.info("%s %s -> %d: %s", request.method, request.path, exc.status, exc.message)
        headers = {hdrs.WWW_AUTHENTICATE: _REALM} if isinstance(exc, AuthenticationError) else None
        return error_response(exc.status, exc.to_dict(), headers)
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return error_response(500, {"error": "Internal server error"})


@web.middleware
async def admin_auth_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Require the configured admin credentials on every admin route."""
    if not request.path.startswith(ADMIN_PREFIX):
        return await handler(request)

    secrets = request.app[ENGINE_KEY].secrets
    username = secrets.require(Secrets.ADMIN_USERNAME)
    password = secrets.require(Secrets.ADMIN_PASSWORD)

    header = request.headers.get(hdrs.AUTHORIZATION)
    if not header:
        raise AuthenticationError("Authentication required")
    try:
        auth = BasicAuth.decode(header)
    except ValueError as exc:
        raise AuthenticationError("Invalid authorization header") from exc

    # both comparisons always run
    login_ok = hmac.compare_digest(auth.login.encode("utf-8"), username.encode("utf-8"))
    password_ok = hmac.compare_digest(auth.password.encode("utf-8"), password.encode("utf-8"))
    if not (login_ok and password_ok):
        logger.warning("Rejected admin credentials for %r on %s", auth.login, request.path)
        raise PermissionDeniedError("Access denied")
    return await handler(request)
