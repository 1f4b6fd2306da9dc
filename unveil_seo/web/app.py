# File: unveil_seo/web/app.py
"""Сборка aiohttp-приложения HTTP API и запуск сервера."""
from __future__ import annotations

from typing import Optional

from aiohttp import web

from unveil_seo.config import AppConfig
from unveil_seo.engine import Engine
from unveil_seo.logger import logger
from unveil_seo.web.admin_routes import admin_routes
from unveil_seo.web.handlers import routes
from unveil_seo.web.keys import ENGINE_KEY
from unveil_seo.web.middleware import admin_auth_middleware, error_middleware

__all__ = ["create_app", "run_server"]


async def _close_engine(app: web.Application) -> None:
    await app[ENGINE_KEY].close()


def create_app(config: Optional[AppConfig] = None, engine: Optional[Engine] = None) -> web.Application:
    """Build the API application; *engine* defaults to one built from *config*."""
    engine = engine or Engine(config)
    app = web.Application(middlewares=[error_middleware, admin_auth_middleware])
    app[ENGINE_KEY] = engine
    app.add_routes(routes)
    app.add_routes(admin_routes)
    app.on_cleanup.append(_close_engine)
    return app


def run_server(config: AppConfig, *, host: Optional[str] = None, port: Optional[int] = None) -> None:
    host = host or config.server.host
    port = port or config.server.port
    logger.info("Serving Unveil SEO API on http://%s:%d (store: %s)", host, port, config.store.backend)
    web.run_app(create_app(config), host=host, port=port, print=None)
