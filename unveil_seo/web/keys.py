# File: unveil_seo/web/keys.py
"""Typed application keys shared by the routes and middleware."""
from __future__ import annotations

from aiohttp import web

from unveil_seo.engine import Engine

__all__ = ["ENGINE_KEY"]

ENGINE_KEY = web.AppKey("engine", Engine)
