# File: unveil_seo/web/__init__.py
"""unveil_seo.web: HTTP API на aiohttp."""

from unveil_seo.web.app import create_app, run_server

__all__ = ["create_app", "run_server"]
