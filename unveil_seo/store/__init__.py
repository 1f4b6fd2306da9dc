# File: unveil_seo/store/__init__.py
"""unveil_seo.store: Хранилища страниц, задач краулинга, сессий и профилей."""

from unveil_seo.store.base import PageStore
from unveil_seo.store.memory import MemoryStore
from unveil_seo.store.supabase import SupabaseStore

__all__ = ["PageStore", "MemoryStore", "SupabaseStore"]
