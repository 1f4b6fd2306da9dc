# File: unveil_seo/admin/users.py
"""User administration: every profile is backed by an auth user."""
from __future__ import annotations

import math
from typing import Any, Dict, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from unveil_seo.errors import InvalidRequestError, NotFoundError, UnveilError
from unveil_seo.logger import logger
from unveil_seo.store.base import PageStore, Row
from unveil_seo.utils import isoformat

__all__: Sequence[str] = ("NewUser", "UserAdmin", "PROFILE_UPDATE_FIELDS")

PROFILE_UPDATE_FIELDS = ("full_name", "company_name", "role", "email")


class NewUser(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., alias="fullName", min_length=1)
    company_name: Optional[str] = Field(None, alias="companyName")
    role: Literal["user", "admin"] = "user"

    @field_validator("email")
    def _check_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v:
            raise ValueError("invalid email address")
        return v


class UserAdmin:
    def __init__(self, store: PageStore) -> None:
        self._store = store

    async def list_users(self, *, page: int = 1, limit: int = 10, search: str = "", role: str = "") -> Dict[str, Any]:
        page = max(page, 1)
        limit = max(limit, 1)
        users, total = await self._store.list_profiles(
            search=search, role=role, offset=(page - 1) * limit, limit=limit
        )
        return {
            "users": users,
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit),
        }

    async def get_user(self, user_id: str) -> Row:
        user = await self._store.get_profile(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def create_user(self, new: NewUser) -> Row:
        """Auth user first, then the profile; the auth user is removed if the profile write fails."""
        user_id = await self._store.create_auth_user(
            new.email, new.password, {"full_name": new.full_name, "company_name": new.company_name}
        )
        try:
            profile = await self._store.insert_profile(
                {
                    "id": user_id,
                    "email": new.email,
                    "full_name": new.full_name,
                    "company_name": new.company_name,
                    "role": new.role,
                }
            )
        except UnveilError:
            logger.error("Profile creation failed for %s, removing auth user %s", new.email, user_id)
            await self._store.delete_auth_user(user_id)
            raise
        logger.info("User %s (%s) created with role %s", user_id, new.email, new.role)
        return profile

    async def update_user(self, user_id: str, body: Mapping[str, Any]) -> Row:
        updates = {k: body[k] for k in PROFILE_UPDATE_FIELDS if k in body}
        if not updates:
            raise InvalidRequestError("No valid fields to update")
        if "role" in updates and updates["role"] not in ("user", "admin"):
            raise InvalidRequestError(f"Invalid role: {updates['role']}")
        updates["updated_at"] = isoformat()
        user = await self._store.update_profile(user_id, updates)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def delete_user(self, user_id: str) -> None:
        if not await self._store.delete_profile(user_id):
            raise NotFoundError("User not found")
        await self._store.delete_auth_user(user_id)
        logger.info("User %s deleted", user_id)
