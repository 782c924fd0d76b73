import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy import or_

from user_service.core.exceptions import ConflictError
from user_service.models.user import Role, User
from user_service.services.credential_store import USERNAME_TAKEN_MESSAGE, CredentialStore

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {"first_name", "last_name", "username", "avatar", "preferences", "learning_profile"}
NESTED_FIELDS = {"preferences", "learning_profile"}
LIKE_ESCAPE = "\\"


@dataclass
class UserPage:
    users: List[User]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def like_pattern(text: str) -> str:
    """Build a substring ILIKE pattern where % and _ in text match literally"""
    for char in (LIKE_ESCAPE, "%", "_"):
        text = text.replace(char, LIKE_ESCAPE + char)
    return f"%{text}%"


def merge_nested(current: Optional[dict], changes: dict) -> dict:
    """Merge changes over current key by key, descending into nested dicts"""
    merged = dict(current or {})
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_nested(merged[key], value)
        else:
            merged[key] = value
    return merged


class UserService:
    """Profile and admin operations on user records."""

    def __init__(self, store: CredentialStore):
        self.store = store

    def get_user(self, user_id: str) -> User:
        return self.store.find_by_id(user_id)

    def update_profile(self, user_id: str, changes: dict[str, Any]) -> User:
        user = self.store.find_by_id(user_id)

        username = changes.get("username")
        if username:
            owner = self.store.find_by_username(username)
            if owner is not None and owner.id != user.id:
                raise ConflictError(USERNAME_TAKEN_MESSAGE)

        for field, value in changes.items():
            if field not in PROFILE_FIELDS:
                continue
            if field in NESTED_FIELDS:
                # JSON columns only notice reassignment, so always build a new dict
                value = merge_nested(getattr(user, field), value)
            setattr(user, field, value)

        user = self.store.save(user)
        logger.info(f"User updated: {user.id}")
        return user

    def deactivate(self, user_id: str) -> User:
        """Soft delete: the record stays, but the account can no longer log in"""
        user = self.store.find_by_id(user_id)
        user.is_active = False
        user = self.store.save(user)
        logger.info(f"User deactivated: {user.id}")
        return user

    def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[Role] = None,
        search: Optional[str] = None,
    ) -> UserPage:
        query = self.store.db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if search:
            pattern = like_pattern(search)
            query = query.filter(or_(
                User.email.ilike(pattern, escape=LIKE_ESCAPE),
                User.first_name.ilike(pattern, escape=LIKE_ESCAPE),
                User.last_name.ilike(pattern, escape=LIKE_ESCAPE),
            ))

        total = query.count()
        users = (
            query.order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return UserPage(users=users, page=page, limit=limit, total=total)
