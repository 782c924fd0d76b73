import enum
from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Enum, ForeignKey, Integer, JSON, Text
from sqlalchemy.orm import deferred, relationship
from sqlalchemy.sql import func
from user_service.core.database import Base


class Role(str, enum.Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


class OAuthProvider(str, enum.Enum):
    GOOGLE = "google"
    GITHUB = "github"


def default_preferences() -> dict:
    return {
        "language": "es",
        "timezone": "UTC",
        "notifications": {"email": True, "push": True},
    }


def default_learning_profile() -> dict:
    return {"level": "beginner", "skills": [], "interests": []}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    User account record.

    Holds identity, the bcrypt password hash, profile data and the list of
    issued refresh tokens. Accounts are soft-deleted through is_active.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    # Email is stored lowercased; the unique index is the final arbiter of duplicates
    email = Column(String(255), unique=True, index=True, nullable=False)
    # Deferred so ordinary lookups never load the hash - login asks for it explicitly
    password_hash = deferred(Column(String(255), nullable=True))
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    # NULL usernames never collide with each other under a unique index
    username = Column(String(30), unique=True, index=True, nullable=True)
    role = Column(
        Enum(Role, values_callable=lambda roles: [r.value for r in roles], name="user_role"),
        nullable=False,
        default=Role.STUDENT,
    )
    avatar = Column(String, nullable=True)

    is_email_verified = Column(Boolean, nullable=False, default=False)
    email_verification_token = Column(String(64), nullable=True)
    password_reset_token = Column(String(64), nullable=True)
    password_reset_expires = Column(DateTime(timezone=True), nullable=True)

    # Stored for accounts created by an external provider; no federation flow uses them yet
    oauth_provider = Column(
        Enum(OAuthProvider, values_callable=lambda p: [v.value for v in p], name="oauth_provider"),
        nullable=True,
    )
    oauth_id = Column(String, nullable=True)

    preferences = Column(JSON, nullable=False, default=default_preferences)
    learning_profile = Column(JSON, nullable=False, default=default_learning_profile)

    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        order_by="RefreshToken.id",
        cascade="all, delete-orphan",
    )


class RefreshToken(Base):
    """A refresh token issued to a user. Rows are only ever appended."""
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    user = relationship("User", back_populates="refresh_tokens")
