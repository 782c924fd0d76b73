"""Persistence of user records and their credentials.

The store is the only place that turns a plaintext password into a hash.
Hashing happens in ``create`` and ``update_password`` and nowhere else, so a
record can be saved any number of times without its hash being touched.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, undefer

from user_service.core.exceptions import ConflictError, InternalError, NotFoundError
from user_service.core.security import hash_password, verify_password
from user_service.models.user import Role, User

logger = logging.getLogger(__name__)

EMAIL_TAKEN_MESSAGE = "Email already registered"
USERNAME_TAKEN_MESSAGE = "Username already taken"
USER_NOT_FOUND_MESSAGE = "User not found"

PASSWORD_RESET_TTL = timedelta(hours=1)


def normalize_email(email: str) -> str:
    return email.strip().lower()


UNIQUE_VIOLATION_PGCODE = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """True for duplicate-key errors, false for not-null, foreign-key and check failures"""
    if getattr(exc.orig, "pgcode", None) == UNIQUE_VIOLATION_PGCODE:
        return True
    # SQLite: "UNIQUE constraint failed", PostgreSQL: "violates unique constraint"
    return "unique" in str(exc.orig).lower()


def conflict_from_integrity_error(exc: IntegrityError) -> ConflictError:
    """Map a unique-index violation onto the same Conflict used by the pre-checks"""
    detail = str(exc.orig).lower()
    if "email" in detail:
        return ConflictError(EMAIL_TAKEN_MESSAGE)
    if "username" in detail:
        return ConflictError(USERNAME_TAKEN_MESSAGE)
    return ConflictError("Resource already exists")


class CredentialStore:
    """User record storage bound to one request-scoped SQLAlchemy session."""

    def __init__(self, db: Session, bcrypt_rounds: int):
        self.db = db
        self.bcrypt_rounds = bcrypt_rounds

    def _query(self, include_password: bool):
        query = self.db.query(User)
        if include_password:
            query = query.options(undefer(User.password_hash))
        return query

    def find_by_email(self, email: str, include_password: bool = False) -> Optional[User]:
        return self._query(include_password).filter(User.email == normalize_email(email)).first()

    def find_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username.strip().lower()).first()

    def find_by_id(self, user_id: str, include_password: bool = False) -> User:
        """Load a user by id, raising NotFoundError when it does not exist"""
        user = self._query(include_password).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError(USER_NOT_FOUND_MESSAGE)
        return user

    def create(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        username: Optional[str] = None,
        role: Role = Role.STUDENT,
        avatar: Optional[str] = None,
    ) -> User:
        """Hash the password once and persist a new user"""
        user = User(
            email=normalize_email(email),
            password_hash=hash_password(password, self.bcrypt_rounds),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            username=username.strip().lower() if username else None,
            role=role,
            avatar=avatar,
        )
        self.db.add(user)
        return self.save(user)

    def save(self, user: User) -> User:
        """Commit pending changes to a user. Never hashes anything."""
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if is_unique_violation(exc):
                # Lost a race against a concurrent write - the unique index decided
                raise conflict_from_integrity_error(exc) from exc
            logger.error(f"Integrity error while saving user: {exc}")
            raise InternalError("Database error occurred") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Database error while saving user: {exc}")
            raise InternalError("Database error occurred") from exc
        self.db.refresh(user)
        return user

    def verify_password(self, user: User, candidate: str) -> bool:
        return verify_password(candidate, user.password_hash)

    def update_password(self, user: User, new_password: str) -> User:
        """Replace the stored hash with a hash of new_password"""
        user.password_hash = hash_password(new_password, self.bcrypt_rounds)
        return self.save(user)

    def record_login(self, user: User) -> User:
        user.last_login = datetime.now(timezone.utc)
        return self.save(user)

    def generate_verification_token(self, user: User) -> str:
        """Store and return a random email-verification token"""
        token = secrets.token_hex(32)
        user.email_verification_token = token
        self.save(user)
        return token

    def generate_password_reset_token(self, user: User) -> str:
        """Store and return a random password-reset token valid for one hour"""
        token = secrets.token_hex(32)
        user.password_reset_token = token
        user.password_reset_expires = datetime.now(timezone.utc) + PASSWORD_RESET_TTL
        self.save(user)
        return token
