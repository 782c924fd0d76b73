"""Registration, login and password change flows.

The service holds no state between calls; everything lives in the store.
Each step is sequenced strictly: uniqueness checks, then the write, then
token issuance against the already-persisted record.
"""

import logging
from dataclasses import dataclass

from user_service.core.exceptions import ConflictError, ForbiddenError, UnauthorizedError
from user_service.models.user import User
from user_service.schemas.user import UserCreate
from user_service.services.credential_store import (
    EMAIL_TAKEN_MESSAGE,
    USERNAME_TAKEN_MESSAGE,
    CredentialStore,
)
from user_service.services.token_service import TokenIssuer, TokenPair

logger = logging.getLogger(__name__)

# Shared by "no such account" and "wrong password" so callers cannot tell them apart
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
ACCOUNT_DEACTIVATED_MESSAGE = "Account is deactivated"
WRONG_CURRENT_PASSWORD_MESSAGE = "Current password is incorrect"


@dataclass
class AuthResult:
    user: User
    tokens: TokenPair


class AuthService:
    def __init__(self, store: CredentialStore, issuer: TokenIssuer):
        self.store = store
        self.issuer = issuer

    def register(self, candidate: UserCreate) -> AuthResult:
        """Create an account and issue its first token pair"""
        # Pre-checks give precise messages; the unique index still catches races
        # and the store reports those with the same ConflictError
        if self.store.find_by_email(candidate.email) is not None:
            raise ConflictError(EMAIL_TAKEN_MESSAGE)
        if candidate.username and self.store.find_by_username(candidate.username) is not None:
            raise ConflictError(USERNAME_TAKEN_MESSAGE)

        user = self.store.create(
            email=candidate.email,
            password=candidate.password,
            first_name=candidate.first_name,
            last_name=candidate.last_name,
            username=candidate.username,
            role=candidate.role,
        )
        tokens = self.issuer.issue(user)
        logger.info(f"User created: {user.id} ({user.role.value})")
        return AuthResult(user=user, tokens=tokens)

    def login(self, email: str, password: str) -> AuthResult:
        user = self.store.find_by_email(email, include_password=True)
        if user is None or not self.store.verify_password(user, password):
            logger.warning("Failed login attempt")
            raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

        if not user.is_active:
            logger.warning(f"Login refused for deactivated user {user.id}")
            raise ForbiddenError(ACCOUNT_DEACTIVATED_MESSAGE)

        self.store.record_login(user)
        tokens = self.issuer.issue(user)
        logger.info(f"User logged in: {user.id}")
        return AuthResult(user=user, tokens=tokens)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        """Replace a user's password after checking the current one.

        Refresh tokens already issued are left untouched.
        """
        user = self.store.find_by_id(user_id, include_password=True)
        if not self.store.verify_password(user, current_password):
            raise UnauthorizedError(WRONG_CURRENT_PASSWORD_MESSAGE)

        self.store.update_password(user, new_password)
        logger.info(f"Password changed for user: {user.id}")
