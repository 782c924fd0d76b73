"""Access/refresh token issuance and verification."""

import logging
from dataclasses import dataclass
from datetime import timedelta

from user_service.core.config import Settings
from user_service.core.exceptions import UnauthorizedError
from user_service.core.security import create_token, decode_token
from user_service.models.user import RefreshToken, Role, User
from user_service.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenClaims:
    id: str
    email: str
    role: Role


def identity_claims(user: User) -> dict:
    role = user.role.value if isinstance(user.role, Role) else str(user.role)
    return {"id": user.id, "email": user.email, "role": role}


class TokenIssuer:
    """Mints token pairs and records each refresh token against its user."""

    def __init__(self, store: CredentialStore, settings: Settings):
        self.store = store
        self.settings = settings

    def issue(self, user: User) -> TokenPair:
        # The user must already be persisted so the id in the claims is durable
        claims = identity_claims(user)
        access_token = create_token(
            claims,
            self.settings.SECRET_KEY,
            self.settings.ALGORITHM,
            timedelta(minutes=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
        refresh_token = create_token(
            claims,
            self.settings.REFRESH_SECRET_KEY,
            self.settings.ALGORITHM,
            timedelta(minutes=self.settings.REFRESH_TOKEN_EXPIRE_MINUTES),
        )

        # Tokens are only handed out once the refresh token is committed
        user.refresh_tokens.append(RefreshToken(token=refresh_token))
        self.store.save(user)
        logger.debug(f"Issued token pair for user {user.id}")
        return TokenPair(access_token=access_token, refresh_token=refresh_token)


class TokenVerifier:
    """Stateless token checks. Never consults the user store, so a token stays
    valid until it expires even if the account is deactivated meanwhile."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _verify(self, token: str, secret: str) -> TokenClaims:
        payload = decode_token(token, secret, self.settings.ALGORITHM)
        # Forged, malformed and expired tokens are reported identically
        if payload is None:
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE)
        try:
            return TokenClaims(
                id=str(payload["id"]),
                email=payload["email"],
                role=Role(payload["role"]),
            )
        except (KeyError, ValueError):
            raise UnauthorizedError(INVALID_TOKEN_MESSAGE)

    def verify(self, token: str) -> TokenClaims:
        """Verify an access token"""
        return self._verify(token, self.settings.SECRET_KEY)

    def verify_refresh(self, token: str) -> TokenClaims:
        """Verify a refresh token"""
        return self._verify(token, self.settings.REFRESH_SECRET_KEY)
