from typing import Callable

from fastapi import Depends, Header
from sqlalchemy.orm import Session
from user_service.core.config import Settings, get_settings
from user_service.core.database import get_db
from user_service.core.exceptions import ForbiddenError, UnauthorizedError
from user_service.core.security import parse_authorization_header
from user_service.models.user import Role
from user_service.services.auth_service import AuthService
from user_service.services.credential_store import CredentialStore
from user_service.services.token_service import TokenClaims, TokenIssuer, TokenVerifier
from user_service.services.user_service import UserService

# Components are built per request around the request's session;
# nothing credential-related is cached at process level.


def get_credential_store(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> CredentialStore:
    return CredentialStore(db, bcrypt_rounds=settings.BCRYPT_ROUNDS)


def get_token_verifier(settings: Settings = Depends(get_settings)) -> TokenVerifier:
    return TokenVerifier(settings)


def get_auth_service(
    store: CredentialStore = Depends(get_credential_store),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(store, TokenIssuer(store, settings))


def get_user_service(store: CredentialStore = Depends(get_credential_store)) -> UserService:
    return UserService(store)


async def get_current_user(
    authorization: str | None = Header(default=None),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> TokenClaims:
    """
    Resolve the caller's identity from the Authorization header.

    Only the token is checked - the account is not reloaded, so a token stays
    usable until it expires even if the account is deactivated.
    """
    token = parse_authorization_header(authorization)
    if token is None:
        raise UnauthorizedError("No token provided")
    return verifier.verify(token)


def require_roles(*roles: Role) -> Callable[..., TokenClaims]:
    """Build a dependency that only lets the given roles through"""

    async def check_role(current_user: TokenClaims = Depends(get_current_user)) -> TokenClaims:
        if current_user.role not in roles:
            raise ForbiddenError("Insufficient permissions")
        return current_user

    return check_role
