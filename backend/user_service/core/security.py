from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional
import uuid

from jose import JWTError, jwt
from passlib.context import CryptContext

BEARER_PREFIX = "Bearer "


@lru_cache(maxsize=None)
def get_password_context(rounds: int) -> CryptContext:
    """Return a bcrypt CryptContext for the given work factor"""
    # bcrypt_sha256 pre-hashes with SHA-256 so characters past bcrypt's 72-byte
    # limit still count. Plain bcrypt hashes keep verifying and are flagged for update.
    # The salt and cost are embedded in each hash, so older work factors still verify
    return CryptContext(
        schemes=["bcrypt_sha256", "bcrypt"],
        deprecated=["bcrypt"],
        bcrypt_sha256__rounds=rounds,
        bcrypt__rounds=rounds,
    )


def hash_password(password: str, rounds: int) -> str:
    """Hash a password with SHA-256 pre-hashed bcrypt"""
    return get_password_context(rounds).hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    if not hashed_password:
        return False
    try:
        # Any context can verify - the cost is read from the hash itself
        return get_password_context(4).verify(plain_password, hashed_password)
    except ValueError:
        # Malformed stored hash
        return False


def create_token(
    claims: dict,
    secret: str,
    algorithm: str,
    expires_delta: timedelta,
) -> str:
    """Sign a JWT carrying claims plus iat/exp/jti"""
    to_encode = claims.copy()
    issued_at = datetime.now(timezone.utc)
    to_encode.update({
        "iat": issued_at,
        "exp": issued_at + expires_delta,
        # Unique per token - two tokens minted in the same second still differ
        "jti": uuid.uuid4().hex,
    })
    return jwt.encode(to_encode, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str) -> Optional[dict]:
    """Decode and verify a JWT token"""
    try:
        # Signature and expiration are verified by jose
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        # Expired, tampered and wrong-secret tokens all end up here
        return None


def parse_authorization_header(value: Optional[str]) -> Optional[str]:
    """Extract the token from a "Bearer <token>" header.

    Absent headers and headers without the bearer prefix mean no credential was
    presented, so they return None rather than being treated as bad tokens.
    """
    if not value or not value.startswith(BEARER_PREFIX):
        return None
    token = value[len(BEARER_PREFIX):].strip()
    return token or None
