# =============================================================================
# Credential Verification
# =============================================================================
#
# This module is the credential side of authorization:
#   - Token creation (owner and staff access tokens)
#   - Token validation (CredentialVerifier)
#   - Token revocation (logout)
#   - Password hashing (opaque to the rest of the package)
#
# A token only proves identity. What the identity may do is decided
# afterwards by the role resolver and the gateway, from current state.
#
# =============================================================================

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone

import jwt
from pydantic import BaseModel

from gymdesk.auth.errors import Unauthenticated
from gymdesk.config import get_settings
from gymdesk.core.utils import generate_id, utc_now
from gymdesk.storage.base import CacheStorage

logger = logging.getLogger(__name__)

REVOKED_TOKEN_PREFIX = "revoked_token:"


# =============================================================================
# Models
# =============================================================================

class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str  # identity id
    exp: datetime
    iat: datetime
    type: str  # always "access"
    jti: str  # unique token ID (for revocation)
    sv: int | None = None  # staff session version


class TokenResponse(BaseModel):
    """Access token returned by the login endpoints."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until the token expires


class Identity(BaseModel):
    """
    A verified bearer credential.

    identity_id is the stable id the role resolver looks up.
    session_version is only present on staff tokens.
    """
    identity_id: str
    token_id: str
    expires_at: datetime
    session_version: int | None = None


# =============================================================================
# Password Hashing
# =============================================================================

def hash_password(password: str, iterations: int | None = None) -> str:
    """
    Hash a password using PBKDF2-SHA256.

    Returns: iterations:salt:hash format string
    """
    rounds = iterations or get_settings().password_hash_iterations
    salt = secrets.token_hex(16)
    hash_bytes = hashlib.pbkdf2_hmac(
        'sha256',
        password.encode('utf-8'),
        salt.encode('utf-8'),
        iterations=rounds,
    )
    return f"{rounds}:{salt}:{hash_bytes.hex()}"


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password against its hash."""
    if not password_hash:
        return False
    try:
        rounds, salt, stored_hash = password_hash.split(':')
        hash_bytes = hashlib.pbkdf2_hmac(
            'sha256',
            password.encode('utf-8'),
            salt.encode('utf-8'),
            iterations=int(rounds),
        )
        return secrets.compare_digest(hash_bytes.hex(), stored_hash)
    except (ValueError, AttributeError):
        return False


# =============================================================================
# Token Creation
# =============================================================================

def create_access_token(
    identity_id: str,
    expires_delta: timedelta,
    session_version: int | None = None,
) -> str:
    """Create a signed access token for an identity."""
    settings = get_settings()
    now = utc_now()

    payload = {
        "sub": identity_id,
        "exp": now + expires_delta,
        "iat": now,
        "type": "access",
        "jti": generate_id("tok"),
    }
    if session_version is not None:
        payload["sv"] = session_version

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def issue_owner_token(owner_id: str) -> TokenResponse:
    settings = get_settings()
    lifetime = timedelta(minutes=settings.jwt_access_token_expire_minutes)
    return TokenResponse(
        access_token=create_access_token(owner_id, lifetime),
        expires_in=int(lifetime.total_seconds()),
    )


def issue_staff_token(identity_id: str, session_version: int) -> TokenResponse:
    settings = get_settings()
    lifetime = timedelta(hours=settings.staff_session_expire_hours)
    return TokenResponse(
        access_token=create_access_token(identity_id, lifetime, session_version),
        expires_in=int(lifetime.total_seconds()),
    )


# =============================================================================
# Token Validation
# =============================================================================

class TokenError(Exception):
    """Base exception for token errors."""
    pass


class TokenExpiredError(TokenError):
    """Token has expired."""
    pass


class TokenInvalidError(TokenError):
    """Token is invalid or malformed."""
    pass


def decode_token(token: str, expected_type: str = "access") -> TokenPayload:
    """
    Decode and validate a JWT token.

    Raises:
        TokenExpiredError: Token has expired
        TokenInvalidError: Token is invalid
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iat", "jti"]},
        )

        if payload.get("type") != expected_type:
            raise TokenInvalidError(f"Expected {expected_type} token, got {payload.get('type')}")

        sv = payload.get("sv")
        return TokenPayload(
            sub=payload["sub"],
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            type=payload["type"],
            jti=payload["jti"],
            sv=int(sv) if sv is not None else None,
        )

    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")
    except (TypeError, ValueError) as e:
        raise TokenInvalidError(f"Malformed token claims: {e}")


class CredentialVerifier:
    """
    Turns a bearer token into an Identity.

    Read-only apart from revoke(). Any invalid, expired, malformed or
    revoked token is Unauthenticated; nothing is retried.
    """

    def __init__(self, cache: CacheStorage):
        self.cache = cache

    async def verify(self, token: str | None) -> Identity:
        if not token or not token.strip():
            raise Unauthenticated("Missing bearer token")

        try:
            payload = decode_token(token.strip())
        except TokenExpiredError:
            raise Unauthenticated("Session expired, please login again")
        except TokenError as e:
            logger.info("Rejected bearer token: %s", e)
            raise Unauthenticated("Invalid token")

        if await self.cache.exists(f"{REVOKED_TOKEN_PREFIX}{payload.jti}"):
            raise Unauthenticated("Session has been revoked")

        return Identity(
            identity_id=payload.sub,
            token_id=payload.jti,
            expires_at=payload.exp,
            session_version=payload.sv,
        )

    async def revoke(self, identity: Identity) -> None:
        """Reject this token from now until it would have expired anyway."""
        remaining = int((identity.expires_at - utc_now()).total_seconds())
        if remaining <= 0:
            return
        await self.cache.set(f"{REVOKED_TOKEN_PREFIX}{identity.token_id}", True, ttl=remaining + 1)
