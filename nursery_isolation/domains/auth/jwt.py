# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""JWT token management utilities.

This module provides JWT token creation and validation using python-jose.
Every token issued for a nursery user carries the tenant it belongs to;
the tenant claim is what the tenant context resolver later turns into the
database binding.

Two token types exist:
- access: short-lived bearer token for staff and parents.
- magic_link: single-purpose token mailed to parents for passwordless login.

Example:
    >>> jwt_manager = JWTManager(get_settings().jwt)
    >>> token = jwt_manager.create_access_token(user_id="u-1", tenant_id=tenant_id, role="STAFF")
    >>> claims = jwt_manager.decode_token(token, expected_type="access")
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Literal
from uuid import UUID

from jose import ExpiredSignatureError, jwt
from pydantic import BaseModel, ConfigDict, ValidationError

from nursery_isolation.core.config.settings import JWTSettings

logger = logging.getLogger(__name__)

TokenType = Literal["access", "magic_link"]


class TokenPayload(BaseModel):
    """JWT token payload structure.

    Attributes:
        sub: Subject (user ID).
        type: Token type.
        tenant_id: Tenant (nursery) the user belongs to. Kept as issued;
            the tenant resolver decides whether it is a tenant identifier.
        email: User email address.
        role: Role code (OWNER, MANAGER, STAFF, PARENT).
        permissions: List of permission codes.
        exp: Expiration timestamp.
        iat: Issued at timestamp.
        jti: JWT ID for token tracking.
    """

    model_config = ConfigDict(extra="allow")

    sub: str
    type: TokenType
    tenant_id: Any = None
    email: str | None = None
    role: str | None = None
    permissions: list[str] = []
    exp: int
    iat: int
    jti: str


class JWTError(Exception):
    """Base exception for JWT operations."""

    pass


class TokenExpiredError(JWTError):
    """Raised when a token has expired."""

    pass


class InvalidTokenError(JWTError):
    """Raised when a token is invalid."""

    pass


class JWTManager:
    """JWT token creation and validation manager.

    Attributes:
        _settings: JWT configuration settings.

    Example:
        >>> jwt_manager = JWTManager(settings)
        >>> token = jwt_manager.create_access_token(
        ...     user_id="user-123",
        ...     tenant_id="11111111-1111-1111-1111-111111111111",
        ...     role="MANAGER",
        ...     permissions=["CHILD_READ", "CHILD_WRITE"],
        ... )
        >>> claims = jwt_manager.decode_token(token, expected_type="access")
    """

    def __init__(self, settings: JWTSettings) -> None:
        """Initialize the JWT manager.

        Args:
            settings: JWT configuration settings.
        """
        self._settings = settings

    @property
    def magic_link_lifetime(self) -> timedelta:
        """How long a magic link token stays valid."""
        return timedelta(minutes=self._settings.magic_link_expire_minutes)

    def _encode(self, payload: dict[str, Any]) -> str:
        return jwt.encode(
            payload,
            self._settings.secret_key.get_secret_value(),
            algorithm=self._settings.algorithm,
        )

    def _claims(
        self,
        token_type: TokenType,
        user_id: str | UUID,
        tenant_id: str | UUID | None,
        expires_at: datetime,
        issued_at: datetime,
    ) -> dict[str, Any]:
        return {
            "sub": str(user_id),
            "type": token_type,
            "tenant_id": str(tenant_id) if tenant_id else None,
            "exp": int(expires_at.timestamp()),
            "iat": int(issued_at.timestamp()),
            "jti": secrets.token_urlsafe(16),
        }

    def create_access_token(
        self,
        user_id: str | UUID,
        tenant_id: str | UUID | None = None,
        email: str | None = None,
        role: str | None = None,
        permissions: list[str] | None = None,
    ) -> str:
        """Create an access token.

        Args:
            user_id: User identifier.
            tenant_id: Tenant identifier.
            email: User email address.
            role: Role code.
            permissions: List of permission codes.

        Returns:
            JWT access token string.
        """
        now = datetime.now(timezone.utc)
        exp = now + timedelta(minutes=self._settings.access_token_expire_minutes)

        payload = self._claims("access", user_id, tenant_id, exp, now)
        payload.update(
            {
                "email": email,
                "role": role,
                "permissions": permissions or [],
            }
        )
        return self._encode(payload)

    def create_magic_link_token(
        self,
        user_id: str | UUID,
        tenant_id: str | UUID,
        email: str,
    ) -> str:
        """Create a passwordless login token for a parent.

        The token is only accepted where a magic_link token is expected;
        it can never be used as a bearer access token.

        Args:
            user_id: Parent user identifier.
            tenant_id: Tenant the parent belongs to.
            email: Address the link is sent to.

        Returns:
            JWT magic link token string.
        """
        now = datetime.now(timezone.utc)
        exp = now + self.magic_link_lifetime

        payload = self._claims("magic_link", user_id, tenant_id, exp, now)
        payload["email"] = email
        payload["role"] = "PARENT"
        return self._encode(payload)

    def decode_token(
        self,
        token: str,
        expected_type: TokenType | None = None,
    ) -> TokenPayload:
        """Decode and validate a JWT token.

        Args:
            token: JWT token string.
            expected_type: Expected token type.

        Returns:
            TokenPayload with decoded claims.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidTokenError: If the token is invalid or wrong type.
        """
        try:
            payload = jwt.decode(
                token,
                self._settings.secret_key.get_secret_value(),
                algorithms=[self._settings.algorithm],
            )
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except Exception as e:
            logger.warning("Token decode failed: %s", str(e))
            raise InvalidTokenError(f"Invalid token: {str(e)}")

        if expected_type and payload.get("type") != expected_type:
            raise InvalidTokenError(
                f"Expected {expected_type} token, got {payload.get('type')}"
            )

        try:
            return TokenPayload.model_validate(payload)
        except ValidationError as e:
            raise InvalidTokenError(f"Invalid token claims: {e.error_count()} error(s)")

    @staticmethod
    def hash_token(token: str) -> str:
        """Create a SHA-256 hash of a token.

        Magic link tokens are stored hashed so a database read does not
        yield a usable login link.

        Args:
            token: Token string to hash.

        Returns:
            SHA-256 hash of the token as hex string.
        """
        return hashlib.sha256(token.encode()).hexdigest()
