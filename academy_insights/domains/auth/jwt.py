# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Access token handling for the analytics API.

The academy's auth provider issues the tokens; this service checks the
signature, the expiry and (when configured) the audience, then reads
the user, acting employee and roles out of the claims. The service
itself never issues user tokens; ``create_access_token`` mints service
tokens for internal callers (scripts hitting the API with the shared
secret) and for the test suite.

Example:
    >>> from academy_insights.core.config import get_settings
    >>> tokens = JWTManager(get_settings().jwt)
    >>> token = tokens.create_access_token(user_id="user-123", employee_id="emp-1")
    >>> tokens.decode_token(token).employee_id
    'emp-1'
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from jose import ExpiredSignatureError, jwt
from jose import JWTError as JoseError
from pydantic import BaseModel, ValidationError

from academy_insights.core.config.settings import JWTSettings

logger = logging.getLogger(__name__)

TokenType = Literal["access", "refresh"]


class TokenPayload(BaseModel):
    """Claims read from a verified token.

    Attributes:
        sub: User the token was issued to.
        type: Token kind; the API only accepts access tokens.
        employee_id: Academy employee the user acts as.
        roles: Role codes granted to the user.
        exp: Expiry as a Unix timestamp.
        iat: Issue time as a Unix timestamp.
        jti: Unique token id.
    """

    sub: str
    type: TokenType = "access"
    employee_id: str | None = None
    roles: list[str] = []
    exp: int
    iat: int | None = None
    jti: str | None = None


class JWTError(Exception):
    """A token could not be accepted."""


class TokenExpiredError(JWTError):
    pass


class InvalidTokenError(JWTError):
    pass


class JWTManager:
    """Signs and verifies tokens with the configured key and algorithm."""

    def __init__(self, settings: JWTSettings) -> None:
        self._settings = settings

    @property
    def _key(self) -> str:
        return self._settings.secret_key.get_secret_value()

    def create_access_token(
        self,
        user_id: str,
        employee_id: str | None = None,
        roles: list[str] | None = None,
    ) -> str:
        """Mint a service token valid for ``access_token_expire_minutes``.

        Signed with the same secret the provider uses, so the API accepts
        it like a provider-issued token.

        Args:
            user_id: Subject of the token.
            employee_id: Employee the caller acts as.
            roles: Role codes to grant.

        Returns:
            Encoded token.
        """
        issued = datetime.now(timezone.utc)
        expires = issued + timedelta(minutes=self._settings.access_token_expire_minutes)

        claims: dict[str, Any] = {
            "sub": str(user_id),
            "type": "access",
            "employee_id": employee_id,
            "roles": list(roles or []),
            "iat": int(issued.timestamp()),
            "exp": int(expires.timestamp()),
            "jti": secrets.token_urlsafe(16),
        }
        if self._settings.audience:
            claims["aud"] = self._settings.audience

        return jwt.encode(claims, self._key, algorithm=self._settings.algorithm)

    def decode_token(
        self,
        token: str,
        expected_type: TokenType | None = None,
    ) -> TokenPayload:
        """Verify a token and return its claims.

        Args:
            token: Encoded token.
            expected_type: Reject tokens of any other type when set.

        Raises:
            TokenExpiredError: The token is past its expiry.
            InvalidTokenError: The signature, audience, claims or type are wrong.
        """
        audience = self._settings.audience
        try:
            claims = jwt.decode(
                token,
                self._key,
                algorithms=[self._settings.algorithm],
                audience=audience,
                options={"verify_aud": audience is not None},
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JoseError as e:
            logger.warning("Token verification failed: %s", e)
            raise InvalidTokenError(f"Invalid token: {e}") from e

        try:
            payload = TokenPayload.model_validate(claims)
        except ValidationError as e:
            raise InvalidTokenError("Token claims are incomplete") from e

        if expected_type is not None and payload.type != expected_type:
            raise InvalidTokenError(f"Expected {expected_type} token, got {payload.type}")
        return payload
