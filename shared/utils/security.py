"""
Security utilities for GoCart

Provides JWT issuing and verification for the gateway and its tests.
"""

import os
import secrets
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timedelta, timezone
import jwt

from shared.schemas.auth import Principal
from .errors import InvalidTokenError, TokenExpiredError

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "fallback-secret"


class SecurityUtils:
    """JWT helpers bound to one secret and algorithm"""

    def __init__(self, jwt_secret: Optional[str] = None, jwt_algorithm: Optional[str] = None):
        self.jwt_secret = jwt_secret or os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
        self.jwt_algorithm = jwt_algorithm or os.getenv("JWT_ALGORITHM", "HS256")

    def generate_token(
        self,
        payload: Dict[str, Any],
        expires_in: Optional[int] = None
    ) -> str:
        """
        Generate JWT token

        Args:
            payload: Token payload
            expires_in: Expiration time in minutes

        Returns:
            JWT token string
        """
        if expires_in is None:
            expires_in = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

        now = datetime.now(timezone.utc)
        payload_copy = payload.copy()
        payload_copy["exp"] = now + timedelta(minutes=expires_in)
        payload_copy["iat"] = now

        return jwt.encode(payload_copy, self.jwt_secret, algorithm=self.jwt_algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Verify signature and expiry, returning the raw claims

        Raises:
            TokenExpiredError: If the exp claim is in the past
            InvalidTokenError: If the token is malformed or the signature is wrong
        """
        try:
            return jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[self.jwt_algorithm],
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Token has expired")
            raise TokenExpiredError()
        except jwt.InvalidTokenError as e:
            logger.debug(f"Invalid token: {e}")
            raise InvalidTokenError()

    def verify_token(self, token: str) -> Principal:
        """
        Verify a bearer token and derive the principal it carries

        Args:
            token: JWT token string

        Returns:
            Principal built from the userId, email and role claims

        Raises:
            TokenExpiredError: If the token has expired
            InvalidTokenError: If the token or its claims are not acceptable
        """
        claims = self.decode_token(token)
        try:
            return Principal.from_claims(claims)
        except ValueError as e:
            logger.debug(f"Rejected token claims: {e}")
            raise InvalidTokenError()

    def generate_request_id(self) -> str:
        """Request id used when the caller did not send X-Request-ID"""
        return f"req_{int(datetime.now(timezone.utc).timestamp() * 1000)}_{secrets.token_hex(5)}"


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an 'Authorization: Bearer <token>' header value"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()

