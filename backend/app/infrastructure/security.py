"""
Credential hashing and token issuance.

Password hashing uses passlib (argon2); bearer tokens are HS256 JWTs signed
with the configured secret and carrying the user id in ``sub``.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from app.config.settings import Settings


class PasswordHasher:
    """Hashes and verifies passwords."""

    def __init__(self):
        self._context = CryptContext(schemes=["argon2"], deprecated="auto")

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        return self._context.verify(password, password_hash)


class TokenIssuer:
    """Issues and decodes bearer tokens."""

    def __init__(self, settings: Settings):
        self._secret = settings.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self._lifetime = timedelta(days=settings.access_token_expire_days)

    def issue(self, user_id: str, email: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "iat": now,
            "exp": now + self._lifetime,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        """Verify signature and expiry; raises jwt.InvalidTokenError on failure."""
        return jwt.decode(
            token,
            self._secret,
            algorithms=[self._algorithm],
            options={"require": ["exp", "sub"]},
        )
