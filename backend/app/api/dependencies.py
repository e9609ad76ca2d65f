"""
API Dependencies

FastAPI dependency injection for authentication and the membership services.

Security: bearer tokens are HS256 JWTs verified with the configured secret.
Never decode without verification.
"""

import logging
from functools import lru_cache
from typing import Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import get_settings
from app.domain.interfaces import NotificationGateway, PaymentProviderAdapter
from app.domain.services import AuthService
from app.domain.subscription import PaymentProcessor
from app.domain.subscription_lifecycle import SubscriptionLifecycleController
from app.infrastructure.db.repositories import UserRepository
from app.infrastructure.exceptions import AuthError
from app.infrastructure.notifications import LoggingNotificationGateway
from app.infrastructure.payments import build_payment_adapters
from app.infrastructure.security import PasswordHasher, TokenIssuer


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


# =============================================================================
# Providers (one instance per process)
# =============================================================================

@lru_cache()
def get_user_repository() -> UserRepository:
    return UserRepository()


@lru_cache()
def get_payment_adapters() -> Dict[PaymentProcessor, PaymentProviderAdapter]:
    return build_payment_adapters(get_settings())


@lru_cache()
def get_notification_gateway() -> NotificationGateway:
    return LoggingNotificationGateway()


@lru_cache()
def get_password_hasher() -> PasswordHasher:
    return PasswordHasher()


@lru_cache()
def get_token_issuer() -> TokenIssuer:
    return TokenIssuer(get_settings())


def get_lifecycle_controller(
    repository: UserRepository = Depends(get_user_repository),
    adapters: Dict[PaymentProcessor, PaymentProviderAdapter] = Depends(get_payment_adapters),
    notifier: NotificationGateway = Depends(get_notification_gateway),
) -> SubscriptionLifecycleController:
    return SubscriptionLifecycleController(
        store=repository,
        adapters=adapters,
        notifier=notifier,
        settings=get_settings(),
    )


def get_auth_service(
    repository: UserRepository = Depends(get_user_repository),
    lifecycle: SubscriptionLifecycleController = Depends(get_lifecycle_controller),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> AuthService:
    return AuthService(repository, lifecycle, hasher, tokens)


# =============================================================================
# Authentication
# =============================================================================

async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> str:
    """
    Extract and verify the user id from a bearer token.

    Returns:
        Authenticated user ID (``sub`` claim).

    Raises:
        AuthError: token missing, expired, or invalid.
    """
    if not credentials:
        raise AuthError("Missing authorization token")

    try:
        payload = tokens.decode(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning("JWT verification failed: %s", e)
        raise AuthError("Invalid or unverifiable token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid token: missing user ID")

    return user_id
