"""
Account Service

Registration and login. New accounts receive their trial record from the
subscription lifecycle controller, which remains the only writer of it.
"""

import logging
from uuid import uuid4

from app.domain.interfaces import UserAccountStore
from app.domain.models import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    User,
)
from app.domain.subscription_lifecycle import SubscriptionLifecycleController
from app.infrastructure.exceptions import AuthError, EmailAlreadyRegisteredError
from app.infrastructure.security import PasswordHasher, TokenIssuer


logger = logging.getLogger(__name__)


class AuthService:
    """
    Service for account registration and credential checks.

    Handles:
    - Registration with an initial 30-day trial
    - Login returning a bearer token and profile snapshot
    """

    def __init__(
        self,
        repository: UserAccountStore,
        lifecycle: SubscriptionLifecycleController,
        hasher: PasswordHasher,
        tokens: TokenIssuer,
    ):
        self._repository = repository
        self._lifecycle = lifecycle
        self._hasher = hasher
        self._tokens = tokens

    async def register(self, request: RegisterRequest) -> RegisterResponse:
        """
        Create an account with a trial subscription.

        Raises:
            EmailAlreadyRegisteredError: If the email is taken
        """
        if await self._repository.get_by_email(request.email) is not None:
            raise EmailAlreadyRegisteredError()

        user = User(
            id=str(uuid4()),
            email=request.email,
            password_hash=self._hasher.hash(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
            age=request.age,
            gender=request.gender,
            university=request.university,
            profile_status=request.profile_status,
            description=request.description,
            looking_for=request.looking_for,
            guardian_email=request.guardian_email,
            guardian_phone=request.guardian_phone,
            subscription=self._lifecycle.issue_trial(),
        )
        created = await self._repository.create(user)
        logger.info(f"Registered user {created.id} with trial until {created.subscription.trial_end_date}")

        await self._lifecycle.announce_registration(created)
        return RegisterResponse(
            token=self._tokens.issue(created.id, created.email),
            user_id=created.id,
        )

    async def login(self, request: LoginRequest) -> LoginResponse:
        """Verify credentials; the same error covers unknown email and bad password."""
        user = await self._repository.get_by_email(request.email.strip().lower())
        if user is None or not self._hasher.verify(request.password, user.password_hash):
            raise AuthError("Invalid credentials")

        return LoginResponse.from_user(user, self._tokens.issue(user.id, user.email))
