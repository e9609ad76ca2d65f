"""
User Repository

Data access layer for accounts and their embedded subscription record.
Implements the record store the lifecycle controller writes through:
every subscription write is a conditional UPDATE on the stored revision.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from app.domain.interfaces import SubscriptionRecordStore, UserAccountStore
from app.domain.models import Gender, User
from app.domain.subscription import SubscriptionRecord
from app.infrastructure.db.database import get_session_context
from app.infrastructure.db.models.user import UserModel
from app.infrastructure.exceptions import (
    DatabaseError,
    EmailAlreadyRegisteredError,
    NotFoundError,
    ProviderReferenceInUseError,
    StateConflictError,
)


logger = logging.getLogger(__name__)


def _as_uuid(user_id: str) -> UUID:
    try:
        return UUID(user_id) if isinstance(user_id, str) else user_id
    except ValueError:
        raise NotFoundError(f"User {user_id} not found", operation="load", table="users")


class UserRepository(UserAccountStore, SubscriptionRecordStore):
    """
    Repository for user data access.

    Args:
        session_factory: Optional session factory; defaults to the
            process-wide DatabaseManager pool.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    def _session(self):
        return get_session_context(self._session_factory)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_id(self, user_id: str) -> Optional[User]:
        async with self._session() as session:
            model = await session.get(UserModel, _as_uuid(user_id))
            return self._to_domain(model) if model else None

    async def get_by_email(self, email: str) -> Optional[User]:
        async with self._session() as session:
            statement = select(UserModel).where(UserModel.email == email)
            result = await session.execute(statement)
            model = result.scalar_one_or_none()
            return self._to_domain(model) if model else None

    async def load(self, user_id: str) -> User:
        user = await self.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", operation="load", table="users")
        return user

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def create(self, user: User) -> User:
        """
        Insert a new user.

        Raises:
            EmailAlreadyRegisteredError: If the unique email index rejects it
        """
        model = self._to_model(user)
        try:
            async with self._session() as session:
                session.add(model)
                await session.flush()
                await session.refresh(model)
                created = self._to_domain(model)
        except IntegrityError as e:
            logger.info(f"Rejected duplicate registration for {user.email}")
            raise EmailAlreadyRegisteredError() from e
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Failed to create user", operation="create", table="users", original_error=e
            )

        logger.info(f"Created user {created.id}")
        return created

    async def compare_and_swap(
        self,
        user_id: str,
        expected_revision: int,
        record: SubscriptionRecord,
    ) -> SubscriptionRecord:
        """
        Conditional UPDATE on the revision column.

        Raises:
            StateConflictError: If another writer bumped the revision first
            ProviderReferenceInUseError: If another account already holds the
                record's provider id
        """
        stored = record.model_copy(update={"revision": expected_revision + 1})
        try:
            return await self._swap(user_id, expected_revision, stored)
        except IntegrityError as e:
            logger.warning(
                f"Provider id {stored.provider_reference.provider_id} for user {user_id} "
                "is already linked to another account"
            )
            raise ProviderReferenceInUseError() from e

    async def _swap(
        self,
        user_id: str,
        expected_revision: int,
        stored: SubscriptionRecord,
    ) -> SubscriptionRecord:
        uid = _as_uuid(user_id)

        async with self._session() as session:
            statement = (
                update(UserModel)
                .where(
                    UserModel.id == uid,
                    UserModel.subscription_revision == expected_revision,
                )
                .values(
                    subscription=stored.model_dump(mode="json"),
                    subscription_status=stored.status.value,
                    subscription_revision=stored.revision,
                    has_active_subscription=stored.has_active_subscription,
                    provider_reference_id=stored.provider_reference.provider_id,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            result = await session.execute(statement)

            if result.rowcount == 0:
                if await session.get(UserModel, uid) is None:
                    raise NotFoundError(
                        f"User {user_id} not found", operation="compare_and_swap", table="users"
                    )
                logger.info(
                    f"Subscription write for user {user_id} lost the race at revision {expected_revision}"
                )
                raise StateConflictError("Subscription was modified concurrently, please retry")

        return stored

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: UserModel) -> User:
        record = SubscriptionRecord.model_validate(model.subscription or {})
        # The revision column is authoritative.
        record = record.model_copy(update={"revision": model.subscription_revision})
        return User(
            id=str(model.id),
            email=model.email,
            password_hash=model.password_hash,
            first_name=model.first_name,
            last_name=model.last_name,
            age=model.age,
            gender=Gender(model.gender),
            university=model.university,
            profile_status=model.profile_status,
            description=model.description,
            looking_for=model.looking_for,
            guardian_email=model.guardian_email,
            guardian_phone=model.guardian_phone,
            is_admin=model.is_admin,
            subscription=record,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, user: User) -> UserModel:
        record = user.subscription
        return UserModel(
            id=_as_uuid(user.id),
            email=user.email,
            password_hash=user.password_hash,
            first_name=user.first_name,
            last_name=user.last_name,
            age=user.age,
            gender=user.gender.value,
            university=user.university,
            profile_status=user.profile_status,
            description=user.description,
            looking_for=user.looking_for,
            guardian_email=user.guardian_email,
            guardian_phone=user.guardian_phone,
            is_admin=user.is_admin,
            subscription=record.model_dump(mode="json"),
            subscription_status=record.status.value,
            subscription_revision=record.revision,
            has_active_subscription=record.has_active_subscription,
            provider_reference_id=record.provider_reference.provider_id,
        )
