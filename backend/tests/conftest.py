"""
Test configuration and fixtures for Unistudents Match.

Provides shared fixtures and fakes for unit and integration tests.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

# Settings are read once at import time; configure before the app loads.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("PAYPAL_CLIENT_ID", "paypal-client")
os.environ.setdefault("PAYPAL_CLIENT_SECRET", "paypal-secret")
os.environ.setdefault("PAYPAL_PLAN_ID", "P-TESTPLAN")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.config.settings import get_settings  # noqa: E402
from app.domain.interfaces import (  # noqa: E402
    ChargeResult,
    NotificationEvent,
    NotificationGateway,
    PayerProfile,
    PaymentProviderAdapter,
    RemoteSubscription,
    SubscriptionHandle,
    SubscriptionRecordStore,
    UserAccountStore,
)
from app.domain.models import Gender, User  # noqa: E402
from app.domain.subscription import (  # noqa: E402
    BILLING_INTERVAL,
    BillingKind,
    DirectChargeReference,
    PaymentProcessor,
    ProviderStatus,
    RecurringReference,
    SubscriptionRecord,
    SubscriptionStatus,
)
from app.domain.subscription_lifecycle import SubscriptionLifecycleController  # noqa: E402
from app.infrastructure.exceptions import (  # noqa: E402
    EmailAlreadyRegisteredError,
    NotFoundError,
    ProviderReferenceInUseError,
    StateConflictError,
)
from app.infrastructure.security import TokenIssuer  # noqa: E402


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Fakes
# =============================================================================

class FrozenClock:
    """Controllable clock for the lifecycle controller."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemorySubscriptionStore(SubscriptionRecordStore, UserAccountStore):
    """Dict-backed store with the same revision semantics as UserRepository."""

    def __init__(self):
        self.users: Dict[str, User] = {}
        self.writes = 0

    def add(self, user: User) -> User:
        self.users[user.id] = user
        return user

    def record(self, user_id: str) -> SubscriptionRecord:
        return self.users[user_id].subscription

    async def load(self, user_id: str) -> User:
        # Yield so concurrent requests interleave like real I/O.
        await asyncio.sleep(0)
        if user_id not in self.users:
            raise NotFoundError(f"User {user_id} not found")
        return self.users[user_id].model_copy(deep=True)

    async def compare_and_swap(
        self,
        user_id: str,
        expected_revision: int,
        record: SubscriptionRecord,
    ) -> SubscriptionRecord:
        user = self.users[user_id]
        if user.subscription.revision != expected_revision:
            raise StateConflictError("Subscription was modified concurrently, please retry")
        provider_id = record.provider_reference.provider_id
        if provider_id is not None and any(
            other.id != user_id and other.subscription.provider_reference.provider_id == provider_id
            for other in self.users.values()
        ):
            raise ProviderReferenceInUseError()
        stored = record.model_copy(update={"revision": expected_revision + 1})
        self.users[user_id] = user.model_copy(update={"subscription": stored})
        self.writes += 1
        return stored

    async def get_by_email(self, email: str) -> Optional[User]:
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    async def create(self, user: User) -> User:
        if await self.get_by_email(user.email) is not None:
            raise EmailAlreadyRegisteredError()
        return self.add(user)


class ScriptedAdapter(PaymentProviderAdapter):
    """Provider adapter returning pre-set outcomes and recording calls."""

    def __init__(self, processor: PaymentProcessor, billing_kind: BillingKind):
        self.processor = processor
        self.billing_kind = billing_kind

        self.charge_status = ProviderStatus.APPROVED
        self.charge_id = "pi_test_123"
        self.subscription_status = ProviderStatus.PENDING_APPROVAL
        self.subscription_id = "I-TESTSUB123"
        self.approval_link = "https://paypal.test/approve?ba_token=BA-1"
        self.remote_status: Any = ProviderStatus.APPROVED
        self.create_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None

        # Account id the provider reports for each object; remote_owner overrides it.
        self.owners: Dict[str, str] = {}
        self.remote_owner: Optional[str] = None

        self.charges: List[PayerProfile] = []
        self.created: List[str] = []
        self.fetched: List[str] = []
        self.cancelled: List[str] = []

    async def authorize_charge(self, amount, currency, description, payer) -> ChargeResult:
        await asyncio.sleep(0)
        self.charges.append(payer)
        if self.create_error:
            raise self.create_error
        self.owners[self.charge_id] = payer.user_id
        return ChargeResult(
            id=self.charge_id,
            provider_status=self.charge_status,
            native_status=self.charge_status.value,
        )

    async def create_recurring_subscription(self, plan_id, payer) -> SubscriptionHandle:
        await asyncio.sleep(0)
        self.created.append(plan_id)
        if self.create_error:
            raise self.create_error
        self.owners[self.subscription_id] = payer.user_id
        return SubscriptionHandle(
            id=self.subscription_id,
            provider_status=self.subscription_status,
            native_status=self.subscription_status.value,
            approval_link=self.approval_link,
        )

    async def fetch_subscription(self, provider_id: str) -> RemoteSubscription:
        self.fetched.append(provider_id)
        if isinstance(self.remote_status, Exception):
            raise self.remote_status
        return RemoteSubscription(
            id=provider_id,
            provider_status=self.remote_status,
            owner_id=self.remote_owner or self.owners.get(provider_id),
            native_status=self.remote_status.value,
        )

    async def cancel_recurring_subscription(self, provider_id: str) -> None:
        self.cancelled.append(provider_id)
        if self.cancel_error:
            raise self.cancel_error


class RecordingNotifier(NotificationGateway):
    """Records every notification; optionally fails on each call."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.user_events: List[tuple] = []
        self.guardian_events: List[tuple] = []

    async def notify_user(self, email, name, event: NotificationEvent, **context) -> None:
        self.user_events.append((email, event, context))
        if self.fail:
            raise RuntimeError("mail server down")

    async def notify_guardian(self, guardian_email, subject_name, event: NotificationEvent, **context) -> None:
        self.guardian_events.append((guardian_email, event, context))
        if self.fail:
            raise RuntimeError("mail server down")

    def user_event_kinds(self) -> List[NotificationEvent]:
        return [event for _, event, _ in self.user_events]

    def guardian_event_kinds(self) -> List[NotificationEvent]:
        return [event for _, event, _ in self.guardian_events]


def make_user(
    user_id: str = "00000000-0000-0000-0000-000000000001",
    email: str = "sam@uni.ac.uk",
    gender: Gender = Gender.MALE,
    guardian_email: Optional[str] = None,
    subscription: Optional[SubscriptionRecord] = None,
) -> User:
    return User(
        id=user_id,
        email=email,
        password_hash="not-a-real-hash",
        first_name="Sam",
        last_name="Taylor",
        age=21,
        gender=gender,
        university="University of Leeds",
        profile_status="student",
        description="Third-year engineering student",
        looking_for="friendship",
        guardian_email=guardian_email,
        guardian_phone="+447700900000" if guardian_email else None,
        subscription=subscription or SubscriptionRecord(),
    )


# =============================================================================
# Controller Fixtures
# =============================================================================

@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemorySubscriptionStore()


@pytest.fixture
def stripe_adapter():
    return ScriptedAdapter(PaymentProcessor.STRIPE, BillingKind.DIRECT_CHARGE)


@pytest.fixture
def paypal_adapter():
    return ScriptedAdapter(PaymentProcessor.PAYPAL, BillingKind.RECURRING)


@pytest.fixture
def adapters(stripe_adapter, paypal_adapter):
    return {
        PaymentProcessor.STRIPE: stripe_adapter,
        PaymentProcessor.PAYPAL: paypal_adapter,
    }


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def controller(store, adapters, notifier, settings, clock):
    return SubscriptionLifecycleController(
        store=store,
        adapters=adapters,
        notifier=notifier,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def trial_user(store, controller):
    """A freshly registered user on a trial."""
    return store.add(make_user(subscription=controller.issue_trial()))


@pytest.fixture
def guarded_user(store, controller):
    """A female user with a guardian contact, on a trial."""
    return store.add(make_user(
        user_id="00000000-0000-0000-0000-000000000002",
        email="alex@uni.ac.uk",
        gender=Gender.FEMALE,
        guardian_email="parent@example.com",
        subscription=controller.issue_trial(),
    ))


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application."""
    from app.main import app
    return app


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)


@pytest.fixture
def wired_app(app, store, adapters, notifier, controller):
    """App with persistence, providers, notifications and the clock replaced by fakes."""
    from app.api.dependencies import (
        get_lifecycle_controller,
        get_notification_gateway,
        get_payment_adapters,
        get_user_repository,
    )

    app.dependency_overrides[get_user_repository] = lambda: store
    app.dependency_overrides[get_payment_adapters] = lambda: adapters
    app.dependency_overrides[get_notification_gateway] = lambda: notifier
    app.dependency_overrides[get_lifecycle_controller] = lambda: controller
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def api_client(wired_app):
    return TestClient(wired_app)


@pytest.fixture
def auth_headers(settings):
    """Build bearer headers for a user."""
    issuer = TokenIssuer(settings)

    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {issuer.issue(user.id, user.email)}"}

    return _headers


@pytest.fixture
def user_factory():
    return make_user


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def active_paypal_record(clock):
    """Paid recurring subscription, billed at the clock's current time."""
    return SubscriptionRecord(
        status=SubscriptionStatus.ACTIVE,
        last_payment_date=clock.now,
        next_billing_date=clock.now + BILLING_INTERVAL,
        provider_reference=RecurringReference(
            processor=PaymentProcessor.PAYPAL,
            recurring_subscription_id="I-ACTIVE1",
        ),
        payment_method_token="BA-1",
    )


@pytest.fixture
def active_stripe_record(clock):
    """Paid one-shot charge covering the 30 days from the clock's current time."""
    return SubscriptionRecord(
        status=SubscriptionStatus.ACTIVE,
        last_payment_date=clock.now,
        next_billing_date=clock.now + BILLING_INTERVAL,
        provider_reference=DirectChargeReference(
            processor=PaymentProcessor.STRIPE,
            direct_charge_id="pi_paid",
        ),
        spent_charge_ids=["pi_paid"],
    )
