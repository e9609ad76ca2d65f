"""
Membership Interfaces for Unistudents Match

Capability contracts the subscription lifecycle consumes: the record store,
the payment provider adapters and the notification gateway.
Follows Interface Segregation and Dependency Inversion principles.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from app.domain.models import User
from app.domain.subscription import (
    BillingKind,
    DirectChargeReference,
    PaymentProcessor,
    ProviderStatus,
    RecurringReference,
    SubscriptionRecord,
)


# =============================================================================
# Provider Adapter Contract
# =============================================================================

@dataclass
class PayerProfile:
    """What a provider needs to know about the paying user."""
    user_id: str
    email: str
    first_name: str
    last_name: str
    payment_method_token: Optional[str] = None


@dataclass
class ChargeResult:
    """Outcome of a one-shot payment."""
    id: str
    provider_status: ProviderStatus
    native_status: Optional[str] = None
    approval_link: Optional[str] = None


@dataclass
class SubscriptionHandle:
    """Outcome of initiating a recurring agreement."""
    id: str
    provider_status: ProviderStatus
    native_status: Optional[str] = None
    approval_link: Optional[str] = None


@dataclass
class RemoteSubscription:
    """A charge or recurring agreement as the provider currently reports it."""
    id: str
    provider_status: ProviderStatus
    owner_id: Optional[str] = None
    native_status: Optional[str] = None


class PaymentProviderAdapter(ABC):
    """
    Uniform facade over one external payment network.

    Implementations translate their native status vocabulary into
    ProviderStatus and raise ProviderRejectedError / ProviderUnavailableError.
    """

    processor: PaymentProcessor
    billing_kind: BillingKind

    @abstractmethod
    async def authorize_charge(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        payer: PayerProfile,
    ) -> ChargeResult:
        """Take a one-shot payment."""

    @abstractmethod
    async def create_recurring_subscription(
        self,
        plan_id: str,
        payer: PayerProfile,
    ) -> SubscriptionHandle:
        """Initiate a recurring agreement, possibly requiring payer approval."""

    @abstractmethod
    async def fetch_subscription(self, provider_id: str) -> RemoteSubscription:
        """
        Current state of a charge or recurring agreement.

        ``owner_id`` is the account id the adapter stamped on the object at
        creation time, or None when the provider returned none.
        """

    async def fetch_subscription_status(self, provider_id: str) -> ProviderStatus:
        """Current normalized status of a charge or recurring agreement."""
        return (await self.fetch_subscription(provider_id)).provider_status

    @abstractmethod
    async def cancel_recurring_subscription(self, provider_id: str) -> None:
        """Request termination; the provider's billing cycle decides the end date."""

    def reference_for(self, provider_id: str):
        """Provider reference this adapter's billing kind produces."""
        if self.billing_kind is BillingKind.RECURRING:
            return RecurringReference(
                processor=self.processor,
                recurring_subscription_id=provider_id,
            )
        return DirectChargeReference(
            processor=self.processor,
            direct_charge_id=provider_id,
        )

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
        return None


# =============================================================================
# Subscription Record Store Contract
# =============================================================================

class SubscriptionRecordStore(ABC):
    """Durable home of the subscription sub-record, keyed by user id."""

    @abstractmethod
    async def load(self, user_id: str) -> User:
        """Return the user with its current record; NotFoundError if absent."""

    @abstractmethod
    async def compare_and_swap(
        self,
        user_id: str,
        expected_revision: int,
        record: SubscriptionRecord,
    ) -> SubscriptionRecord:
        """
        Write ``record`` only if the stored revision still equals
        ``expected_revision``; the stored copy gets ``expected_revision + 1``.

        Raises StateConflictError when a concurrent writer got there first.
        """


class UserAccountStore(ABC):
    """Account persistence used by registration and login."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def create(self, user: User) -> User:
        """Persist a new user; EmailAlreadyRegisteredError on duplicate email."""


# =============================================================================
# Notification Gateway Contract
# =============================================================================

class NotificationEvent(str, Enum):
    """Lifecycle events users (and guardians) are told about."""
    REGISTRATION = "registration"
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_FAILED = "subscription_failed"
    CANCELLATION_REQUESTED = "cancellation_requested"
    CANCELLATION_FAILED = "cancellation_failed"
    SUBSCRIPTION_ENDED = "subscription_ended"
    SUBSCRIPTION_RENEWED = "subscription_renewed"
    SUBSCRIPTION_LAPSED = "subscription_lapsed"
    TRIAL_EXPIRED = "trial_expired"


class NotificationGateway(ABC):
    """Fire-and-forget dispatcher for user- and guardian-facing messages."""

    @abstractmethod
    async def notify_user(
        self,
        email: str,
        name: str,
        event: NotificationEvent,
        **context: Any,
    ) -> None:
        ...

    @abstractmethod
    async def notify_guardian(
        self,
        guardian_email: str,
        subject_name: str,
        event: NotificationEvent,
        **context: Any,
    ) -> None:
        ...
