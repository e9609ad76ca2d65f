"""
Subscription Domain Models

Domain models for subscription management following Clean Architecture.
Enums, the embedded subscription record, and request/response DTOs for the
subscription bounded context.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Trials and paid periods are fixed 30-day windows, never calendar months.
BILLING_INTERVAL = timedelta(days=30)


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    TRIAL = "trial"
    ACTIVE = "active"
    PENDING_CANCELLATION = "pending_cancellation"
    INACTIVE = "inactive"


ACCESS_GRANTING_STATUSES = frozenset({SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE})


class PaymentProcessor(str, Enum):
    """Payment networks a user can subscribe through."""
    STRIPE = "stripe"
    PAYPAL = "paypal"


class BillingKind(str, Enum):
    """How a provider settles money."""
    DIRECT_CHARGE = "direct_charge"
    RECURRING = "recurring"


class ProviderStatus(str, Enum):
    """Normalized status every provider vocabulary is mapped onto."""
    APPROVED = "approved"
    PENDING_APPROVAL = "pending_approval"
    REJECTED = "rejected"
    CANCELED = "canceled"
    UNKNOWN = "unknown"


# =============================================================================
# Provider Reference (tagged union)
# =============================================================================

class NoReference(BaseModel):
    """No external object backs the current billing state."""
    kind: Literal["none"] = "none"

    @property
    def provider_id(self) -> Optional[str]:
        return None


class RecurringReference(BaseModel):
    """A recurring agreement held by the recurring-subscription processor."""
    kind: Literal["recurring"] = "recurring"
    processor: PaymentProcessor
    recurring_subscription_id: str

    @property
    def provider_id(self) -> str:
        return self.recurring_subscription_id


class DirectChargeReference(BaseModel):
    """A one-shot payment taken by the direct-charge processor."""
    kind: Literal["direct_charge"] = "direct_charge"
    processor: PaymentProcessor
    direct_charge_id: str

    @property
    def provider_id(self) -> str:
        return self.direct_charge_id


ProviderReference = Annotated[
    Union[NoReference, RecurringReference, DirectChargeReference],
    Field(discriminator="kind"),
]


# =============================================================================
# Domain Entities
# =============================================================================

class SubscriptionRecord(BaseModel):
    """
    Subscription sub-record embedded in the user document.

    Mutated exclusively by the SubscriptionLifecycleController. ``revision`` is
    bumped by every conditional write; ``in_flight_since`` marks a subscribe
    request currently talking to a provider and is not a status.
    ``spent_charge_ids`` outlives the provider reference so a lapsed charge
    can never be confirmed into a second period.
    """
    status: SubscriptionStatus = SubscriptionStatus.TRIAL
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    provider_reference: ProviderReference = Field(default_factory=NoReference)
    payment_method_token: Optional[str] = None
    revision: int = 0
    in_flight_since: Optional[datetime] = None
    spent_charge_ids: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @property
    def has_active_subscription(self) -> bool:
        return self.status in ACCESS_GRANTING_STATUSES

    @property
    def has_provider_reference(self) -> bool:
        return not isinstance(self.provider_reference, NoReference)

    def claim_is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        """True when another subscribe request still holds the in-flight claim."""
        return self.in_flight_since is not None and now - self.in_flight_since < ttl


def next_billing_date_from(paid_at: datetime) -> datetime:
    """Billing date that follows a successful payment."""
    return paid_at + BILLING_INTERVAL


# =============================================================================
# Request/Response DTOs
# =============================================================================

class CamelModel(BaseModel):
    """DTO base serialising to camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubscribeRequest(CamelModel):
    """Request DTO for starting a paid subscription."""
    payment_processor: PaymentProcessor
    payment_method_id: Optional[str] = Field(
        default=None,
        description="Stripe payment method id (pm_...), required for stripe",
    )


class ConfirmRequest(CamelModel):
    """Request DTO for confirming a subscription after out-of-band approval."""
    subscription_id: str = Field(..., min_length=1)
    payment_processor: PaymentProcessor = PaymentProcessor.PAYPAL
    token: Optional[str] = Field(default=None, description="PayPal approval token")
    ba_token: Optional[str] = Field(default=None, description="PayPal billing agreement token")


class SubscribeResponse(CamelModel):
    """Response DTO for a subscribe request."""
    message: str
    status: SubscriptionStatus
    has_active_subscription: bool
    payment_processor: PaymentProcessor
    payment_id: Optional[str] = None
    requires_approval: bool = False
    approval_url: Optional[str] = None


class ConfirmResponse(CamelModel):
    """Response DTO for a confirm request."""
    success: bool
    message: str
    status: SubscriptionStatus
    next_billing_date: Optional[datetime] = None


class CancelResponse(CamelModel):
    """Response DTO for a cancel request."""
    message: str
    status: SubscriptionStatus
    has_active_subscription: bool


class SubscriptionStatusResponse(CamelModel):
    """Response DTO for subscription status."""
    status: SubscriptionStatus
    has_active_subscription: bool
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    payment_processor: Optional[PaymentProcessor] = None

    @classmethod
    def from_record(cls, record: SubscriptionRecord) -> "SubscriptionStatusResponse":
        reference = record.provider_reference
        return cls(
            status=record.status,
            has_active_subscription=record.has_active_subscription,
            trial_start_date=record.trial_start_date,
            trial_end_date=record.trial_end_date,
            last_payment_date=record.last_payment_date,
            next_billing_date=record.next_billing_date,
            payment_processor=getattr(reference, "processor", None),
        )
