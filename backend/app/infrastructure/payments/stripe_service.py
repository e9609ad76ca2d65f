"""
Stripe Payment Adapter

Clean Architecture infrastructure adapter for the direct-charge processor.
Takes one-shot payments with PaymentIntents and, for completeness of the
adapter contract, manages Stripe Subscriptions on the configured price.
"""

import logging
from decimal import Decimal
from typing import Optional

import stripe
from stripe import StripeError

from app.config.settings import Settings
from app.domain.interfaces import (
    ChargeResult,
    PayerProfile,
    RemoteSubscription,
    SubscriptionHandle,
)
from app.domain.subscription import BillingKind, PaymentProcessor, ProviderStatus
from app.infrastructure.exceptions import (
    ConfigurationError,
    ProviderRejectedError,
    ProviderUnavailableError,
    ValidationError,
)
from app.infrastructure.payments.base import BaseProviderAdapter


logger = logging.getLogger(__name__)


PAYMENT_INTENT_STATUS_MAP = {
    "succeeded": ProviderStatus.APPROVED,
    "requires_capture": ProviderStatus.APPROVED,
    "processing": ProviderStatus.PENDING_APPROVAL,
    "requires_action": ProviderStatus.PENDING_APPROVAL,
    "requires_confirmation": ProviderStatus.PENDING_APPROVAL,
    "requires_payment_method": ProviderStatus.REJECTED,
    "canceled": ProviderStatus.CANCELED,
}

SUBSCRIPTION_STATUS_MAP = {
    "active": ProviderStatus.APPROVED,
    "trialing": ProviderStatus.APPROVED,
    "incomplete": ProviderStatus.PENDING_APPROVAL,
    "incomplete_expired": ProviderStatus.REJECTED,
    "unpaid": ProviderStatus.REJECTED,
    "canceled": ProviderStatus.CANCELED,
}


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount to the integer minor units Stripe expects."""
    return int((amount * 100).quantize(Decimal("1")))


def _is_payment_intent(provider_id: str) -> bool:
    return provider_id.startswith("pi_")


def _redirect_url(intent) -> Optional[str]:
    """Extract a 3-D Secure redirect URL from a PaymentIntent, if any."""
    next_action = getattr(intent, "next_action", None)
    if next_action and getattr(next_action, "type", None) == "redirect_to_url":
        return next_action.redirect_to_url.url
    return None


def _owner(obj) -> Optional[str]:
    """Account id stamped into the object's metadata at creation."""
    metadata = getattr(obj, "metadata", None) or {}
    return metadata.get("user_id")


class StripeAdapter(BaseProviderAdapter):
    """
    Stripe direct-charge adapter.

    SDK calls are blocking, so they run in a worker thread under the provider
    timeout.
    """

    processor = PaymentProcessor.STRIPE
    billing_kind = BillingKind.DIRECT_CHARGE

    def __init__(self, settings: Settings):
        """Initialize Stripe with the API key from settings."""
        super().__init__(settings)
        self._api_key = settings.stripe_secret_key

        if self._api_key:
            stripe.api_key = self._api_key

    def _require_configured(self) -> None:
        if not self._api_key:
            raise ConfigurationError(
                "Stripe payments are not configured",
                missing_keys=["STRIPE_SECRET_KEY"],
            )

    async def _call(self, operation_name: str, fn, *args, **kwargs):
        """Invoke a Stripe SDK function and translate its failures."""
        self._require_configured()
        try:
            return await self._run_sync(operation_name, fn, *args, **kwargs)
        except (stripe.CardError, stripe.InvalidRequestError) as e:
            logger.error(f"Stripe rejected {operation_name}: {e}")
            raise ProviderRejectedError(
                f"Payment declined: {e.user_message or 'the card was declined'}",
                provider=self.processor.value,
                operation=operation_name,
                original_error=e,
            )
        except StripeError as e:
            logger.error(f"Stripe unavailable during {operation_name}: {e}")
            raise ProviderUnavailableError(
                "Payment provider is unavailable, please try again later",
                provider=self.processor.value,
                operation=operation_name,
                original_error=e,
            )

    # =========================================================================
    # One-shot Charges
    # =========================================================================

    async def authorize_charge(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        payer: PayerProfile,
    ) -> ChargeResult:
        """
        Create and confirm a PaymentIntent against the payer's payment method.

        Args:
            amount: Decimal amount in major units
            currency: ISO currency code
            description: Statement description
            payer: Payer profile; ``payment_method_token`` must be a pm_ id

        Returns:
            ChargeResult with the PaymentIntent id and normalized status
        """
        if not payer.payment_method_token:
            raise ValidationError("A Stripe payment method is required")

        intent = await self._call(
            "authorize_charge",
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=currency.lower(),
            description=description,
            payment_method=payer.payment_method_token,
            confirm=True,
            receipt_email=payer.email,
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            metadata={"user_id": payer.user_id},
        )

        status = self._normalize(intent.status, PAYMENT_INTENT_STATUS_MAP, "payment_intent")
        logger.info(
            f"Created PaymentIntent {intent.id} for user {payer.user_id}, status={intent.status}"
        )
        return ChargeResult(
            id=intent.id,
            provider_status=status,
            native_status=intent.status,
            approval_link=_redirect_url(intent),
        )

    # =========================================================================
    # Recurring Subscriptions
    # =========================================================================

    async def create_recurring_subscription(
        self,
        plan_id: str,
        payer: PayerProfile,
    ) -> SubscriptionHandle:
        """Create a Customer carrying the payment method and subscribe it to ``plan_id``."""
        customer_kwargs = {
            "email": payer.email,
            "name": f"{payer.first_name} {payer.last_name}".strip(),
            "metadata": {"user_id": payer.user_id},
        }
        if payer.payment_method_token:
            customer_kwargs["payment_method"] = payer.payment_method_token
            customer_kwargs["invoice_settings"] = {
                "default_payment_method": payer.payment_method_token,
            }

        customer = await self._call("create_customer", stripe.Customer.create, **customer_kwargs)

        subscription = await self._call(
            "create_recurring_subscription",
            stripe.Subscription.create,
            customer=customer.id,
            items=[{"price": plan_id}],
            metadata={"user_id": payer.user_id},
        )

        status = self._normalize(subscription.status, SUBSCRIPTION_STATUS_MAP, "subscription")
        logger.info(
            f"Created Stripe subscription {subscription.id} for user {payer.user_id}, "
            f"status={subscription.status}"
        )
        return SubscriptionHandle(
            id=subscription.id,
            provider_status=status,
            native_status=subscription.status,
        )

    async def _fetch_subscription_once(self, provider_id: str) -> RemoteSubscription:
        if _is_payment_intent(provider_id):
            obj = await self._call(
                "fetch_subscription", stripe.PaymentIntent.retrieve, provider_id
            )
            status_map, kind = PAYMENT_INTENT_STATUS_MAP, "payment_intent"
        else:
            obj = await self._call(
                "fetch_subscription", stripe.Subscription.retrieve, provider_id
            )
            status_map, kind = SUBSCRIPTION_STATUS_MAP, "subscription"

        return RemoteSubscription(
            id=provider_id,
            provider_status=self._normalize(obj.status, status_map, kind),
            owner_id=_owner(obj),
            native_status=obj.status,
        )

    async def _cancel_recurring_subscription_once(self, provider_id: str) -> None:
        if _is_payment_intent(provider_id):
            # A settled one-shot charge has no agreement to terminate.
            logger.info(f"No recurring agreement behind {provider_id}, nothing to cancel")
            return

        await self._call(
            "cancel_recurring_subscription",
            stripe.Subscription.modify,
            provider_id,
            cancel_at_period_end=True,
        )
        logger.info(f"Cancelled Stripe subscription {provider_id} at period end")
