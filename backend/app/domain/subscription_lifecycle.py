"""
Subscription Lifecycle Controller

Sole writer of a user's subscription record. Orchestrates trial issuance,
subscription creation through a provider adapter, client-driven confirmation,
renewal bookkeeping and cancellation.

Every write is a compare-and-swap on the record revision. "Provider-pending"
is never stored as a status: a subscribe request holds an in-flight claim on
the record while it talks to the provider and clears it with its final write.
Every success or failure funnels through ``_emit``, which fans out to the
guardian when the user requires oversight.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional, Tuple

from app.config.settings import Settings
from app.domain.interfaces import (
    NotificationEvent,
    NotificationGateway,
    PayerProfile,
    PaymentProviderAdapter,
    SubscriptionRecordStore,
)
from app.domain.models import User
from app.domain.subscription import (
    BILLING_INTERVAL,
    BillingKind,
    CancelResponse,
    ConfirmRequest,
    ConfirmResponse,
    DirectChargeReference,
    NoReference,
    PaymentProcessor,
    ProviderStatus,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionRecord,
    SubscriptionStatus,
    next_billing_date_from,
)
from app.infrastructure.exceptions import (
    AlreadySubscribedError,
    ConfigurationError,
    ForeignSubscriptionError,
    NothingToCancelError,
    PaymentAlreadyAppliedError,
    PaymentNotApprovedError,
    ProviderError,
    ProviderRejectedError,
    StateConflictError,
    SubscriptionInProgressError,
    ValidationError,
)


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionLifecycleController:
    """
    State machine over ``SubscriptionRecord.status``.

    Cheap local checks (state conflicts, payload validation, configuration)
    always run before any provider call.
    """

    def __init__(
        self,
        store: SubscriptionRecordStore,
        adapters: Mapping[PaymentProcessor, PaymentProviderAdapter],
        notifier: NotificationGateway,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._adapters = adapters
        self._notifier = notifier
        self._clock = clock or _utcnow

        self._price = settings.subscription_price
        self._currency = settings.subscription_currency
        self._description = settings.subscription_description
        self._claim_ttl = timedelta(seconds=settings.subscribe_claim_ttl_seconds)
        self._plan_ids = {
            PaymentProcessor.PAYPAL: (settings.paypal_plan_id, "PAYPAL_PLAN_ID"),
        }

    # =========================================================================
    # Trial Issuance
    # =========================================================================

    def issue_trial(self) -> SubscriptionRecord:
        """Initial record for a newly registered account."""
        now = self._clock()
        return SubscriptionRecord(
            status=SubscriptionStatus.TRIAL,
            trial_start_date=now,
            trial_end_date=now + BILLING_INTERVAL,
        )

    async def announce_registration(self, user: User) -> None:
        await self._emit(
            user,
            NotificationEvent.REGISTRATION,
            trial_end_date=user.subscription.trial_end_date,
        )

    # =========================================================================
    # Subscribe
    # =========================================================================

    async def subscribe(self, user_id: str, request: SubscribeRequest) -> SubscribeResponse:
        """
        Start a paid subscription through the requested processor.

        Returns an approval URL when the provider needs the payer to approve
        out of band; the record then stays unchanged until ``confirm``.
        """
        user = await self._store.load(user_id)
        record = user.subscription
        processor = request.payment_processor

        if record.status == SubscriptionStatus.ACTIVE:
            raise AlreadySubscribedError()
        if record.status == SubscriptionStatus.PENDING_CANCELLATION:
            raise StateConflictError(
                "Subscription cancellation is in progress, try again once it completes"
            )
        if record.claim_is_fresh(self._clock(), self._claim_ttl):
            raise SubscriptionInProgressError()

        adapter = self._adapter_for(processor)
        plan_id = None
        if adapter.billing_kind is BillingKind.RECURRING:
            plan_id = self._plan_id_for(processor)
        elif not request.payment_method_id:
            await self._fail_validation(
                user, record, processor, "A payment method is required to subscribe with stripe"
            )

        try:
            claimed = await self._write(
                user_id, record, record.model_copy(update={"in_flight_since": self._clock()})
            )
        except StateConflictError:
            raise SubscriptionInProgressError()

        payer = PayerProfile(
            user_id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            payment_method_token=request.payment_method_id,
        )

        try:
            if adapter.billing_kind is BillingKind.DIRECT_CHARGE:
                result = await adapter.authorize_charge(
                    self._price, self._currency, self._description, payer
                )
            else:
                result = await adapter.create_recurring_subscription(plan_id, payer)
        except ProviderError as e:
            await self._emit(
                user, NotificationEvent.SUBSCRIPTION_FAILED,
                processor=processor.value, reason=e.message,
            )
            await self._release_claim(user_id, claimed)
            raise
        except Exception:
            await self._release_claim(user_id, claimed)
            raise

        if result.provider_status is ProviderStatus.APPROVED:
            stored = await self._write(user_id, claimed, self._activated(claimed, adapter, result.id))
            await self._emit(
                user, NotificationEvent.SUBSCRIPTION_ACTIVATED,
                processor=processor.value, next_billing_date=stored.next_billing_date,
            )
            return SubscribeResponse(
                message="Subscription successful",
                status=stored.status,
                has_active_subscription=stored.has_active_subscription,
                payment_processor=processor,
                payment_id=result.id,
            )

        released = await self._release_claim(user_id, claimed)

        if result.provider_status is ProviderStatus.PENDING_APPROVAL:
            logger.info(f"Subscription {result.id} for user {user_id} awaits payer approval")
            return SubscribeResponse(
                message="Payment approval required",
                status=released.status,
                has_active_subscription=released.has_active_subscription,
                payment_processor=processor,
                payment_id=result.id,
                requires_approval=True,
                approval_url=result.approval_link,
            )

        logger.warning(
            f"{processor.value} returned {result.native_status!r} for user {user_id}; "
            "treating as declined"
        )
        await self._emit(
            user, NotificationEvent.SUBSCRIPTION_FAILED,
            processor=processor.value, reason="Payment authorization failed",
        )
        raise ProviderRejectedError(
            "Payment authorization failed",
            provider=processor.value,
            operation="subscribe",
        )

    # =========================================================================
    # Confirm
    # =========================================================================

    async def confirm(self, user_id: str, request: ConfirmRequest) -> ConfirmResponse:
        """
        Activate a subscription after the payer approved it out of band.

        Idempotent: confirming the subscription that is already active is a
        no-op success.
        """
        user = await self._store.load(user_id)
        record = user.subscription
        processor = request.payment_processor
        provider_id = request.subscription_id

        if self._already_confirmed(record, provider_id):
            return self._confirmed_response(record)
        if record.status == SubscriptionStatus.ACTIVE:
            raise AlreadySubscribedError()
        if record.status == SubscriptionStatus.PENDING_CANCELLATION:
            raise StateConflictError(
                "Subscription cancellation is in progress, try again once it completes"
            )

        if provider_id in record.spent_charge_ids:
            raise PaymentAlreadyAppliedError()

        adapter = self._adapter_for(processor)

        try:
            remote = await adapter.fetch_subscription(provider_id)
        except ProviderError as e:
            await self._emit(
                user, NotificationEvent.SUBSCRIPTION_FAILED,
                processor=processor.value, reason=e.message,
            )
            raise

        if remote.owner_id != user_id:
            logger.warning(
                f"User {user_id} tried to confirm {processor.value} {provider_id} "
                f"owned by {remote.owner_id!r}"
            )
            raise ForeignSubscriptionError()

        provider_status = remote.provider_status
        if provider_status is ProviderStatus.PENDING_APPROVAL:
            raise PaymentNotApprovedError(provider_status=provider_status.value)

        if provider_status is not ProviderStatus.APPROVED:
            await self._emit(
                user, NotificationEvent.SUBSCRIPTION_FAILED,
                processor=processor.value, reason=f"Provider status {provider_status.value}",
            )
            raise ProviderRejectedError(
                "Subscription was not approved by the payment provider",
                provider=processor.value,
                operation="confirm",
            )

        token = None
        if adapter.billing_kind is BillingKind.RECURRING:
            token = request.ba_token or request.token

        try:
            stored = await self._write(
                user_id, record, self._activated(record, adapter, provider_id, token)
            )
        except StateConflictError:
            latest = (await self._store.load(user_id)).subscription
            if self._already_confirmed(latest, provider_id):
                return self._confirmed_response(latest)
            raise

        await self._emit(
            user, NotificationEvent.SUBSCRIPTION_ACTIVATED,
            processor=processor.value, next_billing_date=stored.next_billing_date,
        )
        return self._confirmed_response(stored)

    # =========================================================================
    # Cancel
    # =========================================================================

    async def cancel(self, user_id: str) -> CancelResponse:
        """
        Request cancellation.

        With a provider reference the record moves to ``pending_cancellation``
        and keeps the reference until the provider confirms termination. A
        trial with nothing behind it ends immediately.
        """
        user = await self._store.load(user_id)
        record = user.subscription

        if record.status == SubscriptionStatus.INACTIVE:
            raise NothingToCancelError()
        if record.status == SubscriptionStatus.PENDING_CANCELLATION:
            return self._cancel_response(record)

        if not record.has_provider_reference:
            try:
                stored = await self._write(user_id, record, self._ended(record))
            except StateConflictError:
                return await self._cancel_response_after_conflict(user_id)
            await self._emit(user, NotificationEvent.SUBSCRIPTION_ENDED)
            return self._cancel_response(stored)

        reference = record.provider_reference
        adapter = self._adapter_for(reference.processor)

        try:
            await adapter.cancel_recurring_subscription(reference.provider_id)
        except ProviderError as e:
            await self._emit(
                user, NotificationEvent.CANCELLATION_FAILED,
                processor=reference.processor.value, reason=e.message,
            )
            raise

        pending = record.model_copy(update={
            "status": SubscriptionStatus.PENDING_CANCELLATION,
            "next_billing_date": None,
        })
        try:
            stored = await self._write(user_id, record, pending)
        except StateConflictError:
            return await self._cancel_response_after_conflict(user_id)

        await self._emit(
            user, NotificationEvent.CANCELLATION_REQUESTED,
            processor=reference.processor.value,
        )
        return self._cancel_response(stored)

    # =========================================================================
    # Refresh (client-driven reconciliation)
    # =========================================================================

    async def refresh(self, user_id: str) -> SubscriptionRecord:
        """
        Bring the record in line with elapsed time and provider state.

        Finalizes pending cancellations, records renewals, lapses ended paid
        periods and expires trials. Provider outages leave the record as is.
        """
        user = await self._store.load(user_id)
        record = user.subscription

        try:
            transition = await self._reconcile(record, self._clock())
        except ProviderError as e:
            logger.warning(f"Could not reconcile subscription for user {user_id}: {e.message}")
            return record

        if transition is None:
            return record

        updated, event = transition
        try:
            stored = await self._write(user_id, record, updated)
        except StateConflictError:
            logger.info(f"Subscription for user {user_id} changed during refresh")
            return (await self._store.load(user_id)).subscription

        await self._emit(user, event, next_billing_date=stored.next_billing_date)
        return stored

    async def _reconcile(
        self,
        record: SubscriptionRecord,
        now: datetime,
    ) -> Optional[Tuple[SubscriptionRecord, NotificationEvent]]:
        reference = record.provider_reference

        if record.status == SubscriptionStatus.TRIAL:
            trial_over = record.trial_end_date is not None and record.trial_end_date <= now
            if trial_over and not record.has_provider_reference:
                return (
                    record.model_copy(update={"status": SubscriptionStatus.INACTIVE}),
                    NotificationEvent.TRIAL_EXPIRED,
                )
            return None

        if record.status == SubscriptionStatus.PENDING_CANCELLATION:
            if await self._provider_terminated(record, now):
                return self._ended(record), NotificationEvent.SUBSCRIPTION_ENDED
            return None

        if record.status != SubscriptionStatus.ACTIVE:
            return None
        if record.next_billing_date is None or record.next_billing_date > now:
            return None

        if isinstance(reference, DirectChargeReference):
            return self._lapsed(record), NotificationEvent.SUBSCRIPTION_LAPSED

        provider_status = await self._adapter_for(reference.processor).fetch_subscription_status(
            reference.provider_id
        )
        if provider_status is ProviderStatus.APPROVED:
            paid_at = self._clock()
            renewed = record.model_copy(update={
                "last_payment_date": paid_at,
                "next_billing_date": next_billing_date_from(paid_at),
            })
            return renewed, NotificationEvent.SUBSCRIPTION_RENEWED
        if provider_status in (ProviderStatus.CANCELED, ProviderStatus.REJECTED):
            return self._lapsed(record), NotificationEvent.SUBSCRIPTION_LAPSED
        return None

    async def _provider_terminated(self, record: SubscriptionRecord, now: datetime) -> bool:
        reference = record.provider_reference
        if isinstance(reference, NoReference):
            return True
        if isinstance(reference, DirectChargeReference):
            paid_until = (
                next_billing_date_from(record.last_payment_date)
                if record.last_payment_date else None
            )
            return paid_until is None or paid_until <= now

        provider_status = await self._adapter_for(reference.processor).fetch_subscription_status(
            reference.provider_id
        )
        return provider_status in (ProviderStatus.CANCELED, ProviderStatus.REJECTED)

    # =========================================================================
    # Record Transitions
    # =========================================================================

    def _activated(
        self,
        record: SubscriptionRecord,
        adapter: PaymentProviderAdapter,
        provider_id: str,
        payment_method_token: Optional[str] = None,
    ) -> SubscriptionRecord:
        # Billing dates come from the moment of writing, not the request.
        paid_at = self._clock()
        spent = list(record.spent_charge_ids)
        if adapter.billing_kind is BillingKind.DIRECT_CHARGE and provider_id not in spent:
            spent.append(provider_id)
        return record.model_copy(update={
            "status": SubscriptionStatus.ACTIVE,
            "last_payment_date": paid_at,
            "next_billing_date": next_billing_date_from(paid_at),
            "provider_reference": adapter.reference_for(provider_id),
            "payment_method_token": payment_method_token,
            "in_flight_since": None,
            "spent_charge_ids": spent,
        })

    @staticmethod
    def _ended(record: SubscriptionRecord) -> SubscriptionRecord:
        return record.model_copy(update={
            "status": SubscriptionStatus.INACTIVE,
            "trial_start_date": None,
            "trial_end_date": None,
            "last_payment_date": None,
            "next_billing_date": None,
            "provider_reference": NoReference(),
            "payment_method_token": None,
            "in_flight_since": None,
        })

    @staticmethod
    def _lapsed(record: SubscriptionRecord) -> SubscriptionRecord:
        return record.model_copy(update={
            "status": SubscriptionStatus.INACTIVE,
            "next_billing_date": None,
            "provider_reference": NoReference(),
            "payment_method_token": None,
        })

    async def _fail_validation(
        self,
        user: User,
        record: SubscriptionRecord,
        processor: PaymentProcessor,
        message: str,
    ) -> None:
        """Payment details failed validation before any provider call."""
        await self._write(
            user.id,
            record,
            record.model_copy(update={
                "status": SubscriptionStatus.INACTIVE,
                "in_flight_since": None,
            }),
        )
        await self._emit(
            user, NotificationEvent.SUBSCRIPTION_FAILED,
            processor=processor.value, reason=message,
        )
        raise ValidationError(message)

    async def _release_claim(self, user_id: str, claimed: SubscriptionRecord) -> SubscriptionRecord:
        """Clear the in-flight claim. A lost race leaves the claim to expire on its TTL."""
        try:
            return await self._write(
                user_id, claimed, claimed.model_copy(update={"in_flight_since": None})
            )
        except StateConflictError:
            logger.warning(
                f"Could not release subscribe claim for user {user_id}; "
                "record changed concurrently"
            )
            return claimed

    async def _write(
        self,
        user_id: str,
        current: SubscriptionRecord,
        updated: SubscriptionRecord,
    ) -> SubscriptionRecord:
        stored = await self._store.compare_and_swap(user_id, current.revision, updated)
        if current.status != stored.status:
            logger.info(
                f"Subscription for user {user_id}: {current.status.value} -> "
                f"{stored.status.value} (revision {stored.revision})"
            )
        return stored

    # =========================================================================
    # Helpers
    # =========================================================================

    def _adapter_for(self, processor: PaymentProcessor) -> PaymentProviderAdapter:
        adapter = self._adapters.get(processor)
        if adapter is None:
            raise ConfigurationError(f"Payment processor {processor.value} is not available")
        return adapter

    def _plan_id_for(self, processor: PaymentProcessor) -> str:
        plan_id, env_key = self._plan_ids.get(
            processor, (None, f"{processor.value.upper()}_PLAN_ID")
        )
        if not plan_id:
            raise ConfigurationError(
                f"No subscription plan configured for {processor.value}",
                missing_keys=[env_key],
            )
        return plan_id

    @staticmethod
    def _already_confirmed(record: SubscriptionRecord, provider_id: str) -> bool:
        return (
            record.status == SubscriptionStatus.ACTIVE
            and record.provider_reference.provider_id == provider_id
        )

    @staticmethod
    def _confirmed_response(record: SubscriptionRecord) -> ConfirmResponse:
        return ConfirmResponse(
            success=True,
            message="Subscription confirmed",
            status=record.status,
            next_billing_date=record.next_billing_date,
        )

    @staticmethod
    def _cancel_response(record: SubscriptionRecord) -> CancelResponse:
        if record.status == SubscriptionStatus.PENDING_CANCELLATION:
            message = "Subscription cancellation requested"
        else:
            message = "Subscription cancelled successfully"
        return CancelResponse(
            message=message,
            status=record.status,
            has_active_subscription=record.has_active_subscription,
        )

    async def _cancel_response_after_conflict(self, user_id: str) -> CancelResponse:
        latest = (await self._store.load(user_id)).subscription
        if latest.status in (SubscriptionStatus.PENDING_CANCELLATION, SubscriptionStatus.INACTIVE):
            return self._cancel_response(latest)
        raise StateConflictError("Subscription changed while cancelling, please retry")

    async def _emit(self, user: User, event: NotificationEvent, **context: Any) -> None:
        """Notify the user and, under guardian oversight, the guardian. Never raises."""
        try:
            await self._notifier.notify_user(user.email, user.display_name, event, **context)
        except Exception as e:
            logger.warning(f"Failed to notify user {user.id} of {event.value}: {e}")

        if not user.requires_guardian_oversight:
            return

        try:
            await self._notifier.notify_guardian(
                user.guardian_email, user.display_name, event, **context
            )
        except Exception as e:
            logger.warning(f"Failed to notify guardian of user {user.id} of {event.value}: {e}")
