"""
PayPal Payment Adapter

Infrastructure adapter for the recurring-subscription processor, talking to
the PayPal REST API over httpx:
- OAuth2 client-credentials token, cached until shortly before expiry
- Billing Subscriptions v1 for recurring agreements (approval redirect)
- Orders v2 for one-shot charges
"""

import logging
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

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
)
from app.infrastructure.payments.base import BaseProviderAdapter


logger = logging.getLogger(__name__)


SUBSCRIPTION_STATUS_MAP = {
    "ACTIVE": ProviderStatus.APPROVED,
    "APPROVED": ProviderStatus.APPROVED,
    "APPROVAL_PENDING": ProviderStatus.PENDING_APPROVAL,
    "SUSPENDED": ProviderStatus.REJECTED,
    "CANCELLED": ProviderStatus.CANCELED,
    "EXPIRED": ProviderStatus.CANCELED,
}

ORDER_STATUS_MAP = {
    "COMPLETED": ProviderStatus.APPROVED,
    "APPROVED": ProviderStatus.APPROVED,
    "CREATED": ProviderStatus.PENDING_APPROVAL,
    "SAVED": ProviderStatus.PENDING_APPROVAL,
    "PAYER_ACTION_REQUIRED": ProviderStatus.PENDING_APPROVAL,
    "VOIDED": ProviderStatus.CANCELED,
}

# Refresh the access token this many seconds before PayPal expires it
TOKEN_EXPIRY_MARGIN_SECONDS = 60


def _is_billing_subscription(provider_id: str) -> bool:
    return provider_id.startswith("I-")


def _approval_link(links: List[Dict[str, Any]]) -> Optional[str]:
    for link in links or []:
        if link.get("rel") in ("approve", "payer-action"):
            return link.get("href")
    return None


def _custom_id(body: Dict[str, Any]) -> Optional[str]:
    """Account id set as ``custom_id`` on a subscription or an order's first purchase unit."""
    if body.get("custom_id"):
        return body["custom_id"]
    units = body.get("purchase_units") or []
    return units[0].get("custom_id") if units else None


def _error_message(response: httpx.Response) -> str:
    """Best human-readable message from a PayPal error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or str(response.status_code)

    details = body.get("details") or []
    if details and details[0].get("description"):
        return details[0]["description"]
    return body.get("message") or body.get("error_description") or str(response.status_code)


def _error_issue(response: httpx.Response) -> Optional[str]:
    try:
        details = response.json().get("details") or []
    except ValueError:
        return None
    return details[0].get("issue") if details else None


class PayPalAdapter(BaseProviderAdapter):
    """
    PayPal recurring-subscription adapter.

    Creating a subscription returns an approval link the payer must visit;
    the caller confirms afterwards by polling ``fetch_subscription``.
    """

    processor = PaymentProcessor.PAYPAL
    billing_kind = BillingKind.RECURRING

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        super().__init__(settings)
        self._client_id = settings.paypal_client_id
        self._client_secret = settings.paypal_client_secret
        self._base_url = settings.paypal_base_url.rstrip("/")
        self._brand_name = settings.app_name
        self._return_url = f"{settings.frontend_url}/subscription/confirm"
        self._cancel_url = f"{settings.frontend_url}/subscription/cancelled"

        self._client = client
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_configured(self) -> None:
        if not (self._client_id and self._client_secret):
            raise ConfigurationError(
                "PayPal payments are not configured",
                missing_keys=["PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET"],
            )

    # =========================================================================
    # Transport
    # =========================================================================

    async def _send(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, mapping transport failures and 5xx to ProviderUnavailableError."""
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"PayPal {operation} timed out: {e}")
            raise ProviderUnavailableError(
                f"Payment provider timed out during {operation}",
                provider=self.processor.value,
                operation=operation,
                original_error=e,
            )
        except httpx.RequestError as e:
            logger.error(f"PayPal {operation} request failed: {e}")
            raise ProviderUnavailableError(
                "Payment provider is unavailable, please try again later",
                provider=self.processor.value,
                operation=operation,
                original_error=e,
            )

        if response.status_code >= 500:
            logger.error(f"PayPal {operation} returned {response.status_code}: {response.text[:500]}")
            raise ProviderUnavailableError(
                "Payment provider is unavailable, please try again later",
                provider=self.processor.value,
                operation=operation,
            )
        return response

    async def _get_access_token(self) -> str:
        self._require_configured()

        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        response = await self._send(
            "authenticate",
            "POST",
            "/v1/oauth2/token",
            auth=(self._client_id, self._client_secret),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
        if response.status_code != 200:
            # Bad credentials are an operator problem, not a payer decline.
            logger.error(f"PayPal authentication failed: {response.status_code}")
            raise ProviderUnavailableError(
                "Payment provider authentication failed",
                provider=self.processor.value,
                operation="authenticate",
            )

        body = response.json()
        self._access_token = body["access_token"]
        expires_in = int(body.get("expires_in", 0))
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0)
        return self._access_token

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> httpx.Response:
        token = await self._get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if request_id:
            headers["PayPal-Request-Id"] = request_id

        response = await self._send(operation, method, path, json=json, headers=headers)

        if response.status_code == 401:
            self._access_token = None
            raise ProviderUnavailableError(
                "Payment provider authentication failed",
                provider=self.processor.value,
                operation=operation,
            )
        return response

    def _rejected(self, operation: str, response: httpx.Response) -> ProviderRejectedError:
        message = _error_message(response)
        logger.error(f"PayPal rejected {operation} ({response.status_code}): {message}")
        return ProviderRejectedError(
            f"Payment declined: {message}",
            provider=self.processor.value,
            operation=operation,
        )

    # =========================================================================
    # One-shot Charges (Orders v2)
    # =========================================================================

    async def authorize_charge(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        payer: PayerProfile,
    ) -> ChargeResult:
        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {
                        "currency_code": currency.upper(),
                        "value": f"{amount:.2f}",
                    },
                    "description": description,
                    "custom_id": payer.user_id,
                }
            ],
            "payment_source": {
                "paypal": {
                    "experience_context": {
                        "brand_name": self._brand_name,
                        "user_action": "PAY_NOW",
                        "return_url": self._return_url,
                        "cancel_url": self._cancel_url,
                    }
                }
            },
        }

        response = await self._request(
            "authorize_charge",
            "POST",
            "/v2/checkout/orders",
            json=payload,
            request_id=str(uuid.uuid4()),
        )
        if response.status_code >= 400:
            raise self._rejected("authorize_charge", response)

        order = response.json()
        native_status = order.get("status")
        logger.info(f"Created PayPal order {order['id']} for user {payer.user_id}, status={native_status}")
        return ChargeResult(
            id=order["id"],
            provider_status=self._normalize(native_status, ORDER_STATUS_MAP, "order"),
            native_status=native_status,
            approval_link=_approval_link(order.get("links")),
        )

    # =========================================================================
    # Recurring Subscriptions (Billing v1)
    # =========================================================================

    async def create_recurring_subscription(
        self,
        plan_id: str,
        payer: PayerProfile,
    ) -> SubscriptionHandle:
        payload = {
            "plan_id": plan_id,
            "custom_id": payer.user_id,
            "subscriber": {
                "name": {
                    "given_name": payer.first_name,
                    "surname": payer.last_name,
                },
                "email_address": payer.email,
            },
            "application_context": {
                "brand_name": self._brand_name,
                "user_action": "SUBSCRIBE_NOW",
                "shipping_preference": "NO_SHIPPING",
                "return_url": self._return_url,
                "cancel_url": self._cancel_url,
            },
        }

        response = await self._request(
            "create_recurring_subscription",
            "POST",
            "/v1/billing/subscriptions",
            json=payload,
            request_id=str(uuid.uuid4()),
        )
        if response.status_code >= 400:
            raise self._rejected("create_recurring_subscription", response)

        subscription = response.json()
        native_status = subscription.get("status")
        logger.info(
            f"Created PayPal subscription {subscription['id']} for user {payer.user_id}, "
            f"status={native_status}"
        )
        return SubscriptionHandle(
            id=subscription["id"],
            provider_status=self._normalize(native_status, SUBSCRIPTION_STATUS_MAP, "subscription"),
            native_status=native_status,
            approval_link=_approval_link(subscription.get("links")),
        )

    async def _fetch_subscription_once(self, provider_id: str) -> RemoteSubscription:
        if _is_billing_subscription(provider_id):
            path, status_map, kind = f"/v1/billing/subscriptions/{provider_id}", SUBSCRIPTION_STATUS_MAP, "subscription"
        else:
            path, status_map, kind = f"/v2/checkout/orders/{provider_id}", ORDER_STATUS_MAP, "order"

        response = await self._request("fetch_subscription", "GET", path)
        if response.status_code >= 400:
            raise self._rejected("fetch_subscription", response)

        body = response.json()
        native_status = body.get("status")
        return RemoteSubscription(
            id=provider_id,
            provider_status=self._normalize(native_status, status_map, kind),
            owner_id=_custom_id(body),
            native_status=native_status,
        )

    async def _cancel_recurring_subscription_once(self, provider_id: str) -> None:
        if not _is_billing_subscription(provider_id):
            logger.info(f"No recurring agreement behind PayPal order {provider_id}, nothing to cancel")
            return

        response = await self._request(
            "cancel_recurring_subscription",
            "POST",
            f"/v1/billing/subscriptions/{provider_id}/cancel",
            json={"reason": "Cancelled by subscriber"},
        )
        if response.status_code == 422 and _error_issue(response) == "SUBSCRIPTION_STATUS_INVALID":
            # Already cancelled or expired on PayPal's side.
            logger.info(f"PayPal subscription {provider_id} is already terminated")
            return
        if response.status_code >= 400:
            raise self._rejected("cancel_recurring_subscription", response)

        logger.info(f"Requested cancellation of PayPal subscription {provider_id}")
