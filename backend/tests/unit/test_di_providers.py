"""
Unit tests for Dependency Injection providers.

Validates that:
- DI factory functions return singleton instances via @lru_cache
- Request-scoped services are assembled from the cached providers
- Providers can be replaced through dependency_overrides
"""

from app.api.dependencies import (
    get_auth_service,
    get_lifecycle_controller,
    get_notification_gateway,
    get_password_hasher,
    get_payment_adapters,
    get_token_issuer,
    get_user_repository,
)
from app.domain.services import AuthService
from app.domain.subscription import BillingKind, PaymentProcessor
from app.domain.subscription_lifecycle import SubscriptionLifecycleController
from app.infrastructure.db.repositories import UserRepository
from app.infrastructure.notifications import LoggingNotificationGateway
from app.infrastructure.payments import PayPalAdapter, StripeAdapter


class TestDIProviders:
    """Tests for @lru_cache DI provider functions."""

    def test_singleton_providers_are_cached(self):
        for provider in (
            get_user_repository,
            get_notification_gateway,
            get_password_hasher,
            get_token_issuer,
        ):
            provider.cache_clear()
            assert provider() is provider()
            provider.cache_clear()

    def test_repository_does_not_connect_eagerly(self):
        get_user_repository.cache_clear()

        assert isinstance(get_user_repository(), UserRepository)

        get_user_repository.cache_clear()

    def test_default_notifier_logs(self):
        get_notification_gateway.cache_clear()

        assert isinstance(get_notification_gateway(), LoggingNotificationGateway)

        get_notification_gateway.cache_clear()

    def test_payment_adapters_cover_both_processors(self):
        get_payment_adapters.cache_clear()

        adapters = get_payment_adapters()

        assert isinstance(adapters[PaymentProcessor.STRIPE], StripeAdapter)
        assert isinstance(adapters[PaymentProcessor.PAYPAL], PayPalAdapter)
        assert adapters[PaymentProcessor.STRIPE].billing_kind == BillingKind.DIRECT_CHARGE
        assert adapters[PaymentProcessor.PAYPAL].billing_kind == BillingKind.RECURRING
        assert get_payment_adapters() is adapters

        get_payment_adapters.cache_clear()


class TestDIOverrides:
    """Tests validating the services accept injected collaborators."""

    def test_lifecycle_controller_wraps_injected_parts(self, store, adapters, notifier):
        controller = get_lifecycle_controller(
            repository=store, adapters=adapters, notifier=notifier
        )

        assert isinstance(controller, SubscriptionLifecycleController)

    def test_auth_service_assembled_from_parts(self, store, controller):
        service = get_auth_service(
            repository=store,
            lifecycle=controller,
            hasher=get_password_hasher(),
            tokens=get_token_issuer(),
        )

        assert isinstance(service, AuthService)
