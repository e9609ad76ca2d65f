"""
Payments Infrastructure Module

Provider adapters for the direct-charge (Stripe) and recurring-subscription
(PayPal) processors.
"""

from typing import Dict

from app.config.settings import Settings
from app.domain.interfaces import PaymentProviderAdapter
from app.domain.subscription import PaymentProcessor
from app.infrastructure.payments.paypal_service import PayPalAdapter
from app.infrastructure.payments.stripe_service import StripeAdapter


def build_payment_adapters(settings: Settings) -> Dict[PaymentProcessor, PaymentProviderAdapter]:
    """Closed mapping from requested processor to its adapter."""
    return {
        PaymentProcessor.STRIPE: StripeAdapter(settings),
        PaymentProcessor.PAYPAL: PayPalAdapter(settings),
    }


__all__ = ["PayPalAdapter", "StripeAdapter", "build_payment_adapters"]
