"""Payment gateway registry.

Provides get_gateway() / set_gateway() to swap implementations per provider:
- FakeGateway for every provider when ``payment_gateway = "fake"`` outside production
- StripeGateway for the STRIPE provider when ``payment_gateway = "stripe"``

Any other combination has no adapter and is rejected, so production never
settles money through the fake.
"""

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway
from shared.config import get_settings
from shared.errors import ErrorCode, ValidationFailed

_gateways: dict[str, PaymentGateway] = {}


def _build_gateway(provider: str) -> PaymentGateway:
    settings = get_settings()
    if settings.payment_gateway == "fake" and not settings.is_production:
        return FakeGateway(webhook_secret=settings.webhook_secret)
    if provider == "STRIPE" and settings.payment_gateway == "stripe":
        from payments.gateway.stripe_adapter import StripeGateway

        return StripeGateway(
            api_key=settings.stripe_api_key,
            webhook_secret=settings.stripe_webhook_secret,
            timeout=settings.stripe_timeout_seconds,
            max_network_retries=settings.stripe_max_network_retries,
        )
    raise ValidationFailed(
        ErrorCode.UNSUPPORTED_PAYMENT_PROVIDER,
        f"Payment provider {provider} is not supported",
        {"provider": provider, "gateway": settings.payment_gateway},
    )


def get_gateway(provider: str = "STRIPE") -> PaymentGateway:
    """Return the gateway for ``provider``, building the configured default on first use."""
    if provider not in _gateways:
        _gateways[provider] = _build_gateway(provider)
    return _gateways[provider]


def set_gateway(gateway: PaymentGateway, provider: str = "STRIPE") -> None:
    """Override the gateway for a provider (useful for tests)."""
    _gateways[provider] = gateway


def reset_gateways() -> None:
    """Forget every gateway so the next lookup rebuilds the defaults."""
    _gateways.clear()
