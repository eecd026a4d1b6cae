from shopilent.core import config
from shopilent.core.errors import ValidationError
from shopilent.gateways.base import WebhookProvider, WebhookResult
from shopilent.gateways.stripe import StripeWebhookProvider

# Provider name -> factory; secrets are read at call time so they can be rotated or patched.
_PROVIDER_FACTORIES = {
    "stripe": lambda: StripeWebhookProvider(config.STRIPE_WEBHOOK_SECRET, config.WEBHOOK_TOLERANCE_SECONDS),
}


def get_provider(name: str) -> WebhookProvider:
    factory = _PROVIDER_FACTORIES.get((name or "").lower())
    if factory is None:
        raise ValidationError(f"Unsupported payment provider: {name}", code="invalid_provider")
    return factory()


__all__ = ["StripeWebhookProvider", "WebhookProvider", "WebhookResult", "get_provider"]
