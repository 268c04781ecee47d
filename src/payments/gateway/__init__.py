"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (PAYMENT_GATEWAY=fake, the default)
- MpesaGateway for production (PAYMENT_GATEWAY=mpesa)
"""

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway
from shared.config import get_settings

_current_gateway: PaymentGateway | None = None


def _build_gateway() -> PaymentGateway:
    settings = get_settings()
    if settings.payment_gateway == "mpesa":
        from payments.gateway.mpesa_adapter import MpesaGateway

        return MpesaGateway(settings)
    return FakeGateway(
        country_code=settings.mpesa_country_code,
        default_description=settings.mpesa_transaction_desc,
    )


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, built from settings on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None


__all__ = ["FakeGateway", "PaymentGateway", "get_gateway", "set_gateway", "reset_gateway"]
