"""Request shaping for push-payment calls.

Validation and normalization that must succeed before any network call:
phone format, amount, merchant reference, and the time-stamped password.
"""

import base64
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from shared.exceptions import ValidationError

REFERENCE_MAX_LENGTH = 12
NATIONAL_NUMBER_LENGTH = 9


@dataclass(frozen=True)
class PaymentRequest:
    phone: str
    amount: int
    reference: str
    description: str


def normalize_phone(phone: str, country_code: str = "254") -> str:
    """Return the phone in the provider's international format (e.g. 2547XXXXXXXX)."""
    if not isinstance(phone, str) or not phone.strip():
        raise ValidationError({"phone": ["Phone number is required"]})

    formatted = "".join(phone.split())
    if formatted.startswith("+"):
        formatted = formatted[1:]

    if formatted.startswith("0"):
        formatted = country_code + formatted[1:]
    elif not formatted.startswith(country_code):
        formatted = country_code + formatted

    if not formatted.isdigit() or len(formatted) != len(country_code) + NATIONAL_NUMBER_LENGTH:
        raise ValidationError({"phone": [f"Invalid phone number: {phone!r}"]})
    return formatted


def normalize_amount(amount) -> int:
    """Whole currency units; the provider rejects fractional amounts."""
    if isinstance(amount, bool) or amount is None:
        raise ValidationError({"amount": ["Amount must be a number"]})
    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValidationError({"amount": ["Amount must be finite"]})

    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError({"amount": [f"Invalid amount: {amount!r}"]}) from None

    if not value.is_finite():
        raise ValidationError({"amount": ["Amount must be finite"]})
    if value <= 0:
        raise ValidationError({"amount": ["Amount must be positive"]})

    rounded = int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if rounded <= 0:
        raise ValidationError({"amount": ["Amount rounds to zero"]})
    return rounded


def normalize_reference(reference: str) -> str:
    if not isinstance(reference, str) or not reference.strip():
        raise ValidationError({"reference": ["Account reference is required"]})
    return reference.strip()[:REFERENCE_MAX_LENGTH]


def build_payment_request(
    phone: str,
    amount,
    reference: str,
    description: str | None,
    *,
    country_code: str,
    default_description: str,
) -> PaymentRequest:
    """Validate everything at once so callers see every bad field in one error."""
    errors: dict[str, list[str]] = {}
    normalized = {}
    for field, normalizer, value in (
        ("phone", lambda v: normalize_phone(v, country_code), phone),
        ("amount", normalize_amount, amount),
        ("reference", normalize_reference, reference),
    ):
        try:
            normalized[field] = normalizer(value)
        except ValidationError as exc:
            errors.update(exc.messages)

    if errors:
        raise ValidationError(errors)

    return PaymentRequest(
        phone=normalized["phone"],
        amount=normalized["amount"],
        reference=normalized["reference"],
        description=(description or "").strip() or default_description,
    )


def timestamp(now: datetime | None = None) -> str:
    """Provider timestamp format: YYYYMMDDHHMMSS."""
    return (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")


def password(short_code: str, pass_key: str, stamp: str) -> str:
    return base64.b64encode(f"{short_code}{pass_key}{stamp}".encode()).decode()
