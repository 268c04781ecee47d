"""Parsing of the provider's STK push callback.

The provider posts a nested body where any level may be missing::

    {"Body": {"stkCallback": {
        "MerchantRequestID": "...",
        "CheckoutRequestID": "ws_CO_...",
        "ResultCode": 0,
        "ResultDesc": "...",
        "CallbackMetadata": {"Item": [{"Name": "Amount", "Value": 1.0}, ...]}
    }}}

``parse_callback`` never raises. It returns either a ``ParsedResult`` or a
``Malformed`` describing why the body could not be used; the HTTP layer
acknowledges both identically.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

SUCCESS_CODE = 0

ITEM_AMOUNT = "Amount"
ITEM_RECEIPT = "MpesaReceiptNumber"
ITEM_PAID_AT = "TransactionDate"
ITEM_PHONE = "PhoneNumber"


@dataclass(frozen=True)
class ReceiptDetails:
    """Metadata the provider attaches to successful payments. Any field may be absent."""

    amount: float | None = None
    receipt_number: str | None = None
    paid_at: datetime | None = None
    payer_phone: str | None = None


@dataclass(frozen=True)
class ParsedResult:
    checkout_request_id: str
    result_code: int
    result_description: str | None = None
    merchant_request_id: str | None = None
    receipt: ReceiptDetails | None = None

    @property
    def succeeded(self) -> bool:
        return self.result_code == SUCCESS_CODE


@dataclass(frozen=True)
class Malformed:
    reason: str
    checkout_request_id: str | None = None
    raw: Any = field(default=None, repr=False, compare=False)


ParsedCallback = ParsedResult | Malformed


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _as_amount(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _as_paid_at(value: Any) -> datetime | None:
    text = _as_str(value)
    if text is None:
        return None
    try:
        return datetime.strptime(text, "%Y%m%d%H%M%S").replace(tzinfo=UTC)
    except ValueError:
        return None


def _metadata_values(metadata: Any) -> dict[str, Any]:
    """Collect ``Name -> Value`` pairs, skipping entries that are not well-formed."""
    if not isinstance(metadata, dict):
        return {}
    items = metadata.get("Item")
    if not isinstance(items, list):
        return {}

    values: dict[str, Any] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("Name")
        if isinstance(name, str) and "Value" in item and name not in values:
            values[name] = item["Value"]
    return values


def _receipt(metadata: Any) -> ReceiptDetails:
    values = _metadata_values(metadata)
    return ReceiptDetails(
        amount=_as_amount(values.get(ITEM_AMOUNT)),
        receipt_number=_as_str(values.get(ITEM_RECEIPT)),
        paid_at=_as_paid_at(values.get(ITEM_PAID_AT)),
        payer_phone=_as_str(values.get(ITEM_PHONE)),
    )


def parse_callback(raw: Any) -> ParsedCallback:
    """Turn a raw callback body into a ParsedResult or a Malformed. Never raises."""
    if not isinstance(raw, dict):
        return Malformed(reason="payload is not an object", raw=raw)

    body = raw.get("Body")
    if not isinstance(body, dict):
        return Malformed(reason="missing Body", raw=raw)

    callback = body.get("stkCallback")
    if not isinstance(callback, dict):
        return Malformed(reason="missing Body.stkCallback", raw=raw)

    checkout_request_id = _as_str(callback.get("CheckoutRequestID"))
    if checkout_request_id is None:
        return Malformed(reason="missing CheckoutRequestID", raw=raw)

    result_code = _as_int(callback.get("ResultCode"))
    if result_code is None:
        return Malformed(
            reason="missing or non-numeric ResultCode",
            checkout_request_id=checkout_request_id,
            raw=raw,
        )

    receipt = _receipt(callback.get("CallbackMetadata")) if result_code == SUCCESS_CODE else None

    return ParsedResult(
        checkout_request_id=checkout_request_id,
        result_code=result_code,
        result_description=_as_str(callback.get("ResultDesc")),
        merchant_request_id=_as_str(callback.get("MerchantRequestID")),
        receipt=receipt,
    )
