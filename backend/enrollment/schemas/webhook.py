"""
Payment notification parsing.

The processor sends several payload shapes for the same logical event:

    {"type": "payment", "data": {"id": "123"}}                 webhook
    {"action": "payment.updated", "data": {"id": "123"}}       webhook, action only
    {"topic": "payment", "resource": "123"}                    legacy IPN body
    POST /payment-webhook?topic=payment&id=123                 legacy IPN query
    POST /payment-webhook?type=payment&data.id=123             query form

Some deliveries (and our own tests) also carry `status` and `metadata`
inline. Everything is reduced to a tagged union: `PaymentNotification`
when a payment id can be extracted from a payment-typed event, otherwise
`UnrecognizedNotification` with the reason.
"""

from typing import Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from enrollment.core.logging import get_logger
from enrollment.models.enums import BookingMode

logger = get_logger(__name__)

PAYMENT_EVENT_TYPE = "payment"
APPROVED_STATUS = "approved"


class CheckoutMetadata(BaseModel):
    """Correlation data embedded at checkout and echoed back by the processor."""

    group_correlation_id: Optional[str] = None
    reservation_ids: list[int] = Field(default_factory=list)
    mode: Optional[BookingMode] = None
    student_email: Optional[str] = None
    month: Optional[str] = None

    @field_validator("reservation_ids", mode="before")
    @classmethod
    def normalize_ids(cls, value: Any) -> list[Any]:
        """
        Accepts a list, a single id or a comma-separated string. Anything
        else (floats, bools, objects) counts as no explicit ids, so the group
        correlation id still resolves the payment.
        """
        if value is None or value == "":
            return []
        if isinstance(value, bool) or not isinstance(value, (list, tuple, int, str)):
            logger.warning("webhook_reservation_ids_ignored", value_type=type(value).__name__)
            return []
        if isinstance(value, (int, str)):
            value = str(value).split(",")

        ids = []
        for item in value:
            if isinstance(item, str) and item.strip().isdigit():
                ids.append(int(item.strip()))
            elif isinstance(item, int) and not isinstance(item, bool):
                ids.append(item)
            elif item not in (None, ""):
                logger.warning("webhook_reservation_id_dropped", value_type=type(item).__name__)
        return ids

    @field_validator("group_correlation_id", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_resolvable(self) -> bool:
        return bool(self.reservation_ids or self.group_correlation_id)

    def to_processor_metadata(self) -> dict[str, Any]:
        return {
            "group_correlation_id": self.group_correlation_id,
            "reservation_ids": self.reservation_ids,
            "mode": self.mode.value if self.mode else None,
            "student_email": self.student_email,
            "month": self.month,
        }


class PaymentNotification(BaseModel):
    kind: Literal["payment"] = "payment"
    payment_id: str
    status: Optional[str] = None
    metadata: Optional[CheckoutMetadata] = None

    @property
    def is_approved(self) -> bool:
        return self.status == APPROVED_STATUS


class UnrecognizedNotification(BaseModel):
    kind: Literal["unrecognized"] = "unrecognized"
    event_type: Optional[str] = None
    reason: str


Notification = Union[PaymentNotification, UnrecognizedNotification]


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _clean(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def parse_metadata(raw: Any) -> Optional[CheckoutMetadata]:
    """Return metadata only if it can resolve to reservations or a booking."""
    if not isinstance(raw, dict) or not raw:
        return None
    try:
        metadata = CheckoutMetadata.model_validate(raw)
    except PydanticValidationError as e:
        logger.warning("webhook_metadata_invalid", errors=e.error_count(), keys=sorted(raw))
        return None
    return metadata if metadata.is_resolvable else None


def _event_type(body: dict, query: Mapping[str, str]) -> Optional[str]:
    for candidate in (body.get("type"), body.get("topic"), query.get("type"), query.get("topic")):
        cleaned = _clean(candidate)
        if cleaned:
            return cleaned.lower()
    action = _clean(body.get("action"))
    if action and "." in action:
        return action.split(".", 1)[0].lower()
    return None


def _payment_id(body: dict, query: Mapping[str, str]) -> Optional[str]:
    data = _as_dict(body.get("data"))
    resource = _clean(body.get("resource"))
    if resource and "/" in resource:
        # IPN resources may be full URLs: .../v1/payments/123
        resource = resource.rstrip("/").rsplit("/", 1)[-1]
    for candidate in (data.get("id"), resource, body.get("id") if body.get("topic") else None,
                      query.get("data.id"), query.get("id")):
        cleaned = _clean(candidate)
        if cleaned:
            return cleaned
    return None


def parse_notification(body: Any, query: Optional[Mapping[str, str]] = None) -> Notification:
    body = _as_dict(body)
    query = query or {}

    event_type = _event_type(body, query)
    if event_type != PAYMENT_EVENT_TYPE:
        return UnrecognizedNotification(event_type=event_type, reason="not_a_payment_event")

    payment_id = _payment_id(body, query)
    if not payment_id:
        return UnrecognizedNotification(event_type=event_type, reason="missing_payment_id")

    data = _as_dict(body.get("data"))
    status = _clean(body.get("status")) or _clean(data.get("status"))
    metadata = parse_metadata(body.get("metadata") or data.get("metadata"))

    return PaymentNotification(
        payment_id=payment_id,
        status=status.lower() if status else None,
        metadata=metadata,
    )
