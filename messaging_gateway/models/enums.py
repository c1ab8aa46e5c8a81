from __future__ import annotations

from enum import IntEnum, StrEnum


class Channel(StrEnum):
    __slots__ = ()

    SMS = "sms"
    WHATSAPP = "whatsapp"

    @property
    def is_sms(self) -> bool:
        return self is Channel.SMS

    @property
    def is_whatsapp(self) -> bool:
        return self is Channel.WHATSAPP


class DeliveryStatus(StrEnum):
    """Delivery states reported back by the vendors' callbacks."""

    __slots__ = ()

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)


class ResponseCode(IntEnum):
    """Vendor-agnostic result taxonomy.

    Numeric values follow the AfrikSMS reply codes so a raw ``code``
    field maps straight onto a member.  ``TEMPLATE_REQUIRED`` only comes
    from the Twilio error mapping; its value sits outside the AfrikSMS
    range so no SMS reply can parse into it.
    """

    SUCCESS = 100
    PARTIAL_SUCCESS = 101
    INVALID_CREDENTIALS = 401
    INSUFFICIENT_BALANCE = 402
    INVALID_RECIPIENT = 422
    TEMPLATE_REQUIRED = 463
    SERVER_ERROR = 500
    UNSUPPORTED_OPERATION = 501
    UNKNOWN = 999

    @classmethod
    def parse(cls, raw: object) -> ResponseCode:
        """Map a raw vendor code onto a member, defaulting to ``UNKNOWN``."""
        try:
            return cls(int(raw))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @property
    def is_success(self) -> bool:
        return self in (ResponseCode.SUCCESS, ResponseCode.PARTIAL_SUCCESS)

    @property
    def is_error(self) -> bool:
        return not self.is_success

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS: dict[ResponseCode, str] = {
    ResponseCode.SUCCESS: "Operation completed successfully",
    ResponseCode.PARTIAL_SUCCESS: "Operation partially completed",
    ResponseCode.INVALID_CREDENTIALS: "Invalid API credentials",
    ResponseCode.INSUFFICIENT_BALANCE: "Insufficient balance or quota exceeded",
    ResponseCode.TEMPLATE_REQUIRED: "A template message is required outside the messaging window",
    ResponseCode.INVALID_RECIPIENT: "Invalid recipient phone number",
    ResponseCode.SERVER_ERROR: "Server error occurred",
    ResponseCode.UNSUPPORTED_OPERATION: "Operation not supported by this gateway",
    ResponseCode.UNKNOWN: "Unknown error occurred",
}


class Capability(StrEnum):
    """Optional operations a gateway may declare beyond send/get_balance."""

    __slots__ = ()

    BULK = "send_bulk"
    PERSONALIZED = "send_personalized"
    EMAIL = "send_with_email"
    CALLBACK = "configure_callback"
    TEMPLATE = "send_template"
    MEDIA = "send_media"
