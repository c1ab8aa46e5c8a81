from messaging_gateway.models.enums import Capability, Channel, DeliveryStatus, ResponseCode
from messaging_gateway.models.messages import (
    MAX_BULK_RECIPIENTS,
    BulkMessage,
    PersonalizedMessage,
    SmsMessage,
)
from messaging_gateway.models.response import BalanceInfo, DeliveryReport, OtpResult, Response

__all__ = [
    "BalanceInfo",
    "BulkMessage",
    "Capability",
    "Channel",
    "DeliveryReport",
    "DeliveryStatus",
    "MAX_BULK_RECIPIENTS",
    "OtpResult",
    "PersonalizedMessage",
    "Response",
    "ResponseCode",
    "SmsMessage",
]
