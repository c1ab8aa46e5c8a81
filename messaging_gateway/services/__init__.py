"""Messaging service layer -- routing facade, OTP workflow and its stores."""

from __future__ import annotations

from messaging_gateway.services.otp import OtpService, WhatsAppOtpSender
from messaging_gateway.services.otp_manager import OtpManager
from messaging_gateway.services.otp_store import (
    InMemoryOtpStore,
    OtpStore,
    RedisOtpStore,
    create_store,
)
from messaging_gateway.services.pending import PendingBulkSms, PendingSms, PendingWhatsApp
from messaging_gateway.services.sms_manager import SmsManager

__all__ = [
    "InMemoryOtpStore",
    "OtpManager",
    "OtpService",
    "OtpStore",
    "PendingBulkSms",
    "PendingSms",
    "PendingWhatsApp",
    "RedisOtpStore",
    "SmsManager",
    "WhatsAppOtpSender",
    "create_store",
]
