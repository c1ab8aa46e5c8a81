"""Per-channel OTP routing.

One :class:`OtpService` per channel name, built on first use from the
gateway that :class:`~messaging_gateway.messaging.Messaging` resolves
for that name, then reused.  All services share one store.
"""

from __future__ import annotations

import random
import threading
from typing import TYPE_CHECKING

import structlog

from messaging_gateway.exceptions import MessagingError
from messaging_gateway.gateways.base import gateway_supports
from messaging_gateway.models.enums import Capability, Channel
from messaging_gateway.services.otp import DEFAULT_PURPOSE, OtpService, WhatsAppOtpSender
from messaging_gateway.services.sms_manager import SmsManager

if TYPE_CHECKING:
    from messaging_gateway.config.settings import Settings
    from messaging_gateway.gateways.base import Gateway
    from messaging_gateway.messaging import Messaging
    from messaging_gateway.models.response import OtpResult
    from messaging_gateway.services.otp_store import OtpStore

logger = structlog.get_logger(__name__)


class OtpManager:
    """Lazily builds and caches one OTP service per channel."""

    def __init__(
        self,
        messaging: Messaging,
        store: OtpStore,
        settings: Settings,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._messaging = messaging
        self._store = store
        self._settings = settings
        self._rng = rng
        self._services: dict[str, OtpService] = {}
        self._lock = threading.Lock()

    @property
    def store(self) -> OtpStore:
        return self._store

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def channel(self, name: str | None = None) -> OtpService:
        name = name or self._messaging.default_channel

        service = self._services.get(name)
        if service is not None:
            return service

        with self._lock:
            service = self._services.get(name)
            if service is None:
                service = self._build(name)
                self._services[name] = service
        return service

    def sms(self) -> OtpService:
        return self.channel(Channel.SMS.value)

    def whatsapp(self) -> OtpService:
        return self.channel(Channel.WHATSAPP.value)

    def extend(self, name: str, gateway: Gateway) -> OtpManager:
        """Route *name* to a custom gateway, dropping any cached service."""
        self._messaging.extend(name, gateway)
        self._evict(name)
        return self

    def _evict(self, name: str) -> None:
        with self._lock:
            self._services.pop(name, None)

    def _build(self, name: str) -> OtpService:
        gateway = self._messaging.gateway(name)

        if gateway_supports(gateway, Capability.TEMPLATE):
            template_sid = self._settings.otp_whatsapp_template_sid
            if not template_sid:
                raise MessagingError.configuration_missing("otp_whatsapp_template_sid")
            sender = WhatsAppOtpSender(gateway, template_sid, self._settings.otp_whatsapp_code_variable)  # type: ignore[arg-type]
            channel = Channel.WHATSAPP
        else:
            sender = SmsManager(gateway)
            channel = Channel.SMS

        logger.debug("otp.service_built", channel_name=name, channel=channel.value)
        return OtpService.from_settings(sender, self._store, self._settings, channel=channel, rng=self._rng)

    # ------------------------------------------------------------------
    # Default-channel shortcuts
    # ------------------------------------------------------------------

    async def send(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> OtpResult:
        return await self.channel().send(phone, purpose)

    async def verify(self, phone: str, code: str, purpose: str = DEFAULT_PURPOSE) -> bool:
        return await self.channel().verify(phone, code, purpose)

    async def resend(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> OtpResult:
        return await self.channel().resend(phone, purpose)

    async def is_valid(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> bool:
        return await self.channel().is_valid(phone, purpose)

    async def remaining_attempts(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> int:
        return await self.channel().remaining_attempts(phone, purpose)

    async def invalidate(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> None:
        await self.channel().invalidate(phone, purpose)
