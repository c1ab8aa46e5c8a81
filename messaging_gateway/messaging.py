"""Top-level entry point: resolves gateways by channel name.

Usage::

    from messaging_gateway.config.settings import settings
    from messaging_gateway.messaging import Messaging

    messaging = Messaging(settings)
    await messaging.sms().send(SmsMessage(recipient="90123456", content="Hello"))
    await messaging.whatsapp_to("90123456").template("HX123", {"1": "Ama"}).send()
    result = await messaging.otp.send("90123456")

Gateways are built on first use and cached per channel name.  Built-in
names are ``sms``/``afriksms`` (AfrikSMS) and ``whatsapp``/``twilio``
(Twilio WhatsApp); :meth:`Messaging.extend` registers any other gateway
under any name, overriding the built-ins.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

import structlog

from messaging_gateway.exceptions import MessagingError
from messaging_gateway.gateways.afriksms import AfrikSmsGateway
from messaging_gateway.gateways.base import Gateway, WhatsAppGateway, gateway_name
from messaging_gateway.gateways.twilio_whatsapp import TwilioWhatsAppGateway
from messaging_gateway.models.enums import Capability, Channel
from messaging_gateway.services.otp_manager import OtpManager
from messaging_gateway.services.otp_store import create_store
from messaging_gateway.services.pending import PendingSms, PendingWhatsApp
from messaging_gateway.services.sms_manager import SmsManager

if TYPE_CHECKING:
    from messaging_gateway.config.settings import Settings
    from messaging_gateway.services.otp_store import OtpStore

logger = structlog.get_logger(__name__)

GatewayFactory = Callable[["Settings"], Gateway]

_BUILTIN_FACTORIES: dict[str, GatewayFactory] = {
    "sms": AfrikSmsGateway.from_settings,
    "afriksms": AfrikSmsGateway.from_settings,
    "whatsapp": TwilioWhatsAppGateway.from_settings,
    "twilio": TwilioWhatsAppGateway.from_settings,
}


class Messaging:
    """Channel router over the configured gateways.

    Parameters
    ----------
    settings:
        Configuration; defaults to the process-wide ``settings``.
    store:
        OTP store shared by every channel.  When omitted it is built
        from ``settings.redis_url`` the first time :attr:`otp` is used.
    factories:
        Extra or replacement gateway factories keyed by channel name.
    rng:
        Random source handed to the OTP services.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: OtpStore | None = None,
        factories: Mapping[str, GatewayFactory] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if settings is None:
            from messaging_gateway.config.settings import settings as default_settings

            settings = default_settings

        self._settings = settings
        self._store = store
        self._rng = rng
        self._factories: dict[str, GatewayFactory] = {**_BUILTIN_FACTORIES, **(factories or {})}
        self._gateways: dict[str, Gateway] = {}
        self._otp: OtpManager | None = None
        self._lock = threading.Lock()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def default_channel(self) -> str:
        return self._settings.default_channel

    # ------------------------------------------------------------------
    # Gateway resolution
    # ------------------------------------------------------------------

    def gateway(self, name: str | None = None) -> Gateway:
        """Return the gateway for *name*, building it on first use.

        Raises
        ------
        MessagingError
            ``UNKNOWN_CHANNEL`` when no gateway or factory is registered
            under *name*; ``CONFIGURATION_MISSING`` when the built-in
            gateway lacks a credential.
        """
        name = name or self.default_channel

        gateway = self._gateways.get(name)
        if gateway is not None:
            return gateway

        with self._lock:
            gateway = self._gateways.get(name)
            if gateway is None:
                factory = self._factories.get(name)
                if factory is None:
                    raise MessagingError.unknown_channel(name)
                gateway = factory(self._settings)
                self._gateways[name] = gateway
                logger.info("messaging.gateway_resolved", channel_name=name, gateway=gateway_name(gateway))
        return gateway

    def extend(self, name: str, gateway: Gateway) -> Messaging:
        """Register *gateway* under *name*, replacing any previous one.

        An OTP service already built for *name* is dropped so the next
        ``otp.channel(name)`` sends through *gateway*.
        """
        with self._lock:
            self._gateways[name] = gateway
            otp = self._otp
        if otp is not None:
            otp._evict(name)
        logger.info("messaging.gateway_extended", channel_name=name, gateway=gateway_name(gateway))
        return self

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def channel(self, name: str | None = None) -> SmsManager:
        return SmsManager(self.gateway(name))

    def sms(self) -> SmsManager:
        return self.channel(Channel.SMS.value)

    def whatsapp(self) -> WhatsAppGateway:
        gateway = self.gateway(Channel.WHATSAPP.value)
        if not isinstance(gateway, WhatsAppGateway):
            raise MessagingError.unsupported_operation(Capability.TEMPLATE.value, gateway_name(gateway))
        return gateway

    def sms_to(self, phone: str) -> PendingSms:
        return self.sms().to(phone)

    def whatsapp_to(self, phone: str) -> PendingWhatsApp:
        return PendingWhatsApp(self.whatsapp(), phone)

    # ------------------------------------------------------------------
    # OTP
    # ------------------------------------------------------------------

    @property
    def otp(self) -> OtpManager:
        if self._otp is not None:
            return self._otp

        with self._lock:
            if self._otp is None:
                if self._store is None:
                    self._store = create_store(
                        self._settings.redis_url,
                        namespace=self._settings.otp_store_namespace,
                    )
                self._otp = OtpManager(self, self._store, self._settings, rng=self._rng)
        return self._otp

    def __repr__(self) -> str:
        return f"Messaging(default_channel={self.default_channel!r}, resolved={sorted(self._gateways)})"
