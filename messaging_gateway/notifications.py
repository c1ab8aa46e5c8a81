"""Notification channels and the recipient mixin.

A *notification* is any object exposing ``to_sms(notifiable)`` and/or
``to_whatsapp(notifiable)``; a *notifiable* is whatever it is addressed
to.  The channels resolve the recipient from the notifiable, build the
message and hand it to the matching gateway.  A notification with no
payload for a channel is skipped and ``send`` returns ``None``.

Recipient resolution order:

- SMS: ``route_notification_for_sms()``, then ``phone``, then
  ``phone_number``.
- WhatsApp: ``route_notification_for_whatsapp()``, then the SMS route,
  then ``phone``, then ``phone_number``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from messaging_gateway.models.messages import SmsMessage
from messaging_gateway.services.otp import DEFAULT_PURPOSE

if TYPE_CHECKING:
    from messaging_gateway.gateways.base import WhatsAppGateway
    from messaging_gateway.messaging import Messaging
    from messaging_gateway.models.response import OtpResult, Response
    from messaging_gateway.services.sms_manager import SmsManager

logger = structlog.get_logger(__name__)


def _attribute_phone(notifiable: object) -> str:
    phone = getattr(notifiable, "phone", None) or getattr(notifiable, "phone_number", None)
    return str(phone) if phone else ""


def _route(notifiable: object, *methods: str) -> str:
    for method in methods:
        route = getattr(notifiable, method, None)
        if callable(route):
            return str(route())
    return _attribute_phone(notifiable)


def _payload(notification: object, method: str, notifiable: object) -> Any:
    build = getattr(notification, method, None)
    if not callable(build):
        return None
    return build(notifiable)


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


class SmsChannel:
    """Delivers a notification's ``to_sms`` payload through an :class:`SmsManager`."""

    def __init__(self, manager: SmsManager) -> None:
        self._manager = manager

    async def send(self, notifiable: object, notification: object) -> Response | None:
        message = _payload(notification, "to_sms", notifiable)
        if message is None:
            logger.debug("notification.skipped", channel="sms", notification=type(notification).__name__)
            return None

        if isinstance(message, str):
            message = SmsMessage(recipient=self._recipient(notifiable), content=message)
        elif not message.recipient:
            message = message.model_copy(update={"recipient": self._recipient(notifiable)})

        return await self._manager.send(message)

    @staticmethod
    def _recipient(notifiable: object) -> str:
        return _route(notifiable, "route_notification_for_sms")


class WhatsAppChannel:
    """Delivers ``to_whatsapp`` payloads, falling back to ``to_sms``.

    A ``to_whatsapp`` payload may be a string, a mapping or any object
    with a ``content`` attribute.  Mappings carrying ``template`` (with
    optional ``variables``) or ``media`` (with optional ``caption``) are
    sent as template and media messages respectively.
    """

    def __init__(self, gateway: WhatsAppGateway) -> None:
        self._gateway = gateway

    async def send(self, notifiable: object, notification: object) -> Response | None:
        if callable(getattr(notification, "to_whatsapp", None)):
            return await self._send_whatsapp(notifiable, notification)
        if callable(getattr(notification, "to_sms", None)):
            return await self._send_sms(notifiable, notification)

        logger.debug("notification.skipped", channel="whatsapp", notification=type(notification).__name__)
        return None

    async def _send_whatsapp(self, notifiable: object, notification: object) -> Response | None:
        message = _payload(notification, "to_whatsapp", notifiable)
        if message is None:
            return None

        recipient = self._recipient(notifiable)
        if isinstance(message, Mapping):
            if message.get("template"):
                return await self._gateway.send_template(
                    recipient,
                    str(message["template"]),
                    message.get("variables") or {},
                )
            if message.get("media"):
                caption = message.get("caption")
                return await self._gateway.send_media(
                    recipient,
                    str(message["media"]),
                    str(caption) if caption is not None else None,
                )
            content = str(message.get("content") or "")
        elif isinstance(message, str):
            content = message
        else:
            content = str(getattr(message, "content", "") or "")

        return await self._gateway.send(SmsMessage(recipient=recipient, content=content))

    async def _send_sms(self, notifiable: object, notification: object) -> Response | None:
        message = _payload(notification, "to_sms", notifiable)
        if message is None:
            return None

        if isinstance(message, str):
            message = SmsMessage(recipient=self._recipient(notifiable), content=message)
        return await self._gateway.send(message)

    @staticmethod
    def _recipient(notifiable: object) -> str:
        return _route(notifiable, "route_notification_for_whatsapp", "route_notification_for_sms")


# ---------------------------------------------------------------------------
# Recipient mixin
# ---------------------------------------------------------------------------


class HasMessaging:
    """Mixin for domain objects that carry a ``phone`` (and optionally ``whatsapp``).

    Every helper takes the :class:`Messaging` instance to send through.
    """

    phone: str | None = None
    phone_number: str | None = None
    whatsapp: str | None = None

    def route_notification_for_sms(self) -> str:
        return self.phone or self.phone_number or ""

    def route_notification_for_whatsapp(self) -> str:
        return self.whatsapp or self.phone or self.phone_number or ""

    async def send_sms(self, messaging: Messaging, content: str, sender_id: str | None = None) -> Response:
        message = SmsMessage(recipient=self.route_notification_for_sms(), content=content, sender_id=sender_id)
        return await messaging.sms().send(message)

    async def send_whatsapp(self, messaging: Messaging, content: str) -> Response:
        return await messaging.whatsapp_to(self.route_notification_for_whatsapp()).send(content)

    async def send_whatsapp_template(
        self,
        messaging: Messaging,
        template_sid: str,
        variables: Mapping[str, str] | None = None,
    ) -> Response:
        pending = messaging.whatsapp_to(self.route_notification_for_whatsapp())
        return await pending.template(template_sid, variables).send()

    async def send_whatsapp_media(
        self,
        messaging: Messaging,
        media_url: str,
        caption: str | None = None,
    ) -> Response:
        pending = messaging.whatsapp_to(self.route_notification_for_whatsapp())
        return await pending.media(media_url).send(caption)

    async def send_message(self, messaging: Messaging, content: str, channel: str = "sms") -> Response:
        phone = (
            self.route_notification_for_whatsapp()
            if channel == "whatsapp"
            else self.route_notification_for_sms()
        )
        return await messaging.channel(channel).to(phone).send(content)

    # -- OTP ---------------------------------------------------------------

    async def send_otp(self, messaging: Messaging, purpose: str = DEFAULT_PURPOSE) -> OtpResult:
        return await messaging.otp.send(self.route_notification_for_sms(), purpose)

    async def verify_otp(self, messaging: Messaging, code: str, purpose: str = DEFAULT_PURPOSE) -> bool:
        return await messaging.otp.verify(self.route_notification_for_sms(), code, purpose)

    async def has_valid_otp(self, messaging: Messaging, purpose: str = DEFAULT_PURPOSE) -> bool:
        return await messaging.otp.is_valid(self.route_notification_for_sms(), purpose)

    async def otp_remaining_attempts(self, messaging: Messaging, purpose: str = DEFAULT_PURPOSE) -> int:
        return await messaging.otp.remaining_attempts(self.route_notification_for_sms(), purpose)

    async def invalidate_otp(self, messaging: Messaging, purpose: str = DEFAULT_PURPOSE) -> None:
        await messaging.otp.invalidate(self.route_notification_for_sms(), purpose)
