"""Fluent builders for composing a send before issuing it.

Example::

    await messaging.sms().to("90123456").from_sender("Shop").send("Hello")
    await messaging.whatsapp_to("90123456").template("HX123", {"1": "Ama"}).send()
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING

from messaging_gateway.models.messages import BulkMessage, PersonalizedMessage, SmsMessage
from messaging_gateway.models.response import Response

if TYPE_CHECKING:
    from messaging_gateway.gateways.base import WhatsAppGateway
    from messaging_gateway.services.sms_manager import SmsManager


class PendingSms:
    def __init__(self, manager: SmsManager, recipient: str) -> None:
        self._manager = manager
        self._recipient = recipient
        self._sender_id: str | None = None
        self._email: str | None = None
        self._email_subject: str | None = None

    def from_sender(self, sender_id: str) -> PendingSms:
        self._sender_id = sender_id
        return self

    def with_email(self, email: str, subject: str) -> PendingSms:
        self._email = email
        self._email_subject = subject
        return self

    async def send(self, content: str) -> Response:
        message = SmsMessage(recipient=self._recipient, content=content, sender_id=self._sender_id)
        if self._email is not None and self._email_subject is not None:
            return await self._manager.send_with_email(message, self._email, self._email_subject)
        return await self._manager.send(message)


class PendingBulkSms:
    def __init__(self, manager: SmsManager, recipients: Iterable[str]) -> None:
        self._manager = manager
        self._recipients = tuple(recipients)
        self._sender_id: str | None = None

    def from_sender(self, sender_id: str) -> PendingBulkSms:
        self._sender_id = sender_id
        return self

    async def send(self, content: str) -> Response:
        message = BulkMessage(recipients=self._recipients, content=content, sender_id=self._sender_id)
        return await self._manager.send_bulk(message)

    async def send_personalized(self, content_for: Callable[[str], str]) -> Response:
        """Send ``content_for(recipient)`` to each recipient."""
        messages = [
            PersonalizedMessage(recipient=recipient, content=content_for(recipient))
            for recipient in self._recipients
        ]
        return await self._manager.send_personalized(messages, self._sender_id)


class PendingWhatsApp:
    def __init__(self, gateway: WhatsAppGateway, recipient: str) -> None:
        self._gateway = gateway
        self._recipient = recipient
        self._template_sid: str | None = None
        self._template_variables: dict[str, str] = {}
        self._media_url: str | None = None

    def template(self, template_sid: str, variables: Mapping[str, str] | None = None) -> PendingWhatsApp:
        self._template_sid = template_sid
        self._template_variables = dict(variables or {})
        return self

    def media(self, url: str) -> PendingWhatsApp:
        self._media_url = url
        return self

    async def send(self, content: str | None = None) -> Response:
        if self._template_sid is not None:
            return await self._gateway.send_template(
                self._recipient,
                self._template_sid,
                self._template_variables,
            )

        if self._media_url is not None:
            return await self._gateway.send_media(self._recipient, self._media_url, content)

        if content is None:
            raise ValueError("Message content is required")

        return await self._gateway.send(SmsMessage(recipient=self._recipient, content=content))
