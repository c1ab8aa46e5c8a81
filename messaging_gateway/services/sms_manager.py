"""Capability-checked facade over a single gateway."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from messaging_gateway.exceptions import MessagingError
from messaging_gateway.gateways.base import Gateway, gateway_name, gateway_supports
from messaging_gateway.models.enums import Capability
from messaging_gateway.models.messages import BulkMessage, PersonalizedMessage, SmsMessage
from messaging_gateway.models.response import BalanceInfo, Response
from messaging_gateway.services.pending import PendingBulkSms, PendingSms


class SmsManager:
    """Delegates to one bound gateway.

    The manager is immutable: :meth:`using` returns a new manager bound
    to another gateway, so switching channels never touches shared
    state.  Operations beyond ``send``/``get_balance`` are refused with
    ``UNSUPPORTED_OPERATION`` when the gateway does not declare them.
    """

    __slots__ = ("_gateway",)

    def __init__(self, gateway: Gateway) -> None:
        self._gateway = gateway

    @property
    def gateway(self) -> Gateway:
        return self._gateway

    def using(self, gateway: Gateway) -> SmsManager:
        return SmsManager(gateway)

    # -- Minimal capability set ------------------------------------------------

    async def send(self, message: SmsMessage) -> Response:
        return await self._gateway.send(message)

    async def get_balance(self) -> list[BalanceInfo]:
        return await self._gateway.get_balance()

    # -- Extended capabilities -------------------------------------------------

    async def send_bulk(self, message: BulkMessage) -> Response:
        return await self._require(Capability.BULK).send_bulk(message)

    async def send_personalized(
        self,
        messages: Sequence[PersonalizedMessage],
        sender_id: str | None = None,
    ) -> Response:
        return await self._require(Capability.PERSONALIZED).send_personalized(messages, sender_id)

    async def send_with_email(self, message: SmsMessage, email: str, subject: str) -> Response:
        return await self._require(Capability.EMAIL).send_with_email(message, email, subject)

    async def configure_callback(self, url: str, method: str = "POST") -> Response:
        return await self._require(Capability.CALLBACK).configure_callback(url, method)

    async def send_template(
        self,
        recipient: str,
        content_sid: str,
        variables: Mapping[str, str] | None = None,
    ) -> Response:
        return await self._require(Capability.TEMPLATE).send_template(recipient, content_sid, variables)

    async def send_media(self, recipient: str, media_url: str, caption: str | None = None) -> Response:
        return await self._require(Capability.MEDIA).send_media(recipient, media_url, caption)

    # -- Fluent builders -------------------------------------------------------

    def to(self, phone: str) -> PendingSms:
        return PendingSms(self, phone)

    def to_many(self, phones: Iterable[str]) -> PendingBulkSms:
        return PendingBulkSms(self, phones)

    def _require(self, capability: Capability) -> Any:
        if not gateway_supports(self._gateway, capability):
            raise MessagingError.unsupported_operation(capability.value, gateway_name(self._gateway))
        return self._gateway

    def __repr__(self) -> str:
        return f"SmsManager(gateway={gateway_name(self._gateway)})"
