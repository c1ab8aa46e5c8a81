"""Gateway capability contract.

Every gateway implements :class:`Gateway` (``send`` + ``get_balance``).
Optional operations are declared through ``capabilities`` so callers
such as :class:`~messaging_gateway.services.sms_manager.SmsManager` can
refuse an unsupported call before touching the vendor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import ClassVar, Protocol, runtime_checkable

from messaging_gateway.exceptions import MessagingError
from messaging_gateway.models.enums import Capability
from messaging_gateway.models.messages import (
    MAX_BULK_RECIPIENTS,
    BulkMessage,
    PersonalizedMessage,
    SmsMessage,
)
from messaging_gateway.models.response import BalanceInfo, Response


@runtime_checkable
class OtpSender(Protocol):
    """Anything able to deliver a single message; used by the OTP service."""

    async def send(self, message: SmsMessage) -> Response: ...


class Gateway(ABC):
    """Minimal capability set shared by all gateways."""

    capabilities: ClassVar[frozenset[Capability]] = frozenset()

    @property
    def name(self) -> str:
        return type(self).__name__

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @abstractmethod
    async def send(self, message: SmsMessage) -> Response: ...

    @abstractmethod
    async def get_balance(self) -> list[BalanceInfo]: ...


class SmsGateway(Gateway):
    """Bulk-capable SMS-style gateway."""

    capabilities: ClassVar[frozenset[Capability]] = frozenset(
        {Capability.BULK, Capability.PERSONALIZED, Capability.EMAIL, Capability.CALLBACK},
    )

    @abstractmethod
    async def send_bulk(self, message: BulkMessage) -> Response: ...

    @abstractmethod
    async def send_personalized(
        self,
        messages: Sequence[PersonalizedMessage],
        sender_id: str | None = None,
    ) -> Response: ...

    @abstractmethod
    async def send_with_email(self, message: SmsMessage, email: str, subject: str) -> Response: ...

    @abstractmethod
    async def configure_callback(self, url: str, method: str = "POST") -> Response: ...


class WhatsAppGateway(Gateway):
    """WhatsApp-style gateway: templates and media on top of fan-out sends."""

    capabilities: ClassVar[frozenset[Capability]] = frozenset(
        {Capability.BULK, Capability.PERSONALIZED, Capability.TEMPLATE, Capability.MEDIA},
    )

    @abstractmethod
    async def send_template(
        self,
        recipient: str,
        content_sid: str,
        variables: Mapping[str, str] | None = None,
    ) -> Response: ...

    @abstractmethod
    async def send_media(self, recipient: str, media_url: str, caption: str | None = None) -> Response: ...

    @abstractmethod
    async def send_bulk(self, message: BulkMessage) -> Response: ...

    @abstractmethod
    async def send_personalized(
        self,
        messages: Sequence[PersonalizedMessage],
        sender_id: str | None = None,
    ) -> Response: ...


def gateway_name(gateway: object) -> str:
    """Identity used in error messages and logs."""
    name = getattr(gateway, "name", None)
    return name if isinstance(name, str) and name else type(gateway).__name__


def gateway_supports(gateway: object, capability: Capability) -> bool:
    capabilities = getattr(gateway, "capabilities", frozenset())
    return capability in capabilities


def ensure_batch_size(count: int, what: str) -> None:
    """Fail before any vendor call when a batch exceeds the recipient cap."""
    if count > MAX_BULK_RECIPIENTS:
        raise MessagingError.send_failed(
            f"Maximum {MAX_BULK_RECIPIENTS} {what} allowed per request",
            context={"count": count, "limit": MAX_BULK_RECIPIENTS},
        )
