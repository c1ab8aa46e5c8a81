"""Twilio WhatsApp gateway.

Talks to Twilio through its Python SDK using the async HTTP client.
Unlike the SMS gateway, no vendor exception ever leaves this class:
every SDK failure is logged and turned into a failed :class:`Response`
whose ``data`` keeps the raw Twilio error code and message.

Twilio has no native bulk endpoint, so bulk and personalized sends are
a sequential loop of single sends with an itemised result list.

IMPORTANT: WhatsApp only accepts free-form text inside the 24-hour
session window.  Outside it Twilio answers with error 63016, which maps
to ``TEMPLATE_REQUIRED``; callers must fall back to
:meth:`TwilioWhatsAppGateway.send_template`.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Final

import orjson
import structlog
from twilio.base.exceptions import TwilioException

from messaging_gateway.exceptions import MessagingError
from messaging_gateway.gateways.base import WhatsAppGateway, ensure_batch_size
from messaging_gateway.models.enums import ResponseCode
from messaging_gateway.models.messages import BulkMessage, PersonalizedMessage, SmsMessage
from messaging_gateway.models.response import BalanceInfo, Response
from messaging_gateway.support.phone import PhoneFormatter

if TYPE_CHECKING:
    from messaging_gateway.config.settings import Settings

logger = structlog.get_logger(__name__)

# Twilio error code -> domain code.
_ERROR_CODES: Final[dict[int, ResponseCode]] = {
    20003: ResponseCode.INVALID_CREDENTIALS,  # authentication failed
    401: ResponseCode.INVALID_CREDENTIALS,
    21211: ResponseCode.INVALID_RECIPIENT,  # invalid 'To' number
    21614: ResponseCode.INVALID_RECIPIENT,  # 'To' is not a mobile number
    21608: ResponseCode.INSUFFICIENT_BALANCE,  # unverified number on trial account
    21610: ResponseCode.INSUFFICIENT_BALANCE,  # recipient unsubscribed
    21612: ResponseCode.INSUFFICIENT_BALANCE,  # route not reachable / suspended
    63016: ResponseCode.TEMPLATE_REQUIRED,  # outside the 24h freeform window
}


def map_twilio_error(error_code: int | None) -> ResponseCode:
    if error_code is None:
        return ResponseCode.UNKNOWN
    return _ERROR_CODES.get(error_code, ResponseCode.UNKNOWN)


class TwilioWhatsAppGateway(WhatsAppGateway):
    """WhatsApp gateway backed by the Twilio Messages API.

    Pass an already-built ``client`` to share a Twilio client or to
    substitute one in tests; otherwise one is created from *sid* and
    *auth_token* with the SDK's async HTTP client.
    """

    def __init__(
        self,
        sid: str | None = None,
        auth_token: str | None = None,
        whatsapp_from: str | None = None,
        *,
        timeout: float = 30.0,
        phones: PhoneFormatter | None = None,
        client: Any | None = None,
    ) -> None:
        if client is None:
            if not sid:
                raise MessagingError.configuration_missing("twilio_sid")
            if not auth_token:
                raise MessagingError.configuration_missing("twilio_auth_token")
        if not whatsapp_from:
            raise MessagingError.configuration_missing("twilio_whatsapp_from")

        self._from = whatsapp_from
        self._phones = phones or PhoneFormatter()
        self._client = client if client is not None else _build_client(sid, auth_token, timeout)

    @classmethod
    def from_settings(cls, settings: Settings, *, client: Any | None = None) -> TwilioWhatsAppGateway:
        return cls(
            settings.twilio_sid,
            settings.twilio_auth_token,
            settings.twilio_whatsapp_from,
            timeout=settings.twilio_timeout,
            phones=PhoneFormatter(settings.default_country_code),
            client=client,
        )

    # ------------------------------------------------------------------
    # Single sends
    # ------------------------------------------------------------------

    async def send(self, message: SmsMessage) -> Response:
        to = self._phones.format_for_whatsapp(message.recipient)
        return await self._create("send", to, {"body": message.content})

    async def send_template(
        self,
        recipient: str,
        content_sid: str,
        variables: Mapping[str, str] | None = None,
    ) -> Response:
        to = self._phones.format_for_whatsapp(recipient)
        options: dict[str, Any] = {"content_sid": content_sid}
        if variables:
            options["content_variables"] = orjson.dumps(dict(variables)).decode()
        return await self._create("send_template", to, options, template=content_sid)

    async def send_media(self, recipient: str, media_url: str, caption: str | None = None) -> Response:
        to = self._phones.format_for_whatsapp(recipient)
        options: dict[str, Any] = {"media_url": [media_url]}
        if caption is not None:
            options["body"] = caption
        return await self._create("send_media", to, options, media=media_url)

    # ------------------------------------------------------------------
    # Fan-out sends
    # ------------------------------------------------------------------

    async def send_bulk(self, message: BulkMessage) -> Response:
        ensure_batch_size(message.count, "recipients")
        singles = [
            SmsMessage(recipient=recipient, content=message.content, sender_id=message.sender_id)
            for recipient in message.recipients
        ]
        return await self._send_each("send_bulk", singles)

    async def send_personalized(
        self,
        messages: Sequence[PersonalizedMessage],
        sender_id: str | None = None,
    ) -> Response:
        ensure_batch_size(len(messages), "messages")
        singles = [
            SmsMessage(recipient=msg.recipient, content=msg.content, sender_id=sender_id)
            for msg in messages
        ]
        return await self._send_each("send_personalized", singles)

    async def _send_each(self, operation: str, messages: Sequence[SmsMessage]) -> Response:
        """Send one message at a time; any failure taints the batch."""
        results: list[dict[str, Any]] = []
        failure_codes: set[ResponseCode] = set()

        for message in messages:
            result = await self.send(message)
            results.append({
                "phone": message.recipient,
                "success": result.success,
                "resourceId": result.resource_id,
            })
            if result.failed:
                failure_codes.add(result.code)

        sent = len(results) - sum(1 for r in results if not r["success"])
        failed = len(results) - sent

        if failed == 0:
            code, summary = ResponseCode.SUCCESS, "All messages sent"
        elif sent > 0:
            code, summary = ResponseCode.PARTIAL_SUCCESS, "Some messages failed"
        else:
            code = failure_codes.pop() if len(failure_codes) == 1 else ResponseCode.UNKNOWN
            summary = "All messages failed"

        logger.info(f"twilio.{operation}", total=len(results), sent=sent, failed=failed)
        return Response(
            code=code,
            message=summary,
            data={"results": results, "sent": sent, "failed": failed},
        )

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def get_balance(self) -> list[BalanceInfo]:
        """Best-effort balance lookup; any failure yields an empty list."""
        try:
            balance = await self._client.balance.fetch_async()
            amount = math.floor(float(getattr(balance, "balance", None) or 0))
        except Exception as exc:
            logger.warning("twilio.balance_unavailable", error=str(exc))
            return []
        return [BalanceInfo(country="Twilio Account", balance=amount)]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _create(self, operation: str, to: str, options: dict[str, Any], **params: Any) -> Response:
        log = logger.bind(operation=operation, to=to, **params)
        try:
            twilio_message = await self._client.messages.create_async(
                to=to,
                from_=self._from,
                **options,
            )
        except TwilioException as exc:
            error_code = getattr(exc, "code", None)
            error_message = getattr(exc, "msg", None) or str(exc)
            log.error("twilio.send_failed", error_code=error_code, error_message=error_message)
            return Response(
                code=map_twilio_error(error_code),
                message=error_message,
                data={"error_code": error_code, "error_message": error_message},
            )
        except Exception as exc:
            log.error("twilio.send_exception", error=str(exc), exc_info=True)
            return Response(
                code=ResponseCode.UNKNOWN,
                message=str(exc),
                data={"error_code": None, "error_message": str(exc)},
            )

        log.info("twilio.sent", sid=twilio_message.sid, status=twilio_message.status)
        return _build_response(twilio_message)


def _build_response(twilio_message: Any) -> Response:
    date_created = getattr(twilio_message, "date_created", None)
    return Response(
        code=ResponseCode.SUCCESS,
        message="Message sent successfully",
        resource_id=twilio_message.sid,
        data={
            "sid": twilio_message.sid,
            "status": twilio_message.status,
            "dateCreated": date_created.isoformat() if date_created is not None else None,
            "direction": getattr(twilio_message, "direction", None),
        },
    )


def _build_client(sid: str | None, auth_token: str | None, timeout: float) -> Any:
    from twilio.http.async_http_client import AsyncTwilioHttpClient
    from twilio.rest import Client

    # Without pooling the aiohttp session is opened per request, so no
    # running event loop is needed here.
    http_client = AsyncTwilioHttpClient(pool_connections=False, timeout=timeout)
    return Client(sid, auth_token, http_client=http_client)


