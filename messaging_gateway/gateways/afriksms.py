"""AfrikSMS gateway.

AfrikSMS exposes a key/value HTTP API: single sends, email copies,
balance and callback registration are GET requests with query
parameters; multi-recipient sends are multipart POSTs.  Every reply is
JSON with a numeric ``code`` that maps onto :class:`ResponseCode`.

Transport failures (connection errors after the configured retries, or
a non-2xx status) raise :class:`MessagingError` with
``reason=TRANSPORT_FAILED``.  A well-formed reply carrying an error
code is *not* an exception: it comes back as a failed
:class:`Response`.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Final

import httpx
import orjson
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from messaging_gateway.exceptions import MessagingError
from messaging_gateway.gateways.base import SmsGateway, ensure_batch_size
from messaging_gateway.models.enums import ResponseCode
from messaging_gateway.models.messages import BulkMessage, PersonalizedMessage, SmsMessage
from messaging_gateway.models.response import BalanceInfo, Response
from messaging_gateway.support.phone import PhoneFormatter

if TYPE_CHECKING:
    from messaging_gateway.config.settings import Settings

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL: Final[str] = "https://api.afriksms.com/api/web/web_v1/outbounds"

# AfrikSMS "TypeNotification" flag for callback registration.
_CALLBACK_GET: Final[int] = 2
_CALLBACK_POST: Final[int] = 1


class AfrikSmsGateway(SmsGateway):
    """SMS gateway backed by the AfrikSMS HTTP API.

    Usage::

        gateway = AfrikSmsGateway(client_id="...", api_key="...")
        response = await gateway.send(SmsMessage(recipient="90123456", content="Hello"))
    """

    def __init__(
        self,
        client_id: str | None,
        api_key: str | None,
        *,
        sender_id: str = "MyApp",
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        retry_times: int = 3,
        retry_sleep_ms: int = 100,
        phones: PhoneFormatter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not client_id:
            raise MessagingError.configuration_missing("afriksms_client_id")
        if not api_key:
            raise MessagingError.configuration_missing("afriksms_api_key")

        self._client_id = client_id
        self._api_key = api_key
        self._sender_id = sender_id
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retry_times = max(1, retry_times)
        self._retry_sleep = max(0, retry_sleep_ms) / 1000
        self._phones = phones or PhoneFormatter()
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AfrikSmsGateway:
        return cls(
            settings.afriksms_client_id,
            settings.afriksms_api_key,
            sender_id=settings.afriksms_sender_id,
            base_url=settings.afriksms_base_url,
            timeout=settings.afriksms_timeout,
            retry_times=settings.afriksms_retry_times,
            retry_sleep_ms=settings.afriksms_retry_sleep_ms,
            phones=PhoneFormatter(settings.default_country_code),
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, message: SmsMessage) -> Response:
        recipient = self._validated_recipient(message.recipient)

        reply = await self._request(
            "send",
            "GET",
            "/send",
            params={
                **self._credentials(),
                "SenderId": message.sender_id or self._sender_id,
                "Message": message.content,
                "MobileNumbers": recipient,
            },
        )
        self._log_reply("send", reply, recipient=recipient)
        return Response.from_api_response(reply)

    async def send_bulk(self, message: BulkMessage) -> Response:
        ensure_batch_size(message.count, "recipients")
        recipients = self._phones.format_many(message.recipients)

        reply = await self._request(
            "send_bulk",
            "POST",
            "/send_multisms",
            files=_multipart({
                **self._credentials(),
                "SenderId": message.sender_id or self._sender_id,
                "Message": message.content,
                "MobileNumbers": ",".join(recipients),
            }),
        )
        self._log_reply("send_bulk", reply, count=message.count)
        return Response.from_api_response(reply)

    async def send_personalized(
        self,
        messages: Sequence[PersonalizedMessage],
        sender_id: str | None = None,
    ) -> Response:
        ensure_batch_size(len(messages), "messages")
        content = [
            PersonalizedMessage(
                recipient=self._phones.format(msg.recipient),
                content=msg.content,
            ).to_payload()
            for msg in messages
        ]

        reply = await self._request(
            "send_personalized",
            "POST",
            "/send_customer_multisms",
            files=_multipart({
                **self._credentials(),
                "SenderId": sender_id or self._sender_id,
                "ContentMessage": orjson.dumps(content).decode(),
            }),
        )
        self._log_reply("send_personalized", reply, count=len(messages))
        return Response.from_api_response(reply)

    async def send_with_email(self, message: SmsMessage, email: str, subject: str) -> Response:
        recipient = self._validated_recipient(message.recipient)

        reply = await self._request(
            "send_with_email",
            "GET",
            "/send_emailsms",
            params={
                **self._credentials(),
                "SenderId": message.sender_id or self._sender_id,
                "Message": message.content,
                "MobileNumbers": recipient,
                "Email": email,
                "Subject": subject,
            },
        )
        self._log_reply("send_with_email", reply, recipient=recipient, email=email)
        return Response.from_api_response(reply)

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    async def get_balance(self) -> list[BalanceInfo]:
        """Return the per-country balances.

        Raises
        ------
        MessagingError
            ``API_ERROR`` carrying the reply's code when it is not a
            success code.
        """
        reply = await self._request("get_balance", "GET", "/solde", params=self._credentials())
        self._log_reply("get_balance", reply)

        code = ResponseCode.parse(reply.get("code", ResponseCode.UNKNOWN))
        if not code.is_success:
            raise MessagingError.api_error(code, str(reply.get("message") or "Unknown error"))

        information = reply.get("information") or []
        return [BalanceInfo.from_api(item) for item in information if isinstance(item, Mapping)]

    async def configure_callback(self, url: str, method: str = "POST") -> Response:
        notification_type = _CALLBACK_GET if method.upper() == "GET" else _CALLBACK_POST

        reply = await self._request(
            "configure_callback",
            "GET",
            "/callback_url",
            params={
                **self._credentials(),
                "notifyURL": url,
                "TypeNotification": notification_type,
            },
        )
        self._log_reply("configure_callback", reply, url=url, method=method.upper())
        return Response.from_api_response(reply)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _credentials(self) -> dict[str, str]:
        return {"ClientId": self._client_id, "ApiKey": self._api_key}

    def _validated_recipient(self, raw: str) -> str:
        recipient = self._phones.format(raw)
        if not self._phones.is_valid(recipient):
            raise MessagingError.invalid_recipient(raw)
        return recipient

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        files: Mapping[str, tuple[None, bytes]] | None = None,
    ) -> dict[str, Any]:
        """Perform one vendor call, retrying connectivity failures only.

        Retries use a fixed delay between attempts.  HTTP status errors
        are not retried.
        """
        start = time.perf_counter()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_times),
                wait=wait_fixed(self._retry_sleep),
                retry=retry_if_exception_type(httpx.TransportError),
                before_sleep=_log_retry(operation),
                reraise=True,
            ):
                with attempt:
                    async with httpx.AsyncClient(
                        base_url=self._base_url,
                        timeout=self._timeout,
                        transport=self._transport,
                    ) as client:
                        response = await client.request(method, path, params=params, files=files)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(
                "afriksms.transport_failed",
                operation=operation,
                error=str(exc),
                elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise MessagingError.transport_failed(operation, exc) from exc

        try:
            payload = response.json()
        except ValueError:
            logger.warning("afriksms.invalid_json", operation=operation, status=response.status_code)
            return {}
        return payload if isinstance(payload, dict) else {}

    @staticmethod
    def _log_reply(operation: str, reply: Mapping[str, Any], **params: Any) -> None:
        logger.info(
            f"afriksms.{operation}",
            params=params,
            response_code=reply.get("code"),
            response_message=reply.get("message"),
        )


def _multipart(fields: Mapping[str, Any]) -> dict[str, tuple[None, bytes]]:
    """Encode plain form fields as multipart parts (no filename)."""
    return {name: (None, str(value).encode()) for name, value in fields.items()}


def _log_retry(operation: str) -> Any:
    def _before_sleep(retry_state: Any) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "afriksms.retrying",
            operation=operation,
            attempt=retry_state.attempt_number,
            error=str(exc),
        )

    return _before_sleep
