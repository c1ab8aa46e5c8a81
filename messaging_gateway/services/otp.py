"""One-time password issuance and verification.

Lifecycle of one ``(purpose, phone)`` key::

    absent --send--> pending(attempts=0) --verify ok-------> absent (deleted)
                         |              --attempts == max--> absent (deleted)
                         |              --TTL elapses------> absent (expired)
                         +--wrong code--> pending(attempts+1, TTL reset)

Nothing is cached locally between calls: every read and write goes
through the :class:`~messaging_gateway.services.otp_store.OtpStore` so
several processes can verify against the same record.  The attempt
counter is bumped with the store's atomic increment and a successful
match only counts for the caller whose delete actually removed the
record.
"""

from __future__ import annotations

import hmac
import random
import secrets
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Final

import structlog

from messaging_gateway.models.enums import Channel
from messaging_gateway.models.messages import SmsMessage
from messaging_gateway.models.response import OtpResult, Response

if TYPE_CHECKING:
    from messaging_gateway.config.settings import Settings
    from messaging_gateway.gateways.base import OtpSender, WhatsAppGateway
    from messaging_gateway.services.otp_store import OtpStore

logger = structlog.get_logger(__name__)

DEFAULT_PURPOSE: Final[str] = "verification"
DEFAULT_MESSAGE: Final[str] = "Your verification code is: {code}. Valid for {expiry} minutes."


class WhatsAppOtpSender:
    """Adapts a WhatsApp gateway to the OTP sender protocol.

    The message content is the bare code; the approved template renders
    the final text on Twilio's side.
    """

    __slots__ = ("_code_variable", "_gateway", "_template_sid")

    def __init__(self, gateway: WhatsAppGateway, template_sid: str, code_variable: str = "1") -> None:
        self._gateway = gateway
        self._template_sid = template_sid
        self._code_variable = code_variable

    async def send(self, message: SmsMessage) -> Response:
        return await self._gateway.send_template(
            message.recipient,
            self._template_sid,
            {self._code_variable: message.content},
        )


class OtpService:
    """Issues and verifies codes for one sender/channel.

    Parameters
    ----------
    sender:
        Anything with ``async send(SmsMessage) -> Response``.
    store:
        Shared expiring store holding the records.
    channel:
        ``WHATSAPP`` sends the bare code (template flow); ``SMS`` sends
        *message_template* with ``{code}`` and ``{expiry}`` filled in.
    rng:
        Random source for code generation; defaults to the OS CSPRNG.
    """

    __slots__ = (
        "_channel",
        "_expiry_minutes",
        "_length",
        "_max_attempts",
        "_message_template",
        "_rng",
        "_sender",
        "_store",
    )

    def __init__(
        self,
        sender: OtpSender,
        store: OtpStore,
        *,
        length: int = 6,
        expiry_minutes: int = 10,
        max_attempts: int = 3,
        message_template: str = DEFAULT_MESSAGE,
        channel: Channel = Channel.SMS,
        rng: random.Random | None = None,
    ) -> None:
        if length < 1:
            raise ValueError("OTP length must be at least 1")
        if max_attempts < 1:
            raise ValueError("OTP max_attempts must be at least 1")

        self._sender = sender
        self._store = store
        self._length = length
        self._expiry_minutes = expiry_minutes
        self._max_attempts = max_attempts
        self._message_template = message_template
        self._channel = channel
        self._rng = rng or secrets.SystemRandom()

    @classmethod
    def from_settings(
        cls,
        sender: OtpSender,
        store: OtpStore,
        settings: Settings,
        *,
        channel: Channel = Channel.SMS,
        rng: random.Random | None = None,
    ) -> OtpService:
        return cls(
            sender,
            store,
            length=settings.otp_length,
            expiry_minutes=settings.otp_expiry_minutes,
            max_attempts=settings.otp_max_attempts,
            message_template=settings.otp_message,
            channel=channel,
            rng=rng,
        )

    @property
    def channel(self) -> Channel:
        return self._channel

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def _ttl_seconds(self) -> int:
        return self._expiry_minutes * 60

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def send(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> OtpResult:
        code = self._generate_code()
        now = datetime.now(UTC)
        key = self._key(phone, purpose)
        log = logger.bind(purpose=purpose, channel=self._channel.value)

        await self._store.put(
            key,
            {"code": code, "attempts": 0, "created_at": now.isoformat()},
            self._ttl_seconds,
        )

        content = code if self._channel.is_whatsapp else self._build_message(code)
        try:
            response = await self._sender.send(SmsMessage(recipient=phone, content=content))
        except Exception as exc:
            # the caller never learns the code, so the record must not outlive the failure
            await self._store.forget(key)
            log.warning("otp.send_raised", error=type(exc).__name__)
            raise

        if response.success:
            log.info("otp.sent", resource_id=response.resource_id)
        else:
            log.warning("otp.send_failed", response_code=response.code.name, response_message=response.message)

        return OtpResult(
            code=code if response.success else None,
            expires_at=now + timedelta(minutes=self._expiry_minutes),
            response=response,
        )

    async def verify(self, phone: str, code: str, purpose: str = DEFAULT_PURPOSE) -> bool:
        key = self._key(phone, purpose)
        log = logger.bind(purpose=purpose, channel=self._channel.value)

        record = await self._store.get(key)
        if record is None:
            return False

        if _attempts(record) >= self._max_attempts:
            await self._store.forget(key)
            log.info("otp.exhausted")
            return False

        if not hmac.compare_digest(record.get("code", "").encode(), code.encode()):
            attempts = await self._store.increment(key, "attempts", self._ttl_seconds)
            if attempts is None:
                return False
            if attempts >= self._max_attempts:
                await self._store.forget(key)
                log.info("otp.exhausted", attempts=attempts)
            else:
                log.info("otp.mismatch", attempts=attempts)
            return False

        verified = await self._store.forget(key)
        if verified:
            log.info("otp.verified")
        return verified

    async def resend(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> OtpResult:
        await self._store.forget(self._key(phone, purpose))
        return await self.send(phone, purpose)

    async def is_valid(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> bool:
        return await self._store.has(self._key(phone, purpose))

    async def remaining_attempts(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> int:
        record = await self._store.get(self._key(phone, purpose))
        if record is None:
            return 0
        return max(0, self._max_attempts - _attempts(record))

    async def invalidate(self, phone: str, purpose: str = DEFAULT_PURPOSE) -> None:
        await self._store.forget(self._key(phone, purpose))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _generate_code(self) -> str:
        return str(self._rng.randrange(10**self._length)).zfill(self._length)

    @staticmethod
    def _key(phone: str, purpose: str) -> str:
        return f"otp:{purpose}:{phone}"

    def _build_message(self, code: str) -> str:
        return self._message_template.replace("{code}", code).replace("{expiry}", str(self._expiry_minutes))


def _attempts(record: Mapping[str, str]) -> int:
    try:
        return int(record.get("attempts", "0"))
    except ValueError:
        return 0
