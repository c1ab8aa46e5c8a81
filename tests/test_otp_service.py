"""Tests for the OTP lifecycle: issue, verify, exhaust, resend, invalidate."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Mapping

import httpx
import pytest
from structlog.testing import capture_logs

from messaging_gateway.config.settings import Settings
from messaging_gateway.exceptions import ErrorReason, MessagingError
from messaging_gateway.gateways.afriksms import AfrikSmsGateway
from messaging_gateway.models import Channel, Response, ResponseCode, SmsMessage
from messaging_gateway.services.otp import OtpService, WhatsAppOtpSender
from messaging_gateway.services.otp_store import InMemoryOtpStore

PHONE = "22890123456"


# -----------------------------------------------------------------------
# Fakes
# -----------------------------------------------------------------------


class FakeSender:
    def __init__(self, response: Response | None = None) -> None:
        self.response = response or Response.ok(resource_id="msg_1")
        self.sent: list[SmsMessage] = []

    async def send(self, message: SmsMessage) -> Response:
        self.sent.append(message)
        return self.response


class RaisingSender:
    async def send(self, message: SmsMessage) -> Response:
        raise MessagingError.transport_failed("send", ConnectionError("connection reset"))


class SequenceRandom:
    """Stub random source returning queued values from ``randrange``."""

    def __init__(self, *values: int) -> None:
        self._values = list(values)

    def randrange(self, stop: int) -> int:
        value = self._values.pop(0)
        assert 0 <= value < stop
        return value


class FakeTemplateGateway:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, str]]] = []

    async def send_template(
        self,
        recipient: str,
        content_sid: str,
        variables: Mapping[str, str] | None = None,
    ) -> Response:
        self.calls.append((recipient, content_sid, dict(variables or {})))
        return Response.ok(resource_id="SM1")


def _service(
    sender: FakeSender | None = None,
    store: InMemoryOtpStore | None = None,
    **kwargs,
) -> OtpService:
    kwargs.setdefault("rng", random.Random(1234))
    return OtpService(sender or FakeSender(), store or InMemoryOtpStore(), **kwargs)


# -----------------------------------------------------------------------
# Issuing
# -----------------------------------------------------------------------


class TestSend:
    async def test_send_then_is_valid(self) -> None:
        service = _service()
        result = await service.send(PHONE)

        assert result.success
        assert result.code is not None and len(result.code) == 6 and result.code.isdigit()
        assert await service.is_valid(PHONE) is True
        assert await service.remaining_attempts(PHONE) == 3

    async def test_code_is_zero_padded(self) -> None:
        service = _service(rng=SequenceRandom(42))
        result = await service.send(PHONE)
        assert result.code == "000042"

    async def test_custom_length(self) -> None:
        service = _service(length=4, rng=SequenceRandom(7))
        assert (await service.send(PHONE)).code == "0007"

    async def test_sms_message_interpolates_template(self) -> None:
        sender = FakeSender()
        service = _service(
            sender,
            rng=SequenceRandom(123456),
            expiry_minutes=5,
            message_template="Code {code}, valid {expiry} min",
        )

        await service.send(PHONE)

        assert sender.sent == [SmsMessage(recipient=PHONE, content="Code 123456, valid 5 min")]

    async def test_whatsapp_sends_bare_code(self) -> None:
        sender = FakeSender()
        service = _service(sender, rng=SequenceRandom(654321), channel=Channel.WHATSAPP)

        await service.send(PHONE)

        assert sender.sent[0].content == "654321"

    async def test_failed_send_hides_code(self) -> None:
        sender = FakeSender(Response.error(ResponseCode.INVALID_RECIPIENT, "bad number"))
        result = await _service(sender).send(PHONE)

        assert result.failed
        assert result.code is None
        assert result.response.code is ResponseCode.INVALID_RECIPIENT

    async def test_raising_sender_leaves_no_record(self) -> None:
        store = InMemoryOtpStore()
        service = _service(RaisingSender(), store=store)

        with pytest.raises(MessagingError) as exc_info:
            await service.send(PHONE)

        assert exc_info.value.reason is ErrorReason.TRANSPORT_FAILED
        assert await store.has("otp:verification:" + PHONE) is False
        assert await service.is_valid(PHONE) is False

    async def test_rejected_recipient_leaves_no_record(self) -> None:
        requests: list[httpx.Request] = []

        def vendor(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"code": 100})

        gateway = AfrikSmsGateway("cid", "key", transport=httpx.MockTransport(vendor))
        service = _service(gateway)  # type: ignore[arg-type]

        with pytest.raises(MessagingError) as exc_info:
            await service.send("12345")

        assert exc_info.value.reason is ErrorReason.INVALID_RECIPIENT
        assert requests == []
        assert await service.is_valid("12345") is False

    async def test_expiry_timestamp(self) -> None:
        result = await _service(expiry_minutes=10).send(PHONE)
        assert result.expires_in_minutes in (9, 10)
        assert not result.is_expired

    async def test_codes_are_never_logged(self) -> None:
        service = _service(rng=SequenceRandom(987654, 987654))
        with capture_logs() as logs:
            await service.send(PHONE)
            await service.verify(PHONE, "000000")
            await service.verify(PHONE, "987654")

        assert logs, "the lifecycle should emit log events"
        for entry in logs:
            assert "987654" not in repr(entry)

    def test_invalid_configuration(self) -> None:
        with pytest.raises(ValueError):
            OtpService(FakeSender(), InMemoryOtpStore(), length=0)
        with pytest.raises(ValueError):
            OtpService(FakeSender(), InMemoryOtpStore(), max_attempts=0)


# -----------------------------------------------------------------------
# Verification
# -----------------------------------------------------------------------


class TestVerify:
    async def test_correct_code_verifies_exactly_once(self) -> None:
        service = _service()
        code = (await service.send(PHONE)).code

        assert await service.verify(PHONE, code) is True
        assert await service.verify(PHONE, code) is False, "record should be consumed"
        assert await service.is_valid(PHONE) is False

    async def test_unknown_phone(self) -> None:
        assert await _service().verify(PHONE, "123456") is False

    async def test_wrong_code_counts_attempt(self) -> None:
        service = _service(rng=SequenceRandom(111111))
        await service.send(PHONE)

        assert await service.verify(PHONE, "222222") is False
        assert await service.remaining_attempts(PHONE) == 2
        assert await service.is_valid(PHONE) is True

    async def test_exhaustion_deletes_record_on_final_attempt(self) -> None:
        store = InMemoryOtpStore()
        service = _service(store=store, rng=SequenceRandom(111111), max_attempts=3)
        await service.send(PHONE)

        for _ in range(3):
            assert await service.verify(PHONE, "999999") is False

        assert await store.has("otp:verification:" + PHONE) is False
        assert await service.remaining_attempts(PHONE) == 0
        assert await service.is_valid(PHONE) is False
        assert await service.verify(PHONE, "111111") is False, "correct code after exhaustion must fail"

    async def test_correct_code_after_some_failures(self) -> None:
        service = _service(rng=SequenceRandom(111111), max_attempts=3)
        await service.send(PHONE)

        await service.verify(PHONE, "000000")
        await service.verify(PHONE, "000001")

        assert await service.verify(PHONE, "111111") is True

    async def test_exhausted_record_is_cleaned_up(self) -> None:
        store = InMemoryOtpStore()
        service = _service(store=store, max_attempts=3)
        await store.put("otp:verification:" + PHONE, {"code": "111111", "attempts": 3}, 600)

        assert await service.verify(PHONE, "111111") is False
        assert await store.has("otp:verification:" + PHONE) is False

    async def test_purposes_are_independent(self) -> None:
        service = _service(rng=SequenceRandom(111111, 222222))
        await service.send(PHONE, "login")
        await service.send(PHONE, "password-reset")

        assert await service.verify(PHONE, "222222", "login") is False
        assert await service.verify(PHONE, "222222", "password-reset") is True
        assert await service.verify(PHONE, "111111", "login") is True

    async def test_concurrent_correct_verifications_succeed_once(self) -> None:
        service = _service(rng=SequenceRandom(111111))
        await service.send(PHONE)

        results = await asyncio.gather(*(service.verify(PHONE, "111111") for _ in range(5)))

        assert results.count(True) == 1

    async def test_concurrent_wrong_guesses_are_all_counted(self) -> None:
        service = _service(rng=SequenceRandom(111111), max_attempts=10)
        await service.send(PHONE)

        await asyncio.gather(*(service.verify(PHONE, "000000") for _ in range(4)))

        assert await service.remaining_attempts(PHONE) == 6


# -----------------------------------------------------------------------
# Resend / invalidate
# -----------------------------------------------------------------------


class TestResendAndInvalidate:
    async def test_resend_issues_a_new_code(self) -> None:
        service = _service(rng=SequenceRandom(111111, 222222))
        first = await service.send(PHONE)
        second = await service.resend(PHONE)

        assert first.code != second.code
        assert await service.verify(PHONE, first.code) is False
        assert await service.verify(PHONE, second.code) is True

    async def test_resend_resets_attempts(self) -> None:
        service = _service(rng=SequenceRandom(111111, 222222))
        await service.send(PHONE)
        await service.verify(PHONE, "000000")

        await service.resend(PHONE)

        assert await service.remaining_attempts(PHONE) == 3

    async def test_resend_with_seeded_rng_differs(self) -> None:
        service = _service(rng=random.Random(99))
        codes = [(await service.resend(PHONE)).code for _ in range(20)]
        assert all(a != b for a, b in zip(codes, codes[1:]))

    async def test_invalidate_is_idempotent(self) -> None:
        service = _service()
        await service.send(PHONE)

        await service.invalidate(PHONE)
        await service.invalidate(PHONE)

        assert await service.is_valid(PHONE) is False
        assert await service.remaining_attempts(PHONE) == 0


# -----------------------------------------------------------------------
# Construction helpers
# -----------------------------------------------------------------------


class TestConstruction:
    async def test_from_settings(self) -> None:
        sender = FakeSender()
        settings = Settings(
            _env_file=None,
            otp_length=8,
            otp_expiry_minutes=2,
            otp_max_attempts=5,
            otp_message="PIN {code} ({expiry}m)",
        )
        service = OtpService.from_settings(sender, InMemoryOtpStore(), settings, rng=SequenceRandom(5))

        result = await service.send(PHONE)

        assert result.code == "00000005"
        assert sender.sent[0].content == "PIN 00000005 (2m)"
        assert service.max_attempts == 5
        assert service.channel is Channel.SMS

    async def test_whatsapp_sender_uses_template(self) -> None:
        gateway = FakeTemplateGateway()
        sender = WhatsAppOtpSender(gateway, "HXotp", code_variable="code")  # type: ignore[arg-type]
        service = _service(sender, rng=SequenceRandom(4321), channel=Channel.WHATSAPP)  # type: ignore[arg-type]

        result = await service.send(PHONE)

        assert result.success
        assert gateway.calls == [(PHONE, "HXotp", {"code": "004321"})]
