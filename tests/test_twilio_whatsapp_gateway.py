"""Tests for the Twilio WhatsApp gateway using a stubbed SDK client."""

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock

import orjson
import pytest
from twilio.base.exceptions import TwilioRestException

from messaging_gateway.config.settings import Settings
from messaging_gateway.exceptions import ErrorReason, MessagingError
from messaging_gateway.gateways.twilio_whatsapp import TwilioWhatsAppGateway, map_twilio_error
from messaging_gateway.models import (
    BalanceInfo,
    BulkMessage,
    PersonalizedMessage,
    ResponseCode,
    SmsMessage,
)

FROM = "whatsapp:+14155238886"
URI = "/2010-04-01/Accounts/AC123/Messages.json"


def _twilio_message(sid: str = "SM123") -> SimpleNamespace:
    return SimpleNamespace(
        sid=sid,
        status="queued",
        date_created=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
        direction="outbound-api",
    )


def _rest_error(code: int, msg: str = "boom") -> TwilioRestException:
    return TwilioRestException(400, URI, msg=msg, code=code, method="POST")


def _client(create: Any = None, balance: Any = None) -> SimpleNamespace:
    return SimpleNamespace(
        messages=SimpleNamespace(create_async=AsyncMock(side_effect=create, return_value=_twilio_message())),
        balance=SimpleNamespace(fetch_async=AsyncMock(side_effect=balance, return_value=SimpleNamespace(balance="12.80"))),
    )


def _gateway(client: SimpleNamespace) -> TwilioWhatsAppGateway:
    return TwilioWhatsAppGateway(whatsapp_from=FROM, client=client)


# -----------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------


class TestConstruction:
    def test_credentials_required_without_client(self) -> None:
        with pytest.raises(MessagingError) as exc_info:
            TwilioWhatsAppGateway(None, "token", FROM)
        assert exc_info.value.context["key"] == "twilio_sid"

        with pytest.raises(MessagingError) as exc_info:
            TwilioWhatsAppGateway("AC123", None, FROM)
        assert exc_info.value.context["key"] == "twilio_auth_token"

    def test_sender_always_required(self) -> None:
        with pytest.raises(MessagingError) as exc_info:
            TwilioWhatsAppGateway(client=_client())
        assert exc_info.value.reason is ErrorReason.CONFIGURATION_MISSING
        assert exc_info.value.context["key"] == "twilio_whatsapp_from"

    async def test_from_settings(self) -> None:
        client = _client()
        settings = Settings(_env_file=None, twilio_whatsapp_from=FROM, default_country_code="229")
        gateway = TwilioWhatsAppGateway.from_settings(settings, client=client)

        await gateway.send(SmsMessage(recipient="97123456", content="Hi"))

        kwargs = client.messages.create_async.await_args.kwargs
        assert kwargs["to"] == "whatsapp:+22997123456"
        assert kwargs["from_"] == FROM


# -----------------------------------------------------------------------
# Error mapping
# -----------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("twilio_code", "expected"),
        [
            (20003, ResponseCode.INVALID_CREDENTIALS),
            (21211, ResponseCode.INVALID_RECIPIENT),
            (21614, ResponseCode.INVALID_RECIPIENT),
            (21608, ResponseCode.INSUFFICIENT_BALANCE),
            (21610, ResponseCode.INSUFFICIENT_BALANCE),
            (63016, ResponseCode.TEMPLATE_REQUIRED),
            (30008, ResponseCode.UNKNOWN),
            (None, ResponseCode.UNKNOWN),
        ],
    )
    def test_map_twilio_error(self, twilio_code: int | None, expected: ResponseCode) -> None:
        assert map_twilio_error(twilio_code) is expected

    async def test_vendor_exception_becomes_failed_response(self) -> None:
        client = _client(create=_rest_error(63016, "Outside the allowed window"))

        response = await _gateway(client).send(SmsMessage(recipient="90123456", content="Hi"))

        assert response.failed
        assert response.code is ResponseCode.TEMPLATE_REQUIRED
        assert response.message == "Outside the allowed window"
        assert response.data == {"error_code": 63016, "error_message": "Outside the allowed window"}

    async def test_unexpected_exception_is_contained(self) -> None:
        client = _client(create=RuntimeError("socket closed"))

        response = await _gateway(client).send(SmsMessage(recipient="90123456", content="Hi"))

        assert response.code is ResponseCode.UNKNOWN
        assert response.data["error_message"] == "socket closed"


# -----------------------------------------------------------------------
# Single sends
# -----------------------------------------------------------------------


class TestSingleSends:
    async def test_send(self) -> None:
        client = _client()

        response = await _gateway(client).send(SmsMessage(recipient="+228 90 12 34 56", content="Hello"))

        assert response.success
        assert response.resource_id == "SM123"
        assert response.data == {
            "sid": "SM123",
            "status": "queued",
            "dateCreated": "2024-05-01T12:00:00+00:00",
            "direction": "outbound-api",
        }
        client.messages.create_async.assert_awaited_once_with(
            to="whatsapp:+22890123456",
            from_=FROM,
            body="Hello",
        )

    async def test_send_template_with_variables(self) -> None:
        client = _client()

        await _gateway(client).send_template("90123456", "HX123", {"1": "482913"})

        kwargs = client.messages.create_async.await_args.kwargs
        assert kwargs["content_sid"] == "HX123"
        assert orjson.loads(kwargs["content_variables"]) == {"1": "482913"}
        assert "body" not in kwargs

    async def test_send_template_without_variables(self) -> None:
        client = _client()

        await _gateway(client).send_template("90123456", "HX123")

        kwargs = client.messages.create_async.await_args.kwargs
        assert "content_variables" not in kwargs

    async def test_send_media_with_caption(self) -> None:
        client = _client()

        await _gateway(client).send_media("90123456", "https://cdn.example.com/a.png", "Receipt")

        kwargs = client.messages.create_async.await_args.kwargs
        assert kwargs["media_url"] == ["https://cdn.example.com/a.png"]
        assert kwargs["body"] == "Receipt"

    async def test_send_media_without_caption(self) -> None:
        client = _client()

        await _gateway(client).send_media("90123456", "https://cdn.example.com/a.png")

        assert "body" not in client.messages.create_async.await_args.kwargs


# -----------------------------------------------------------------------
# Fan-out sends
# -----------------------------------------------------------------------


class TestFanOut:
    async def test_bulk_all_succeed(self) -> None:
        client = _client()
        client.messages.create_async.side_effect = [_twilio_message("SM1"), _twilio_message("SM2")]

        response = await _gateway(client).send_bulk(BulkMessage(recipients=("90123456", "91234567"), content="Hi"))

        assert response.success
        assert response.code is ResponseCode.SUCCESS
        assert response.data["sent"] == 2
        assert response.data["failed"] == 0
        assert [r["resourceId"] for r in response.data["results"]] == ["SM1", "SM2"]

    async def test_bulk_partial_failure(self) -> None:
        client = _client()
        client.messages.create_async.side_effect = [_twilio_message("SM1"), _rest_error(21211)]

        response = await _gateway(client).send_bulk(BulkMessage(recipients=("90123456", "91234567"), content="Hi"))

        assert response.code is ResponseCode.PARTIAL_SUCCESS
        assert response.data["results"] == [
            {"phone": "90123456", "success": True, "resourceId": "SM1"},
            {"phone": "91234567", "success": False, "resourceId": None},
        ]
        assert response.data["failed"] == 1

    async def test_bulk_all_fail_with_same_code(self) -> None:
        client = _client(create=_rest_error(21211))

        response = await _gateway(client).send_bulk(BulkMessage(recipients=("90123456", "91234567"), content="Hi"))

        assert response.failed
        assert response.code is ResponseCode.INVALID_RECIPIENT

    async def test_bulk_all_fail_with_mixed_codes(self) -> None:
        client = _client()
        client.messages.create_async.side_effect = [_rest_error(21211), _rest_error(20003)]

        response = await _gateway(client).send_bulk(BulkMessage(recipients=("90123456", "91234567"), content="Hi"))

        assert response.failed
        assert response.code is ResponseCode.UNKNOWN

    async def test_bulk_over_cap_fails_before_vendor(self) -> None:
        client = _client()
        message = BulkMessage(recipients=tuple(f"90{i:06d}" for i in range(501)), content="Hi")

        with pytest.raises(MessagingError):
            await _gateway(client).send_bulk(message)

        client.messages.create_async.assert_not_awaited()

    async def test_personalized_sends_each_content(self) -> None:
        client = _client()
        messages = [
            PersonalizedMessage(recipient="90123456", content="Hello Ama"),
            PersonalizedMessage(recipient="91234567", content="Hello Kofi"),
        ]

        response = await _gateway(client).send_personalized(messages)

        assert response.success
        bodies = [call.kwargs["body"] for call in client.messages.create_async.await_args_list]
        assert bodies == ["Hello Ama", "Hello Kofi"]


# -----------------------------------------------------------------------
# Balance
# -----------------------------------------------------------------------


class TestBalance:
    async def test_balance_is_floored(self) -> None:
        balances = await _gateway(_client()).get_balance()
        assert balances == [BalanceInfo(country="Twilio Account", balance=12)]

    async def test_balance_failure_is_empty(self) -> None:
        client = _client(balance=_rest_error(20003))
        assert await _gateway(client).get_balance() == []
