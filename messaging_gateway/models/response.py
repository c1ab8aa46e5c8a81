from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer, field_validator

from messaging_gateway.models.enums import Channel, DeliveryStatus, ResponseCode


class Response(BaseModel):
    """Vendor-agnostic result envelope returned by every send operation.

    ``success`` is not stored: it is always derived from ``code`` so the
    two can never disagree.
    """

    model_config = ConfigDict(frozen=True)

    code: ResponseCode
    message: str = ""
    resource_id: str | None = None
    data: Mapping[str, Any] = Field(default_factory=lambda: MappingProxyType({}))

    @field_validator("data", mode="after")
    @classmethod
    def _freeze_data(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        # frozen=True only blocks reassignment; wrap so the payload is read-only too
        return MappingProxyType(dict(value))

    @field_serializer("data")
    def _dump_data(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return dict(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.code.is_success

    @property
    def failed(self) -> bool:
        return not self.success

    @classmethod
    def from_api_response(cls, reply: object) -> Response:
        """Build a response from a decoded AfrikSMS JSON reply."""
        payload: Mapping[str, Any] = reply if isinstance(reply, Mapping) else {}
        resource_id = payload.get("resourceId")
        data = payload.get("data")
        return cls(
            code=ResponseCode.parse(payload.get("code", ResponseCode.UNKNOWN)),
            message=str(payload.get("message") or "Unknown error"),
            resource_id=str(resource_id) if resource_id is not None else None,
            data=dict(data) if isinstance(data, Mapping) else {},
        )

    @classmethod
    def ok(cls, message: str = "Success", resource_id: str | None = None) -> Response:
        return cls(code=ResponseCode.SUCCESS, message=message, resource_id=resource_id)

    @classmethod
    def error(cls, code: ResponseCode, message: str) -> Response:
        return cls(code=code, message=message)


class BalanceInfo(BaseModel):
    """Remaining credit for one country (SMS) or the whole account (WhatsApp)."""

    model_config = ConfigDict(frozen=True)

    country: str
    balance: int

    @classmethod
    def from_api(cls, item: Mapping[str, Any]) -> BalanceInfo:
        country = item.get("countryName") or item.get("country") or "Unknown"
        raw = item.get("balance", item.get("solde", 0))
        try:
            balance = math.floor(float(raw or 0))
        except (TypeError, ValueError):
            balance = 0
        return cls(country=str(country), balance=balance)

    @property
    def has_credit(self) -> bool:
        return self.balance > 0


class OtpResult(BaseModel):
    """Outcome of issuing a one-time password.

    ``code`` is only populated when the underlying send reported
    success; it says nothing about delivery beyond ``response``.
    """

    model_config = ConfigDict(frozen=True)

    code: str | None
    expires_at: datetime
    response: Response

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.response.success

    @property
    def failed(self) -> bool:
        return not self.success

    @property
    def expires_in_minutes(self) -> int:
        remaining = (self.expires_at - datetime.now(UTC)).total_seconds()
        return max(0, int(remaining // 60))

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= datetime.now(UTC)


class DeliveryReport(BaseModel):
    """Inbound delivery-report event as posted by a vendor callback."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    status: DeliveryStatus
    code: str = ""
    message: str = ""
    channel: Channel = Channel.SMS
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    @property
    def is_failed(self) -> bool:
        return self.status is DeliveryStatus.FAILED

    @property
    def is_sent(self) -> bool:
        return self.status is DeliveryStatus.SENT

    @property
    def is_pending(self) -> bool:
        return self.status is DeliveryStatus.PENDING
