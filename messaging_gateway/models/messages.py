"""Outbound message value objects.

All message types are frozen pydantic models: they are built once by a
caller (or a pending builder) and handed to a gateway unchanged.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

# Hard cap imposed by the SMS vendor on multi-recipient requests.
MAX_BULK_RECIPIENTS = 500


class SmsMessage(BaseModel):
    """A single message to one recipient, on any channel."""

    model_config = ConfigDict(frozen=True)

    recipient: str
    content: str
    sender_id: str | None = None

    def to_payload(self) -> dict[str, str | None]:
        return {
            "recipient": self.recipient,
            "content": self.content,
            "sender_id": self.sender_id,
        }


class BulkMessage(BaseModel):
    """Identical content for many recipients."""

    model_config = ConfigDict(frozen=True)

    recipients: tuple[str, ...]
    content: str
    sender_id: str | None = None

    @property
    def count(self) -> int:
        return len(self.recipients)

    @property
    def recipients_as_string(self) -> str:
        return ",".join(self.recipients)

    def to_payload(self) -> dict[str, object]:
        return {
            "recipients": list(self.recipients),
            "content": self.content,
            "sender_id": self.sender_id,
        }


class PersonalizedMessage(BaseModel):
    """One entry of a personalized batch: its own recipient and content."""

    model_config = ConfigDict(frozen=True)

    recipient: str
    content: str

    def to_payload(self) -> dict[str, str]:
        # Field names expected by the AfrikSMS personalized endpoint.
        return {"MobileNumbers": self.recipient, "Message": self.content}
