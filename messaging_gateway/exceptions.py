"""Typed errors raised by the messaging core.

Every failure that escapes a gateway or service is a
:class:`MessagingError`.  The ``reason`` says which member of the
taxonomy fired; ``code`` carries the matching :class:`ResponseCode` so
callers can treat raised errors and failed responses the same way.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from messaging_gateway.models.enums import ResponseCode


class ErrorReason(StrEnum):
    __slots__ = ()

    SEND_FAILED = "send_failed"
    INVALID_RECIPIENT = "invalid_recipient"
    CONFIGURATION_MISSING = "configuration_missing"
    API_ERROR = "api_error"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    INVALID_CREDENTIALS = "invalid_credentials"
    UNKNOWN_CHANNEL = "unknown_channel"
    TRANSPORT_FAILED = "transport_failed"


class MessagingError(Exception):
    """Single error type for the messaging core."""

    def __init__(
        self,
        message: str,
        *,
        code: ResponseCode = ResponseCode.UNKNOWN,
        reason: ErrorReason = ErrorReason.SEND_FAILED,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.reason = reason
        self.context: dict[str, Any] = dict(context or {})

    @property
    def is_transport(self) -> bool:
        """True when the vendor was never reached or answered non-2xx."""
        return self.reason is ErrorReason.TRANSPORT_FAILED

    def __repr__(self) -> str:
        return f"MessagingError({self.message!r}, code={self.code.name}, reason={self.reason.value})"

    # -- Constructors ----------------------------------------------------------

    @classmethod
    def send_failed(cls, reason: str, context: dict[str, Any] | None = None) -> MessagingError:
        return cls(
            f"Failed to send message: {reason}",
            code=ResponseCode.SERVER_ERROR,
            reason=ErrorReason.SEND_FAILED,
            context=context,
        )

    @classmethod
    def invalid_recipient(cls, recipient: str) -> MessagingError:
        return cls(
            f"Invalid recipient phone number: {recipient}",
            code=ResponseCode.INVALID_RECIPIENT,
            reason=ErrorReason.INVALID_RECIPIENT,
            context={"recipient": recipient},
        )

    @classmethod
    def configuration_missing(cls, key: str) -> MessagingError:
        return cls(
            f"Missing messaging configuration: {key}",
            code=ResponseCode.SERVER_ERROR,
            reason=ErrorReason.CONFIGURATION_MISSING,
            context={"key": key},
        )

    @classmethod
    def api_error(cls, code: ResponseCode, message: str) -> MessagingError:
        return cls(
            f"API error [{code.value}]: {message}",
            code=code,
            reason=ErrorReason.API_ERROR,
        )

    @classmethod
    def quota_exceeded(cls) -> MessagingError:
        return cls(
            "Message quota exceeded. Please check your balance.",
            code=ResponseCode.INSUFFICIENT_BALANCE,
            reason=ErrorReason.QUOTA_EXCEEDED,
        )

    @classmethod
    def unsupported_operation(cls, operation: str, gateway: str) -> MessagingError:
        return cls(
            f"{gateway} gateway does not support {operation}.",
            code=ResponseCode.UNSUPPORTED_OPERATION,
            reason=ErrorReason.UNSUPPORTED_OPERATION,
            context={"operation": operation, "gateway": gateway},
        )

    @classmethod
    def invalid_credentials(cls) -> MessagingError:
        return cls(
            "Invalid API credentials.",
            code=ResponseCode.INVALID_CREDENTIALS,
            reason=ErrorReason.INVALID_CREDENTIALS,
        )

    @classmethod
    def unknown_channel(cls, name: str) -> MessagingError:
        return cls(
            f"Unknown messaging channel: {name}",
            code=ResponseCode.UNSUPPORTED_OPERATION,
            reason=ErrorReason.UNKNOWN_CHANNEL,
            context={"channel": name},
        )

    @classmethod
    def transport_failed(cls, operation: str, error: BaseException) -> MessagingError:
        return cls(
            f"Transport failure during {operation}: {error}",
            code=ResponseCode.SERVER_ERROR,
            reason=ErrorReason.TRANSPORT_FAILED,
            context={"operation": operation, "error_type": type(error).__name__},
        )
