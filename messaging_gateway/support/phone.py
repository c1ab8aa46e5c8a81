"""Phone number normalisation shared by every gateway.

This is deliberately a narrow heuristic rather than E.164 parsing:

* every non-digit character is dropped;
* a leading ``00`` international prefix is stripped;
* an 8-digit local number gets the default country code prepended.

Numbers of any other length pass through untouched, so a short number
without a country code simply fails :meth:`PhoneFormatter.is_valid`.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Final

DEFAULT_COUNTRY_CODE: Final[str] = "228"

_NON_DIGIT_RE: Final[re.Pattern[str]] = re.compile(r"[^0-9]+")

_MIN_PHONE_LENGTH: Final[int] = 10
_MAX_PHONE_LENGTH: Final[int] = 15
_LOCAL_PHONE_LENGTH: Final[int] = 8


class PhoneFormatter:
    """Pure formatting functions bound to one default country code."""

    __slots__ = ("_default_country_code",)

    def __init__(self, default_country_code: str = DEFAULT_COUNTRY_CODE) -> None:
        self._default_country_code = default_country_code

    @property
    def default_country_code(self) -> str:
        return self._default_country_code

    def format(self, phone: str, country_code: str | None = None) -> str:
        """Return the digits-only form of *phone*."""
        country_code = country_code or self._default_country_code
        digits = _NON_DIGIT_RE.sub("", phone)

        if digits.startswith("00"):
            digits = digits[2:]

        if len(digits) == _LOCAL_PHONE_LENGTH and not digits.startswith(country_code):
            return country_code + digits

        return digits

    def format_many(self, phones: Iterable[str], country_code: str | None = None) -> list[str]:
        return [self.format(phone, country_code) for phone in phones]

    def is_valid(self, phone: str) -> bool:
        return _MIN_PHONE_LENGTH <= len(self.format(phone)) <= _MAX_PHONE_LENGTH

    def format_for_whatsapp(self, phone: str, country_code: str | None = None) -> str:
        return f"whatsapp:+{self.format(phone, country_code)}"

    def normalize(self, phone: str, country_code: str | None = None) -> str:
        return f"+{self.format(phone, country_code)}"
