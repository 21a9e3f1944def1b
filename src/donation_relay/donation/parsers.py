"""Per-platform payload parsers.

Each parser owns the ordered alias lists for the fields it reads; the first
non-empty alias wins. Parsers never raise: missing or malformed values fall
back to defaults and an amount of zero, which admission rejects later.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from ..models import DEFAULT_DONOR_NAME, Donation, Platform
from ..sanitize import MAX_MESSAGE_LENGTH, sanitize_amount, sanitize_text


def lookup(data: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path (``etc.amount_to_display``) inside nested mappings."""

    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def first_present(data: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    for alias in aliases:
        value = lookup(data, alias)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if value == 0 and not isinstance(value, bool):
            continue
        return value
    return None


def _optional_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes"}:
            return True
        if lowered in {"false", "0", "no"}:
            return False
    return None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(sanitize_amount(value))
    except (ValueError, OverflowError):
        return None


@dataclass(frozen=True, slots=True)
class PlatformParser:
    """Turns a payload of one platform into a :class:`Donation`."""

    platform: Platform
    name_fields: tuple[str, ...]
    amount_fields: tuple[str, ...]
    message_fields: tuple[str, ...]
    transaction_fields: tuple[str, ...] = ()

    def parse(self, data: Mapping[str, Any]) -> Donation:
        donor = sanitize_text(first_present(data, self.name_fields))
        message = sanitize_text(first_present(data, self.message_fields), MAX_MESSAGE_LENGTH)
        transaction = sanitize_text(first_present(data, self.transaction_fields)) if self.transaction_fields else ""
        return Donation(
            platform=self.platform,
            donor_name=donor or DEFAULT_DONOR_NAME,
            amount=sanitize_amount(first_present(data, self.amount_fields)),
            message=message,
            transaction_id=transaction or None,
            **self.extras(data),
        )

    def extras(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {}


@dataclass(frozen=True, slots=True)
class BagiBagiParser(PlatformParser):
    """BagiBagi adds koin counts and the verified/anonymous flags."""

    def extras(self, data: Mapping[str, Any]) -> dict[str, Any]:
        is_anonymous = _optional_bool(first_present(data, ("is_anonymous", "isAnonymous")))
        return {
            "koin_count": _optional_int(first_present(data, ("koin", "koin_count", "koinCount"))),
            "is_verified": _optional_bool(first_present(data, ("is_verified", "isVerified"))),
            "is_anonymous": is_anonymous,
        }


SAWERIA = PlatformParser(
    platform=Platform.SAWERIA,
    name_fields=("donator_name", "name"),
    amount_fields=("amount_raw", "etc.amount_to_display", "amount"),
    message_fields=("message",),
    transaction_fields=("id",),
)

SOCIABUZZ = PlatformParser(
    platform=Platform.SOCIABUZZ,
    name_fields=("supporter", "supporter_name", "name"),
    amount_fields=("amount", "amount_settled", "amount_raw"),
    message_fields=("message", "supporter_message"),
    transaction_fields=("id", "order_id"),
)

TRAKTEER = PlatformParser(
    platform=Platform.TRAKTEER,
    name_fields=("supporter_name", "name"),
    amount_fields=("amount", "price"),
    message_fields=("supporter_message", "message"),
    transaction_fields=("transaction_id", "id"),
)

TAKO = PlatformParser(
    platform=Platform.TAKO,
    name_fields=("supporter_name", "donator_name", "gifterName", "name"),
    amount_fields=("amount", "amount_raw"),
    message_fields=("message", "supporter_message"),
    transaction_fields=("id",),
)

BAGIBAGI = BagiBagiParser(
    platform=Platform.BAGIBAGI,
    name_fields=("name", "donor_name", "supporter_name"),
    amount_fields=("amount", "total", "nominal"),
    message_fields=("message", "note"),
    transaction_fields=("transaction_id", "transactionId", "id"),
)

PARSERS: dict[Platform, PlatformParser] = {
    parser.platform: parser for parser in (SAWERIA, SOCIABUZZ, TRAKTEER, TAKO, BAGIBAGI)
}


def parse_as(platform: Platform, data: Mapping[str, Any]) -> Donation:
    return PARSERS[platform].parse(data)
