"""Platform detection for untyped webhook payloads.

Several platforms share field names (``amount``, ``name``, ``supporter_name``),
so detection is an ordered cascade of rules evaluated top to bottom with early
return. Reordering :data:`CLASSIFICATION_RULES` changes which platform wins for
overlapping payloads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from ..models import Donation, Platform
from .parsers import lookup, parse_as

logger = logging.getLogger(__name__)

Predicate = Callable[[Mapping[str, Any]], Optional[Platform]]

PLATFORM_ALIASES: tuple[tuple[Platform, tuple[str, ...]], ...] = (
    (Platform.BAGIBAGI, ("bagibagi", "bagi-bagi", "bagi bagi")),
    (Platform.SAWERIA, ("saweria",)),
    (Platform.SOCIABUZZ, ("sociabuzz", "socia buzz", "socia-buzz")),
    (Platform.TRAKTEER, ("trakteer",)),
    (Platform.TAKO, ("tako",)),
)

URL_HINTS: tuple[tuple[Platform, str], ...] = (
    (Platform.SOCIABUZZ, "sociabuzz"),
    (Platform.TRAKTEER, "trakteer"),
    (Platform.SAWERIA, "saweria"),
    (Platform.TAKO, "tako.id"),
    (Platform.BAGIBAGI, "bagibagi"),
)


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    name: str
    match: Predicate


@dataclass(frozen=True, slots=True)
class Classification:
    donation: Donation
    rule: str


def _present(data: Mapping[str, Any], key: str) -> bool:
    return key in data


def _truthy(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def _text(data: Mapping[str, Any], key: str) -> str:
    value = lookup(data, key)
    return value.lower() if isinstance(value, str) else ""


def has_exclusive_fingerprint(data: Mapping[str, Any]) -> bool:
    """BagiBagi is the only platform sending both verified and anonymous flags."""

    verified = _present(data, "is_verified") or _present(data, "isVerified")
    anonymous = _present(data, "is_anonymous") or _present(data, "isAnonymous")
    return verified and anonymous


def _fingerprint(data: Mapping[str, Any]) -> Optional[Platform]:
    return Platform.BAGIBAGI if has_exclusive_fingerprint(data) else None


def _explicit_platform(data: Mapping[str, Any]) -> Optional[Platform]:
    for key in ("platform", "type"):
        declared = _text(data, key).strip()
        if not declared:
            continue
        for platform, aliases in PLATFORM_ALIASES:
            if any(alias in declared for alias in aliases):
                return platform
    return None


def _saweria_version(data: Mapping[str, Any]) -> Optional[Platform]:
    if _truthy(data, "version") and _truthy(data, "donator_name"):
        return Platform.SAWERIA
    return None


def _sociabuzz_supporter(data: Mapping[str, Any]) -> Optional[Platform]:
    if not _truthy(data, "supporter"):
        return None
    if _truthy(data, "email_supporter") or data.get("currency") == "IDR":
        return Platform.SOCIABUZZ
    return None


def _sociabuzz_content_link(data: Mapping[str, Any]) -> Optional[Platform]:
    if "sociabuzz.com" in _text(data, "content.link"):
        return Platform.SOCIABUZZ
    return None


def _url_hint(data: Mapping[str, Any]) -> Optional[Platform]:
    url = _text(data, "url")
    if not url:
        return None
    for platform, fragment in URL_HINTS:
        if fragment in url:
            return platform
    return None


def _loose(platform: Platform, *required: str) -> Predicate:
    """Heuristic fallback: fires on field presence alone, never for fingerprinted payloads."""

    def predicate(data: Mapping[str, Any]) -> Optional[Platform]:
        if has_exclusive_fingerprint(data):
            return None
        if all(_truthy(data, key) for key in required):
            return platform
        return None

    return predicate


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("bagibagi-fingerprint", _fingerprint),
    ClassificationRule("explicit-platform", _explicit_platform),
    ClassificationRule("saweria-version", _saweria_version),
    ClassificationRule("sociabuzz-supporter", _sociabuzz_supporter),
    ClassificationRule("sociabuzz-content-link", _sociabuzz_content_link),
    ClassificationRule("url-hint", _url_hint),
    ClassificationRule("fallback-trakteer-price", _loose(Platform.TRAKTEER, "supporter_name", "price")),
    ClassificationRule("fallback-sociabuzz-supporter", _loose(Platform.SOCIABUZZ, "supporter", "amount")),
    ClassificationRule("fallback-saweria-donator", _loose(Platform.SAWERIA, "donator_name")),
    ClassificationRule("fallback-trakteer-supporter", _loose(Platform.TRAKTEER, "supporter_name")),
    ClassificationRule("fallback-sociabuzz-generic", _loose(Platform.SOCIABUZZ, "name", "amount")),
)


def detect(payload: Any) -> Optional[Classification]:
    """Run the cascade and report which rule matched."""

    if not isinstance(payload, Mapping):
        return None
    for rule in CLASSIFICATION_RULES:
        platform = rule.match(payload)
        if platform is not None:
            logger.debug("classifier.matched", extra={"rule": rule.name, "platform": platform.value})
            return Classification(donation=parse_as(platform, payload), rule=rule.name)
    logger.info("classifier.unrecognized", extra={"keys": sorted(str(key) for key in payload)[:20]})
    return None


def classify(payload: Any) -> Optional[Donation]:
    """Return the normalized donation, or ``None`` if no platform matches."""

    result = detect(payload)
    return result.donation if result else None


def unwrap_envelope(payload: Any) -> tuple[Any, bool]:
    """Unwrap ``{"data": [...]}`` envelopes.

    Returns ``(payload, is_empty)``; ``is_empty`` is true for an envelope
    holding an empty array, which carries no donation.
    """

    if isinstance(payload, Mapping):
        data = payload.get("data")
        if isinstance(data, list):
            if not data:
                return None, True
            return data[0], False
    return payload, False
