"""Canned webhook bodies used by the test-injection endpoint and the CLI."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from ..errors import InvalidPlatform
from ..models import Platform

SAMPLE_PAYLOADS: dict[Platform, dict[str, Any]] = {
    Platform.SAWERIA: {
        "version": "2022.01",
        "type": "donation",
        "donator_name": "Test Saweria",
        "amount_raw": 10000,
        "message": "Test donation",
    },
    Platform.SOCIABUZZ: {
        "supporter": "Test SociaBuzz",
        "email_supporter": "test@example.com",
        "amount": 15000,
        "currency": "IDR",
        "message": "Test donation",
        "content": {"link": "https://sociabuzz.com/test"},
    },
    Platform.TRAKTEER: {
        "type": "trakteer",
        "supporter_name": "Test Trakteer",
        "price": 20000,
        "supporter_message": "Test donation",
    },
    Platform.TAKO: {
        "type": "tako",
        "supporter_name": "Test Tako",
        "amount": 25000,
        "message": "Test donation",
    },
    Platform.BAGIBAGI: {
        "data": [
            {
                "transaction_id": "TEST-0001",
                "name": "Test BagiBagi",
                "amount": 30000,
                "koin": 30,
                "message": "Test donation",
                "is_verified": True,
                "is_anonymous": False,
            }
        ]
    },
}


def sample_payload(platform: str) -> dict[str, Any]:
    """Return a fresh copy of the sample body for ``platform``."""

    try:
        resolved = Platform(platform.strip().lower())
    except ValueError as exc:
        raise InvalidPlatform(platform) from exc
    return deepcopy(SAMPLE_PAYLOADS[resolved])
