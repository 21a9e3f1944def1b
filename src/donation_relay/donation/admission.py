"""Webhook admission: classify, validate, dedupe, then activate or enqueue."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..errors import InvalidAmount, QueueFull, TenantNotFound, UnrecognizedPayload
from ..models import Donation
from ..queue import DonationStore
from .classifier import detect, unwrap_envelope

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AdmissionResult:
    """Outcome of a successful (or silently ignored) webhook delivery."""

    donation: Optional[Donation] = None
    queued: bool = False
    queue_position: Optional[int] = None
    duplicate: bool = False
    empty: bool = False
    rule: Optional[str] = None

    def as_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": True, "queued": self.queued}
        if self.queue_position is not None:
            body["queue_position"] = self.queue_position
        if self.duplicate:
            body["duplicate"] = True
        if self.empty:
            body["empty"] = True
        return body


class AdmissionPipeline:
    """Admits webhook payloads into a tenant's :class:`DonationStore` state."""

    def __init__(self, store: DonationStore, tenant_exists: Optional[Callable[[str], bool]] = None) -> None:
        self._store = store
        self._tenant_exists = tenant_exists

    async def admit(self, key: str, payload: Any, max_queue_size: int) -> AdmissionResult:
        payload, empty = unwrap_envelope(payload)
        if empty:
            logger.info("webhook.empty_envelope", extra={"tenant": key})
            return AdmissionResult(empty=True)

        classification = detect(payload)
        if classification is None:
            raise UnrecognizedPayload("no platform matched the payload")
        donation = classification.donation
        if donation.amount <= 0:
            raise InvalidAmount(f"amount {donation.amount} is not positive")

        return await self.admit_donation(key, donation, max_queue_size, rule=classification.rule)

    async def admit_donation(
        self,
        key: str,
        donation: Donation,
        max_queue_size: int,
        rule: Optional[str] = None,
    ) -> AdmissionResult:
        store = self._store
        async with store.lock(key):
            # the tenant may have been deleted while this request was reading its body
            if self._tenant_exists is not None and not self._tenant_exists(key):
                store.drop_tenant(key)
                raise TenantNotFound(key)
            store.init_tenant(key)
            if store.is_duplicate(key, donation):
                logger.info(
                    "webhook.duplicate",
                    extra={"tenant": key, "platform": donation.platform.value, "donor": donation.donor_name},
                )
                return AdmissionResult(donation=donation, duplicate=True, rule=rule)

            store.record_received(key)
            if store.has_active(key):
                try:
                    store.enqueue(key, donation, max_queue_size)
                except QueueFull:
                    logger.warning(
                        "webhook.queue_full",
                        extra={"tenant": key, "limit": max_queue_size},
                    )
                    raise
                store.mark_processed(key, donation)
                position = store.queue_size(key)
                logger.info(
                    "webhook.queued",
                    extra={"tenant": key, "platform": donation.platform.value, "position": position},
                )
                return AdmissionResult(donation=donation, queued=True, queue_position=position, rule=rule)

            store.set_active(key, donation)
            store.mark_processed(key, donation)
            logger.info(
                "webhook.accepted",
                extra={
                    "tenant": key,
                    "platform": donation.platform.value,
                    "donor": donation.donor_name,
                    "amount": str(donation.amount),
                },
            )
            return AdmissionResult(donation=donation, queued=False, rule=rule)
