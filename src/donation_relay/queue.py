"""Per-tenant donation state: one active donation plus a bounded FIFO queue."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, Iterator, Optional

from .errors import QueueFull
from .models import Donation, ProcessedRecord, QueueEntry, TenantStats, display_name, utcnow

logger = logging.getLogger(__name__)

DUPLICATE_WINDOW_SEC = 3.0
HISTORY_RETENTION_SEC = 5.0
HISTORY_MAX_ENTRIES = 50


@dataclass(slots=True)
class TenantState:
    active: Optional[Donation] = None
    active_since: Optional[datetime] = None
    active_since_mono: Optional[float] = None
    queue: Deque[QueueEntry] = field(default_factory=deque)
    stats: TenantStats = field(default_factory=TenantStats)


@dataclass(slots=True)
class TenantSnapshot:
    active: Optional[Donation]
    active_since: Optional[datetime]
    queue: list[QueueEntry]
    stats: TenantStats


class DonationStore:
    """Owner of every tenant's donation state.

    The synchronous primitives assume the caller holds :meth:`lock` for the
    tenant. Composite operations (``clear_and_promote``, janitor sweeps) take
    the lock themselves, so admission, polling and sweeping never interleave
    for the same tenant while unrelated tenants proceed independently.
    """

    def __init__(
        self,
        duplicate_window: float = DUPLICATE_WINDOW_SEC,
        history_retention: float = HISTORY_RETENTION_SEC,
        history_max_entries: int = HISTORY_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._tenants: dict[str, TenantState] = {}
        self._history: dict[str, Deque[ProcessedRecord]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._duplicate_window = duplicate_window
        self._history_retention = history_retention
        self._history_max_entries = history_max_entries
        self._clock = clock

    def lock(self, key: str) -> asyncio.Lock:
        """Return the serialization lock for ``key``."""

        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def init_tenant(self, key: str) -> TenantState:
        state = self._tenants.get(key)
        if state is None:
            state = self._tenants[key] = TenantState()
        return state

    def tenants(self) -> list[str]:
        return list(self._tenants)

    def drop_tenant(self, key: str) -> None:
        self._tenants.pop(key, None)
        self._history.pop(key, None)
        self._locks.pop(key, None)

    # -- active slot -----------------------------------------------------

    def has_active(self, key: str) -> bool:
        state = self._tenants.get(key)
        return state is not None and state.active is not None

    def get_active(self, key: str) -> Optional[Donation]:
        state = self._tenants.get(key)
        return state.active if state else None

    def set_active(self, key: str, donation: Donation) -> None:
        state = self.init_tenant(key)
        if state.active is not None:
            logger.warning("store.active_overwritten", extra={"tenant": key})
        state.active = donation
        state.active_since = utcnow()
        state.active_since_mono = self._clock()
        state.stats.touch()

    def clear_active(self, key: str) -> bool:
        state = self._tenants.get(key)
        if state is None or state.active is None:
            return False
        state.active = None
        state.active_since = None
        state.active_since_mono = None
        state.stats.total_processed += 1
        state.stats.touch()
        return True

    def active_age(self, key: str) -> Optional[float]:
        state = self._tenants.get(key)
        if state is None or state.active_since_mono is None:
            return None
        return self._clock() - state.active_since_mono

    # -- queue -----------------------------------------------------------

    def enqueue(self, key: str, donation: Donation, max_size: int) -> QueueEntry:
        """Append to the tenant queue, promoting at once if nothing is active."""

        state = self.init_tenant(key)
        if len(state.queue) >= max_size:
            raise QueueFull(f"queue for tenant holds {len(state.queue)}/{max_size}")
        entry = QueueEntry(donation=donation)
        state.queue.append(entry)
        state.stats.total_queued += 1
        state.stats.touch()
        if state.active is None:
            self.promote(key)
        return entry

    def promote(self, key: str) -> bool:
        state = self._tenants.get(key)
        if state is None or not state.queue or state.active is not None:
            return False
        entry = state.queue.popleft()
        self.set_active(key, entry.donation)
        logger.debug("store.promoted", extra={"tenant": key, "entry": entry.id})
        return True

    def queue_size(self, key: str) -> int:
        state = self._tenants.get(key)
        return len(state.queue) if state else 0

    def queue_preview(self, key: str, limit: int = 5) -> list[QueueEntry]:
        state = self._tenants.get(key)
        if state is None:
            return []
        return list(state.queue)[:limit]

    def force_clear(self, key: str) -> int:
        """Drop the active donation and every queued one; return how many were queued."""

        state = self._tenants.get(key)
        if state is None:
            return 0
        dropped = len(state.queue)
        state.queue.clear()
        state.active = None
        state.active_since = None
        state.active_since_mono = None
        state.stats.touch()
        return dropped

    # -- stats -----------------------------------------------------------

    def record_received(self, key: str) -> None:
        state = self.init_tenant(key)
        state.stats.total_received += 1
        state.stats.touch()

    def stats(self, key: str) -> TenantStats:
        return self.init_tenant(key).stats

    # -- dedupe ledger ---------------------------------------------------

    def _prune(self, key: str, now: float) -> Deque[ProcessedRecord]:
        history = self._history.get(key)
        if history is None:
            return deque()
        while history and now - history[0].timestamp > self._history_retention:
            history.popleft()
        return history

    def is_duplicate(self, key: str, donation: Donation) -> bool:
        now = self._clock()
        history = self._prune(key, now)
        name = display_name(donation)
        return any(
            record.platform is donation.platform
            and record.donor_name == name
            and record.amount == donation.amount
            and now - record.timestamp <= self._duplicate_window
            for record in history
        )

    def mark_processed(self, key: str, donation: Donation) -> None:
        history = self._history.get(key)
        if history is None:
            history = self._history[key] = deque(maxlen=self._history_max_entries)
        history.append(
            ProcessedRecord(
                platform=donation.platform,
                donor_name=display_name(donation),
                amount=donation.amount,
                timestamp=self._clock(),
            )
        )

    def history_size(self, key: str) -> int:
        history = self._history.get(key)
        return len(history) if history else 0

    # -- composite operations (take the tenant lock) ----------------------

    async def clear_and_promote(self, key: str) -> tuple[bool, bool, int]:
        """Retire the active donation and promote the next one atomically.

        Returns ``(had_active, promoted, queue_size)``.
        """

        async with self.lock(key):
            had_active = self.clear_active(key)
            promoted = self.promote(key) if had_active else False
            return had_active, promoted, self.queue_size(key)

    async def force_clear_locked(self, key: str) -> int:
        async with self.lock(key):
            return self.force_clear(key)

    async def snapshot(self, key: str, preview: int = 5) -> TenantSnapshot:
        async with self.lock(key):
            state = self.init_tenant(key)
            return TenantSnapshot(
                active=state.active,
                active_since=state.active_since,
                queue=list(state.queue)[:preview],
                stats=TenantStats(
                    total_received=state.stats.total_received,
                    total_queued=state.stats.total_queued,
                    total_processed=state.stats.total_processed,
                    last_activity=state.stats.last_activity,
                ),
            )

    async def expire_stale(self, timeout: float) -> list[tuple[str, bool]]:
        """Clear active donations older than ``timeout``; return ``(tenant, promoted)`` pairs."""

        expired: list[tuple[str, bool]] = []
        for key in self.tenants():
            async with self.lock(key):
                age = self.active_age(key)
                if age is None or age <= timeout:
                    continue
                self.clear_active(key)
                expired.append((key, self.promote(key)))
        return expired

    async def prune_history(self) -> int:
        """Drop expired ledger entries; forget tenants whose ledger is empty."""

        removed = 0
        now = self._clock()
        for key in list(self._history):
            async with self.lock(key):
                history = self._history.get(key)
                if history is None:
                    continue
                before = len(history)
                history = self._prune(key, now)
                removed += before - len(history)
                if not history:
                    del self._history[key]
        return removed

    def __iter__(self) -> Iterator[str]:
        return iter(self._tenants)

    def __len__(self) -> int:
        return len(self._tenants)
