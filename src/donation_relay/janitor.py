"""Periodic sweep recovering stuck active donations and pruning dedupe history."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from .queue import DonationStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
    expired: list[str] = field(default_factory=list)
    promoted: list[str] = field(default_factory=list)
    pruned_history: int = 0


class Janitor:
    """Runs :meth:`sweep` every ``interval`` seconds on the event loop."""

    def __init__(self, store: DonationStore, interval: float = 10.0, active_timeout: float = 60.0) -> None:
        self._store = store
        self._interval = interval
        self._active_timeout = active_timeout
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop(), name="janitor")
        logger.info("janitor.started", extra={"interval": self._interval, "timeout": self._active_timeout})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("janitor.stopped")

    async def sweep(self) -> SweepReport:
        report = SweepReport()
        for tenant, promoted in await self._store.expire_stale(self._active_timeout):
            report.expired.append(tenant)
            if promoted:
                report.promoted.append(tenant)
            logger.warning("janitor.expired", extra={"tenant": tenant, "promoted": promoted})
        report.pruned_history = await self._store.prune_history()
        return report

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep()
            except Exception as exc:  # pragma: no cover - keep ticking
                logger.exception("janitor.sweep_failed", exc_info=exc)
