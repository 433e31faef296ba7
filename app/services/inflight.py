from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from app.models.chain import BlockRange
from app.models.response import InteractionSummary
from app.services.progress import ProgressReporter

logger = logging.getLogger("inflight")

ScanFactory = Callable[[ProgressReporter], Awaitable[InteractionSummary]]


@dataclass
class InFlightScan:
    key: str
    task: asyncio.Task
    reporter: ProgressReporter
    # Resolved range being scanned, when the starter knew it up front
    block_range: BlockRange | None = None


class InFlightScans:
    """Keyed map of running scans so identical requests share one scan.

    Owned by whoever creates it (the application), not a module global.
    Joining a running scan gives access to its reporter from that point on;
    earlier progress updates are not replayed.
    """

    def __init__(self):
        self._scans: dict[str, InFlightScan] = {}

    def get_or_start(self, key: str, factory: ScanFactory) -> tuple[InFlightScan, bool]:
        """Return (scan, started) where `started` is False for a joined scan."""
        existing = self._scans.get(key)
        if existing is not None and not existing.task.done():
            logger.info(f"Joining in-flight scan {key}")
            return existing, False

        reporter = ProgressReporter()
        task = asyncio.ensure_future(factory(reporter))
        scan = InFlightScan(key=key, task=task, reporter=reporter)
        self._scans[key] = scan
        task.add_done_callback(lambda t, k=key: self._finished(k, t))
        return scan, True

    async def run(self, key: str, factory: ScanFactory) -> InteractionSummary:
        scan, _ = self.get_or_start(key, factory)
        return await asyncio.shield(scan.task)

    def _finished(self, key: str, task: asyncio.Task) -> None:
        current = self._scans.get(key)
        if current is not None and current.task is task:
            del self._scans[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"In-flight scan {key} ended with {task.exception()!r}")

    def __contains__(self, key: str) -> bool:
        return key in self._scans

    @property
    def size(self) -> int:
        return len(self._scans)


def scan_key(user_address: str, from_block: int | None, to_block: int | None) -> str:
    start = "" if from_block is None else from_block
    end = "" if to_block is None else to_block
    return f"{user_address.lower()}:{start}:{end}"
