from __future__ import annotations

import logging

from app.config import settings
from app.detectors.base import BaseDetector, DetectionResult
from app.models.chain import BlockRange
from app.models.registry import TrackedContract
from app.services.hypersync import HyperSyncClient
from app.services.progress import ProgressReporter, ProgressTracker
from app.utils.errors import BackendQueryFailure

logger = logging.getLogger("detector.tx_to")


class DirectTransactionDetector(BaseDetector):
    """Find transactions sent by the wallet straight to a tracked contract.

    One `{from: wallet, to: contract}` query per contract instead of a bulk
    "everything the wallet ever sent" query: each answer is bounded by the
    wallet's activity on a single contract.
    """

    def __init__(
        self,
        client: HyperSyncClient,
        progress_interval: float | None = None,
        progress_every: int | None = None,
    ):
        self._client = client
        self._progress_interval = (
            progress_interval if progress_interval is not None
            else settings.progress_interval_seconds
        )
        self._progress_every = (
            progress_every if progress_every is not None
            else settings.progress_every_contracts
        )

    async def detect(
        self,
        user_address: str,
        contracts: list[TrackedContract],
        block_range: BlockRange,
        reporter: ProgressReporter | None = None,
    ) -> DetectionResult:
        result = DetectionResult()
        seen_hashes: set[str] = set()
        addresses = list(dict.fromkeys(c.address for c in contracts))
        tracker = ProgressTracker(
            len(addresses), self._progress_interval, self._progress_every
        )

        for contract_address in addresses:
            result.queries_issued += 1
            try:
                txs = await self._client.query_transactions(
                    block_range,
                    from_address=user_address,
                    to_address=contract_address,
                )
            except BackendQueryFailure as e:
                result.queries_failed += 1
                logger.warning(f"Transaction query failed for {contract_address}: {e}")
                txs = []

            for tx in txs:
                if tx.hash not in seen_hashes:
                    seen_hashes.add(tx.hash)
                    result.transactions.append(tx)

            update = tracker.advance(len(result.transactions))
            if update is not None:
                logger.info(
                    f"{update.current}/{update.total} ({update.percentage:.1f}%) | "
                    f"{update.matches_so_far} tx | ~{update.estimated_seconds_remaining:.0f}s"
                )
                if reporter is not None:
                    reporter.emit(update)

        return result
