from __future__ import annotations

import asyncio
import logging

from app.config import settings
from app.detectors.base import BaseDetector, DetectionResult
from app.models.chain import BlockRange, LogRecord
from app.models.registry import TrackedContract
from app.services.hypersync import HyperSyncClient
from app.services.progress import ProgressReporter
from app.utils.address import address_in_data, pad_evm_address
from app.utils.errors import BackendQueryFailure

logger = logging.getLogger("detector.contract_logs")


def user_involved(log: LogRecord, user_address: str, padded_user: str) -> bool:
    """Wallet sent the enclosing tx, sits in a topic, or appears in the data."""
    user = user_address.lower()
    padded = padded_user.lower()
    if log.transaction_from and log.transaction_from.lower() == user:
        return True
    if any(topic.lower() == padded for topic in log.topics):
        return True
    return address_in_data(user, log.data)


def chunk(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class ContractLogDetector(BaseDetector):
    """Pull every log emitted by the tracked contracts and keep the wallet's.

    Contracts are queried in address batches with a bounded number of
    batches in flight at once.
    """

    def __init__(
        self,
        client: HyperSyncClient,
        batch_size: int | None = None,
        concurrency: int | None = None,
    ):
        self._client = client
        self._batch_size = max(1, batch_size or settings.contract_log_batch_size)
        self._concurrency = max(1, concurrency or settings.contract_log_concurrency)

    async def detect(
        self,
        user_address: str,
        contracts: list[TrackedContract],
        block_range: BlockRange,
        reporter: ProgressReporter | None = None,
    ) -> DetectionResult:
        result = DetectionResult()
        padded_user = pad_evm_address(user_address)
        addresses = list(dict.fromkeys(c.address for c in contracts))
        batches = chunk(addresses, self._batch_size)
        semaphore = asyncio.Semaphore(self._concurrency)

        async def fetch(batch: list[str]) -> list[LogRecord] | None:
            async with semaphore:
                try:
                    return await self._client.query_logs(
                        block_range, addresses=batch, with_sender=True
                    )
                except BackendQueryFailure as e:
                    logger.warning(
                        f"Contract log query failed for batch of {len(batch)} "
                        f"starting at {batch[0]}: {e}"
                    )
                    return None

        responses = await asyncio.gather(*(fetch(b) for b in batches))
        result.queries_issued = len(batches)

        scanned = 0
        seen: set[tuple[str, int]] = set()
        for logs in responses:
            if logs is None:
                result.queries_failed += 1
                continue
            scanned += len(logs)
            for log in logs:
                if log.key in seen or not user_involved(log, user_address, padded_user):
                    continue
                seen.add(log.key)
                result.logs.append(log)

        logger.info(
            f"{len(result.logs)}/{scanned} logs from {len(addresses)} contracts "
            f"involve {user_address}"
        )
        return result
