from __future__ import annotations

import asyncio
import logging

from app.detectors.base import BaseDetector, DetectionResult
from app.models.chain import BlockRange, LogRecord
from app.models.registry import TrackedContract
from app.services.hypersync import HyperSyncClient
from app.services.progress import ProgressReporter
from app.utils.address import pad_evm_address
from app.utils.errors import BackendQueryFailure

logger = logging.getLogger("detector.event_topic")

# Indexed parameter slots; topic0 is the event signature
USER_TOPIC_SLOTS = (1, 2, 3)


def topic_filter_for_slot(padded_address: str, slot: int) -> list[list[str] | None]:
    """Positional topics filter constraining only `slot` to the address."""
    topics: list[list[str] | None] = [None] * slot
    topics.append([padded_address])
    return topics


class UserTopicLogDetector(BaseDetector):
    """Find logs, from any contract, that carry the wallet as an indexed topic.

    Catches relayed calls and meta-transactions where the wallet shows up
    in an event without being the transaction sender. The contract set is
    not used for filtering here: attribution happens at merge time.
    """

    def __init__(self, client: HyperSyncClient):
        self._client = client

    async def _query_slot(
        self, padded_user: str, slot: int, block_range: BlockRange
    ) -> list[LogRecord] | None:
        try:
            return await self._client.query_logs(
                block_range, topics=topic_filter_for_slot(padded_user, slot)
            )
        except BackendQueryFailure as e:
            logger.warning(f"Log query (topic{slot}) failed: {e}")
            return None

    async def detect(
        self,
        user_address: str,
        contracts: list[TrackedContract],
        block_range: BlockRange,
        reporter: ProgressReporter | None = None,
    ) -> DetectionResult:
        result = DetectionResult()
        padded_user = pad_evm_address(user_address)

        responses = await asyncio.gather(
            *(self._query_slot(padded_user, slot, block_range) for slot in USER_TOPIC_SLOTS)
        )
        result.queries_issued = len(USER_TOPIC_SLOTS)

        seen: set[tuple[str, int]] = set()
        for logs in responses:
            if logs is None:
                result.queries_failed += 1
                continue
            for log in logs:
                if log.key not in seen:
                    seen.add(log.key)
                    result.logs.append(log)

        logger.info(f"{len(result.logs)} logs reference {user_address} in topics")
        return result
