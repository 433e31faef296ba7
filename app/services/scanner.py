from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum

from app.config import settings
from app.detectors.base import DetectionResult
from app.detectors.contract_logs import ContractLogDetector
from app.detectors.event_topic import UserTopicLogDetector
from app.detectors.tx_to import DirectTransactionDetector
from app.models.chain import BlockRange
from app.models.response import InteractionRecord, InteractionSummary
from app.services.aggregator import aggregate_interactions
from app.services.hypersync import HyperSyncClient, hypersync_client
from app.services.progress import ProgressReporter
from app.services.registry import ContractRegistry, contract_registry
from app.utils.address import normalize_address, validate_evm_address
from app.utils.errors import InvalidAddress, InvalidBlockRange, ScanError

logger = logging.getLogger("scanner")


class ScanState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    SCANNING_DIRECT = "scanning_direct"
    SCANNING_USER_LOGS = "scanning_user_logs"
    SCANNING_CONTRACT_LOGS = "scanning_contract_logs"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[ScanState, set[ScanState]] = {
    ScanState.IDLE: {ScanState.INITIALIZING},
    ScanState.INITIALIZING: {ScanState.SCANNING_DIRECT, ScanState.DONE, ScanState.FAILED},
    ScanState.SCANNING_DIRECT: {ScanState.SCANNING_USER_LOGS, ScanState.FAILED},
    ScanState.SCANNING_USER_LOGS: {ScanState.SCANNING_CONTRACT_LOGS, ScanState.FAILED},
    ScanState.SCANNING_CONTRACT_LOGS: {ScanState.MERGING, ScanState.FAILED},
    ScanState.MERGING: {ScanState.DONE},
    ScanState.DONE: set(),
    ScanState.FAILED: set(),
}


class ScanSession:
    """State of one scan invocation. Never shared between scans."""

    def __init__(self, user_address: str):
        self.user_address = user_address
        self.state = ScanState.IDLE
        self.history: list[ScanState] = [ScanState.IDLE]
        self.started_at = time.monotonic()

    def transition(self, new_state: ScanState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal scan transition {self.state.value} → {new_state.value}")
        logger.debug(f"[{self.user_address}] {self.state.value} → {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


def _total(results: list[DetectionResult], attr: str) -> int:
    return sum(getattr(r, attr) for r in results)


class InteractionScanner:
    def __init__(
        self,
        client: HyperSyncClient,
        registry: ContractRegistry,
        direct_detector: DirectTransactionDetector | None = None,
        user_log_detector: UserTopicLogDetector | None = None,
        contract_log_detector: ContractLogDetector | None = None,
    ):
        self._client = client
        self._registry = registry
        self._direct = direct_detector or DirectTransactionDetector(client)
        self._user_logs = user_log_detector or UserTopicLogDetector(client)
        self._contract_logs = contract_log_detector or ContractLogDetector(client)

    async def resolve_range(self, from_block: int | None, to_block: int | None) -> BlockRange:
        """Concrete inclusive range for a request; the open end is the chain head."""
        if (from_block is not None and from_block < 0) or (to_block is not None and to_block < 0):
            raise InvalidBlockRange(from_block, to_block)

        start = from_block if from_block is not None else 0
        if to_block is None:
            height = await self._client.get_current_height()
            # A start beyond the head is not an error: the scan just finds nothing
            end = max(height, start)
        elif to_block < start:
            raise InvalidBlockRange(from_block, to_block)
        else:
            end = to_block
        return BlockRange(start, end)

    async def scan(
        self,
        user_address: str,
        from_block: int | None = None,
        to_block: int | None = None,
        dapp_id: str | None = None,
        reporter: ProgressReporter | None = None,
    ) -> InteractionSummary:
        """Find the tracked dApps a wallet interacted with over a block range.

        Raises InvalidAddress, InvalidBlockRange or RegistryUnavailable before
        any chain query is made. Backend failures after that only degrade
        the result (`scan_completeness == "partial"`).
        """
        session = ScanSession(user_address)
        session.transition(ScanState.INITIALIZING)

        try:
            if not isinstance(user_address, str) or not validate_evm_address(user_address.strip()):
                raise InvalidAddress(str(user_address))
            wallet = normalize_address(user_address)
            session.user_address = wallet

            # Registry reads hit the filesystem; keep them off the event loop
            contracts = await asyncio.to_thread(self._registry.load_tracked_contracts, dapp_id)
            block_range = await self.resolve_range(from_block, to_block)
        except ScanError as e:
            logger.warning(f"Scan rejected for {user_address}: {e}")
            session.transition(ScanState.FAILED)
            raise

        logger.info(
            f"Scanning {wallet} over blocks {block_range.from_block}-{block_range.to_block} "
            f"against {len(contracts)} contracts"
            + (f" of dApp {dapp_id}" if dapp_id else "")
        )

        if not contracts:
            logger.info("No tracked contracts, nothing to scan")
            session.transition(ScanState.DONE)
            return aggregate_interactions(wallet, [], [], [], [], block_range)

        session.transition(ScanState.SCANNING_DIRECT)
        direct = await self._direct.detect(wallet, contracts, block_range, reporter)

        session.transition(ScanState.SCANNING_USER_LOGS)
        user_logs = await self._user_logs.detect(wallet, contracts, block_range, reporter)

        session.transition(ScanState.SCANNING_CONTRACT_LOGS)
        contract_logs = await self._contract_logs.detect(wallet, contracts, block_range, reporter)

        session.transition(ScanState.MERGING)
        results = [direct, user_logs, contract_logs]
        queries_issued = _total(results, "queries_issued")
        queries_failed = _total(results, "queries_failed")
        summary = aggregate_interactions(
            wallet,
            contracts,
            direct.transactions,
            user_logs.logs,
            contract_logs.logs,
            block_range,
            queries_issued=queries_issued,
            queries_failed=queries_failed,
        )

        if queries_issued and queries_failed / queries_issued >= settings.degraded_failure_ratio:
            logger.warning(
                f"Degraded scan for {wallet}: {queries_failed}/{queries_issued} queries failed"
            )

        session.transition(ScanState.DONE)
        logger.info(
            f"Scan complete for {wallet}: {summary.total_dapps_interacted} dApps, "
            f"{summary.total_transactions} tx, {session.elapsed:.1f}s, "
            f"completeness={summary.scan_completeness}"
        )
        return summary

    async def has_interacted(
        self,
        user_address: str,
        dapp_id: str,
        from_block: int | None = None,
        to_block: int | None = None,
    ) -> InteractionRecord | None:
        summary = await self.scan(user_address, from_block, to_block, dapp_id=dapp_id)
        return summary.for_dapp(dapp_id)

    async def interacted_dapp_ids(
        self,
        user_address: str,
        from_block: int | None = None,
        to_block: int | None = None,
    ) -> list[str]:
        summary = await self.scan(user_address, from_block, to_block)
        return summary.dapp_ids()


interaction_scanner = InteractionScanner(hypersync_client, contract_registry)
