from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from app.models.chain import BlockRange, LogRecord, TransactionRecord
from app.models.registry import DAppEntry, TrackedContract
from app.utils.errors import BackendQueryFailure


class FakeChain:
    """In-memory stand-in for HyperSyncClient with the same filter semantics."""

    def __init__(
        self,
        transactions: list[TransactionRecord] | None = None,
        logs: list[LogRecord] | None = None,
        height: int = 1000,
        fail_when=None,
    ):
        self.transactions = list(transactions or [])
        self.logs = list(logs or [])
        self.height = height
        self.fail_when = fail_when
        self.calls: list[tuple[str, dict]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def _maybe_fail(self, kind: str, kwargs: dict) -> None:
        self.calls.append((kind, kwargs))
        if self.fail_when is not None and self.fail_when(kind, kwargs):
            raise BackendQueryFailure(f"simulated {kind} failure")

    async def get_current_height(self) -> int:
        self.calls.append(("height", {}))
        return self.height

    async def query_transactions(
        self,
        block_range: BlockRange,
        from_address: str | None = None,
        to_address: str | None = None,
    ) -> list[TransactionRecord]:
        self._maybe_fail("transactions", {"from_address": from_address, "to_address": to_address})
        await asyncio.sleep(0)
        return [
            tx for tx in self.transactions
            if block_range.from_block <= tx.block_number <= block_range.to_block
            and (from_address is None or tx.from_address == from_address)
            and (to_address is None or tx.to_address == to_address)
        ]

    async def query_logs(
        self,
        block_range: BlockRange,
        addresses: list[str] | None = None,
        topics: list[list[str] | None] | None = None,
        with_sender: bool = False,
    ) -> list[LogRecord]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self._maybe_fail(
                "logs", {"addresses": addresses, "topics": topics, "with_sender": with_sender}
            )
            await asyncio.sleep(0.001)
            senders = {tx.hash: tx.from_address for tx in self.transactions}
            matched = []
            for log in self.logs:
                if not block_range.from_block <= log.block_number <= block_range.to_block:
                    continue
                if addresses and log.contract_address not in addresses:
                    continue
                if topics and not _topics_match(log.topics, topics):
                    continue
                sender = senders.get(log.transaction_hash) if with_sender else None
                matched.append(replace(log, transaction_from=sender))
            return matched
        finally:
            self.in_flight -= 1


def _topics_match(log_topics: list[str], wanted: list[list[str] | None]) -> bool:
    for slot, allowed in enumerate(wanted):
        if not allowed:
            continue
        if slot >= len(log_topics) or log_topics[slot] not in allowed:
            return False
    return True


@pytest.fixture
def make_chain():
    """Factory fixture for FakeChain backends."""

    def _make(**kwargs) -> FakeChain:
        return FakeChain(**kwargs)

    return _make


@pytest.fixture
def make_contract():
    def _make(
        address: str = "0x" + "a" * 40,
        dapp_id: str = "d1",
        dapp_name: str | None = "DApp One",
    ) -> TrackedContract:
        return TrackedContract(address=address, dapp_id=dapp_id, dapp_name=dapp_name)

    return _make


@pytest.fixture
def make_dapp():
    def _make(
        id: str = "d1",
        name: str | None = "DApp One",
        contracts: list[str] | None = None,
        category: str | None = None,
    ) -> DAppEntry:
        return DAppEntry(id=id, name=name, contracts=contracts or [], category=category)

    return _make


@pytest.fixture
def make_tx():
    def _make(
        hash: str = "0x" + "1" * 64,
        from_address: str = "0x" + "b" * 40,
        to_address: str | None = "0x" + "a" * 40,
        block_number: int = 100,
        gas_used: int = 21000,
    ) -> TransactionRecord:
        return TransactionRecord(
            hash=hash,
            from_address=from_address,
            to_address=to_address,
            block_number=block_number,
            gas_used=gas_used,
        )

    return _make


@pytest.fixture
def make_log():
    def _make(
        contract_address: str = "0x" + "a" * 40,
        topics: list[str] | None = None,
        data: str = "0x",
        block_number: int = 100,
        transaction_hash: str = "0x" + "2" * 64,
        log_index: int = 0,
        transaction_from: str | None = None,
    ) -> LogRecord:
        return LogRecord(
            contract_address=contract_address,
            topics=topics or [],
            data=data,
            block_number=block_number,
            transaction_hash=transaction_hash,
            log_index=log_index,
            transaction_from=transaction_from,
        )

    return _make
