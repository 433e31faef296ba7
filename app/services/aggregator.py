from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.models.chain import BlockRange, LogRecord, TransactionRecord
from app.models.registry import TrackedContract
from app.models.response import InteractionRecord, InteractionSummary

logger = logging.getLogger("aggregator")


@dataclass
class _DappAccumulator:
    dapp_id: str
    dapp_name: str | None
    contract_addresses: set[str] = field(default_factory=set)
    transaction_hashes: set[str] = field(default_factory=set)
    first_block: int | None = None
    last_block: int | None = None
    event_count: int = 0
    total_gas_used: int = 0

    def add(self, contract_address: str, tx_hash: str | None, block_number: int) -> None:
        self.contract_addresses.add(contract_address)
        if tx_hash:
            self.transaction_hashes.add(tx_hash)
        if self.first_block is None or block_number < self.first_block:
            self.first_block = block_number
        if self.last_block is None or block_number > self.last_block:
            self.last_block = block_number
        self.event_count += 1

    def to_record(self) -> InteractionRecord:
        return InteractionRecord(
            dapp_id=self.dapp_id,
            dapp_name=self.dapp_name,
            contract_addresses=set(self.contract_addresses),
            transaction_hashes=set(self.transaction_hashes),
            first_block=self.first_block,
            last_block=self.last_block,
            transaction_count=len(self.transaction_hashes),
            event_count=self.event_count,
            total_gas_used=self.total_gas_used,
        )


def build_contract_index(contracts: list[TrackedContract]) -> dict[str, TrackedContract]:
    index: dict[str, TrackedContract] = {}
    for contract in contracts:
        owner = index.get(contract.address)
        if owner is not None and owner.dapp_id != contract.dapp_id:
            logger.warning(
                f"{contract.address} is listed under {owner.dapp_id} and "
                f"{contract.dapp_id}; attributing to {owner.dapp_id}"
            )
            continue
        index[contract.address] = contract
    return index


def aggregate_interactions(
    user_address: str,
    contracts: list[TrackedContract],
    direct_transactions: list[TransactionRecord],
    user_logs: list[LogRecord],
    contract_logs: list[LogRecord],
    block_range: BlockRange,
    queries_issued: int = 0,
    queries_failed: int = 0,
) -> InteractionSummary:
    """Group matched evidence by dApp.

    Evidence is folded in a fixed order: direct transactions, then logs
    that name the wallet in a topic, then logs pulled from the tracked
    contracts. Addresses that no tracked dApp owns are ignored.
    `event_count` grows once per evidence item even when the contract and
    transaction were already recorded.
    """
    index = build_contract_index(contracts)
    by_dapp: dict[str, _DappAccumulator] = {}

    def accumulator_for(address: str | None) -> _DappAccumulator | None:
        if not address:
            return None
        contract = index.get(address.lower())
        if contract is None:
            return None
        acc = by_dapp.get(contract.dapp_id)
        if acc is None:
            acc = _DappAccumulator(dapp_id=contract.dapp_id, dapp_name=contract.dapp_name)
            by_dapp[contract.dapp_id] = acc
        return acc

    for tx in direct_transactions:
        # Contract creations carry no `to`
        acc = accumulator_for(tx.to_address)
        if acc is None:
            continue
        acc.add(tx.to_address.lower(), tx.hash, tx.block_number)
        acc.total_gas_used += tx.gas_used

    for log in [*user_logs, *contract_logs]:
        acc = accumulator_for(log.contract_address)
        if acc is None:
            continue
        acc.add(log.contract_address.lower(), log.transaction_hash, log.block_number)

    interactions = [acc.to_record() for acc in by_dapp.values()]
    total_transactions = sum(i.transaction_count for i in interactions)

    return InteractionSummary(
        user_address=user_address,
        from_block=block_range.from_block,
        to_block=block_range.to_block,
        total_dapps_interacted=len(interactions),
        total_transactions=total_transactions,
        interactions=interactions,
        scan_completeness="partial" if queries_failed else "full",
        queries_issued=queries_issued,
        queries_failed=queries_failed,
    )
