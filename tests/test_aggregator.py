from __future__ import annotations

from app.models.chain import BlockRange
from app.services.aggregator import aggregate_interactions, build_contract_index

USER = "0x" + "b" * 40
A = "0x" + "a" * 40
B = "0x" + "c" * 40
C = "0x" + "d" * 40
UNKNOWN = "0x" + "e" * 40
RANGE = BlockRange(0, 1000)


def _aggregate(contracts, txs=(), user_logs=(), contract_logs=(), **kwargs):
    return aggregate_interactions(
        USER, contracts, list(txs), list(user_logs), list(contract_logs), RANGE, **kwargs
    )


class TestBuildContractIndex:
    def test_first_owner_wins(self, make_contract):
        index = build_contract_index(
            [make_contract(address=A, dapp_id="d1"), make_contract(address=A, dapp_id="d2")]
        )
        assert index[A].dapp_id == "d1"


class TestAggregateInteractions:
    def test_empty(self, make_contract):
        summary = _aggregate([make_contract()])
        assert summary.total_dapps_interacted == 0
        assert summary.total_transactions == 0
        assert summary.interactions == []
        assert summary.from_block == 0 and summary.to_block == 1000

    def test_single_transaction(self, make_contract, make_tx):
        summary = _aggregate([make_contract()], txs=[make_tx(hash="0x01", block_number=42)])
        assert summary.total_dapps_interacted == 1
        record = summary.interactions[0]
        assert record.dapp_id == "d1"
        assert record.dapp_name == "DApp One"
        assert record.contract_addresses == {A}
        assert record.transaction_hashes == {"0x01"}
        assert record.first_block == record.last_block == 42
        assert record.transaction_count == 1
        assert record.event_count == 1
        assert record.total_gas_used == 21000

    def test_same_tx_from_every_strategy_counted_once(self, make_contract, make_tx, make_log):
        tx = make_tx(hash="0x01")
        log = make_log(transaction_hash="0x01")
        summary = _aggregate([make_contract()], txs=[tx], user_logs=[log], contract_logs=[log])
        record = summary.interactions[0]
        assert record.transaction_count == 1
        assert record.event_count == 3
        assert summary.total_transactions == 1

    def test_groups_contracts_of_one_dapp(self, make_contract, make_tx):
        contracts = [make_contract(address=A), make_contract(address=B)]
        summary = _aggregate(
            contracts,
            txs=[
                make_tx(hash="0x01", to_address=A, block_number=10),
                make_tx(hash="0x02", to_address=B, block_number=30),
            ],
        )
        assert summary.total_dapps_interacted == 1
        record = summary.interactions[0]
        assert record.contract_addresses == {A, B}
        assert (record.first_block, record.last_block) == (10, 30)
        assert record.total_gas_used == 42000

    def test_separate_dapps(self, make_contract, make_tx, make_log):
        contracts = [
            make_contract(address=A, dapp_id="d1"),
            make_contract(address=B, dapp_id="d2", dapp_name="Two"),
        ]
        summary = _aggregate(
            contracts,
            txs=[make_tx(hash="0x01", to_address=A)],
            contract_logs=[make_log(contract_address=B, transaction_hash="0x02")],
        )
        assert summary.dapp_ids() == ["d1", "d2"]
        assert summary.total_transactions == 2
        assert summary.for_dapp("d2").dapp_name == "Two"
        # gas only comes from direct transactions
        assert summary.for_dapp("d2").total_gas_used == 0

    def test_untracked_addresses_ignored(self, make_contract, make_tx, make_log):
        summary = _aggregate(
            [make_contract()],
            txs=[make_tx(to_address=UNKNOWN)],
            user_logs=[make_log(contract_address=UNKNOWN)],
        )
        assert summary.interactions == []

    def test_contract_creation_skipped(self, make_contract, make_tx):
        summary = _aggregate([make_contract()], txs=[make_tx(to_address=None)])
        assert summary.interactions == []

    def test_attribution_case_insensitive(self, make_contract, make_log):
        log = make_log(contract_address=A.upper().replace("0X", "0x"))
        summary = _aggregate([make_contract()], user_logs=[log])
        assert summary.interactions[0].contract_addresses == {A}

    def test_evidence_is_subset_of_tracked(self, make_contract, make_tx, make_log):
        contracts = [make_contract(address=A), make_contract(address=B, dapp_id="d2")]
        summary = _aggregate(
            contracts,
            txs=[make_tx(hash="0x01", to_address=A), make_tx(hash="0x02", to_address=UNKNOWN)],
            user_logs=[make_log(contract_address=C, transaction_hash="0x03")],
            contract_logs=[make_log(contract_address=B, transaction_hash="0x04")],
        )
        tracked = {c.address for c in contracts}
        for record in summary.interactions:
            assert record.contract_addresses <= tracked
            assert record.first_block <= record.last_block
            assert record.event_count >= 1
        assert summary.total_dapps_interacted == len(summary.interactions)

    def test_shared_contract_attributed_to_first_dapp(self, make_contract, make_tx):
        contracts = [make_contract(address=A, dapp_id="d1"), make_contract(address=A, dapp_id="d2")]
        summary = _aggregate(contracts, txs=[make_tx(to_address=A)])
        assert summary.dapp_ids() == ["d1"]

    def test_completeness(self, make_contract):
        assert _aggregate([make_contract()], queries_issued=4).scan_completeness == "full"
        partial = _aggregate([make_contract()], queries_issued=4, queries_failed=1)
        assert partial.scan_completeness == "partial"
        assert partial.queries_failed == 1
