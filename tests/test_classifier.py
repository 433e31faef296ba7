from __future__ import annotations

import pytest

from app.services.classifier import EVENT_SIGNATURES, DAppCategory, classify, event_names


class TestEventNames:
    def test_resolves_known_hashes(self):
        assert event_names([EVENT_SIGNATURES["Swap"]]) == {"Swap"}

    def test_hash_lookup_case_insensitive(self):
        assert event_names([EVENT_SIGNATURES["Swap"].upper().replace("0X", "0x")]) == {"Swap"}

    def test_unknown_hash_dropped(self):
        assert event_names(["0x" + "f" * 64]) == set()

    def test_plain_names_pass_through(self):
        assert event_names(["Borrow", "Repay"]) == {"Borrow", "Repay"}


class TestClassify:
    @pytest.mark.parametrize(
        "events,category",
        [
            (["Swap", "Sync"], "DEX"),
            (["Borrow", "Repay"], "LENDING"),
            (["TransferSingle"], "NFT"),
            (["OrderFilled", "ItemSold"], "NFT_MARKETPLACE"),
            (["Transfer", "Approval"], "TOKEN"),
            (["Stake"], "DEFI"),
            (["ProposalCreated", "VoteCast"], "GOVERNANCE"),
            (["TokensLocked"], "BRIDGE"),
        ],
    )
    def test_categories(self, events, category):
        assert classify(events).category == category

    def test_nothing_known_is_unknown(self):
        result = classify(["SomethingElse"])
        assert result.category == DAppCategory.UNKNOWN.value
        assert result.confidence == pytest.approx(1 / 15)

    def test_empty_is_unknown(self):
        assert classify([]).category == "UNKNOWN"

    def test_confidence_capped(self):
        assert classify(["Swap", "Sync", "PairCreated"]).confidence == 1.0

    def test_partial_confidence(self):
        result = classify(["Transfer"])
        assert result.category == "TOKEN"
        assert result.confidence == pytest.approx(5 / 15)

    def test_deposit_without_borrow_leans_defi(self):
        # Deposit+Withdraw scores LENDING 10, Deposit alone adds DEFI 8
        assert classify(["Deposit", "Withdraw"]).category == "LENDING"
        assert classify(["Deposit"]).category == "DEFI"

    def test_tie_goes_to_first_declared(self):
        # DEX and LENDING both 15
        assert classify(["Swap", "Borrow"]).category == "DEX"

    def test_accepts_topic_hashes(self):
        sigs = {EVENT_SIGNATURES["ProposalCreated"], EVENT_SIGNATURES["VoteCast"]}
        assert classify(sigs).category == "GOVERNANCE"
