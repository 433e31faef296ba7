from __future__ import annotations

from enum import Enum

from app.models.response import Classification


class DAppCategory(str, Enum):
    DEX = "DEX"
    LENDING = "LENDING"
    TOKEN = "TOKEN"
    NFT = "NFT"
    NFT_MARKETPLACE = "NFT_MARKETPLACE"
    GOVERNANCE = "GOVERNANCE"
    BRIDGE = "BRIDGE"
    DEFI = "DEFI"
    UNKNOWN = "UNKNOWN"


# topic0 hashes of well-known events
EVENT_SIGNATURES = {
    "Transfer": "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef",
    "Approval": "0x8c5be1e5ebec7d5bd14f71427d1e84f3dd0314c0f7b2291e5b200ac8c7c3b925",
    "Swap": "0xd78ad95fa46c994b6551d0da85fc275fe613ce37657fb8d5e3d130840159d822",
    "Sync": "0x1c411e9a96e071241c2f21f7726b17ae89e3cab4c78be50e062b03a9fffbbad1",
    "Mint": "0x4c209b5fc8ad50758f13e2e1088ba56a560dff690a1c6fef26394f4c03821c4f",
    "Burn": "0xdccd412f0b1252819cb1fd330b93224ca42612892bb3f4f789976e6d81936496",
    "PairCreated": "0x0d3648bd0f6ba80134a33ba9275ac585d9d315f0ad8355cddefde31afa28d0e9",
    "TransferSingle": "0xc3d58168c5ae7397731d063d5bbf3d657854427343f4c083240f7aacaa2d0f62",
    "TransferBatch": "0x4a39dc06d4c0dbc64b70af90fd698a233a518aa5d07e595d983b8c0526c8f7fb",
    "Deposit": "0xe1fffcc4923d04b559f4d29a8bfc6cda04eb5b0d3c460751c2402c5c5cc9109c",
    "Withdraw": "0x884edad9ce6fa2440d8a54cc123490eb96d2768479d49ff9c7366125a9424364",
    "Borrow": "0x13ed6866d4e1ee6da46f845c46d7e54120883d75c5ea9a2dacc1c4ca8984ab80",
    "Repay": "0x1a2a22cb034d26d1854bdc6666a5b91fe25efbbb5dcad3b0355478d6f5c362a1",
    "Stake": "0x9e71bc8eea02a63969f509818f2dafb9254532904319f9dbda79b67bd34a5f3d",
    "ProposalCreated": "0x7d84a6263ae0d98d3329bd7b46bb4e8d6f98cd35a7adb45c274c8b7fd5ebd5e0",
    "VoteCast": "0xb8e138887d0aa13bab447e82de9d5c1777041ecd21ca36ba824ff1e6c07ddda4",
    "TokensLocked": "0x9b1bfa7fa9ee420a16e124f794c35ac9f90472acc99140eb2f6447c714cad8eb",
    "TokensUnlocked": "0x0f0bc5b519dbd37e22a6a9ca6e4d8eb3e1f3e8e7f73e3f8e0f6c5f4e3f2f1f0e",
    "OrderFilled": "0x9d9af8e38d66c62e2c12f0225249fd9d721c54b83f48d9352c97c6cacdcb6f31",
    "ItemSold": "0x2e95b6c8b1e6b5c3f5a7f9b8c6d4e2f3b5c7d8e9f1a2b3c4d5e6f7a8b9c0d1e2",
}

_NAME_BY_SIGNATURE = {sig: name for name, sig in EVENT_SIGNATURES.items()}

# Score that maps to full confidence
FULL_CONFIDENCE_SCORE = 15


def event_names(event_signatures: set[str] | list[str]) -> set[str]:
    """Resolve topic0 hashes to event names; plain names pass through."""
    names: set[str] = set()
    for sig in event_signatures:
        if sig.startswith("0x"):
            name = _NAME_BY_SIGNATURE.get(sig.lower())
            if name:
                names.add(name)
        else:
            names.add(sig)
    return names


def classify(event_signatures: set[str] | list[str]) -> Classification:
    """Guess what kind of dApp emits a given set of events.

    Heuristic only: used to tag dApps, never to decide whether a wallet
    interacted with one.
    """
    names = event_names(event_signatures)
    has = names.__contains__
    scores = {category: 0 for category in DAppCategory}

    if has("Swap"):
        scores[DAppCategory.DEX] += 15
    if has("Sync"):
        scores[DAppCategory.DEX] += 10
    if has("PairCreated"):
        scores[DAppCategory.DEX] += 12
    if has("Mint") and has("Burn"):
        scores[DAppCategory.DEX] += 8

    if has("Borrow"):
        scores[DAppCategory.LENDING] += 15
    if has("Repay"):
        scores[DAppCategory.LENDING] += 15
    if has("Deposit") and has("Withdraw"):
        scores[DAppCategory.LENDING] += 10

    if has("TransferSingle"):
        scores[DAppCategory.NFT] += 15
    if has("TransferBatch"):
        scores[DAppCategory.NFT] += 15

    if has("OrderFilled"):
        scores[DAppCategory.NFT_MARKETPLACE] += 15
    if has("ItemSold"):
        scores[DAppCategory.NFT_MARKETPLACE] += 15
    if has("Transfer") and (has("TransferSingle") or has("TransferBatch")):
        scores[DAppCategory.NFT_MARKETPLACE] += 8

    if has("Transfer"):
        scores[DAppCategory.TOKEN] += 5
    if has("Approval"):
        scores[DAppCategory.TOKEN] += 3

    if has("Stake"):
        scores[DAppCategory.DEFI] += 12
    if has("Deposit") and not has("Borrow"):
        scores[DAppCategory.DEFI] += 8

    if has("ProposalCreated"):
        scores[DAppCategory.GOVERNANCE] += 15
    if has("VoteCast"):
        scores[DAppCategory.GOVERNANCE] += 15

    if has("TokensLocked"):
        scores[DAppCategory.BRIDGE] += 15
    if has("TokensUnlocked"):
        scores[DAppCategory.BRIDGE] += 15

    if not any(scores.values()):
        scores[DAppCategory.UNKNOWN] = 1

    # First category wins ties, in declaration order
    best, best_score = DAppCategory.UNKNOWN, 0
    for category, score in scores.items():
        if score > best_score:
            best, best_score = category, score

    return Classification(
        category=best.value,
        confidence=min(best_score / FULL_CONFIDENCE_SCORE, 1.0),
    )
