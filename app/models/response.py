from __future__ import annotations

from pydantic import BaseModel, Field


class ScanProgress(BaseModel):
    current: int
    total: int
    percentage: float
    matches_so_far: int = Field(default=0, alias="matchesSoFar")
    estimated_seconds_remaining: float = Field(
        default=0.0, alias="estimatedSecondsRemaining"
    )

    model_config = {"populate_by_name": True}


class InteractionRecord(BaseModel):
    dapp_id: str = Field(alias="dappId")
    dapp_name: str | None = Field(default=None, alias="dappName")
    contract_addresses: set[str] = Field(default_factory=set, alias="contractAddresses")
    transaction_hashes: set[str] = Field(default_factory=set, alias="transactionHashes")
    first_block: int = Field(alias="firstBlock")
    last_block: int = Field(alias="lastBlock")
    transaction_count: int = Field(default=0, alias="transactionCount")
    event_count: int = Field(default=1, ge=1, alias="eventCount")
    total_gas_used: int = Field(default=0, alias="totalGasUsed")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "dappId": "kuru",
                "dappName": "Kuru",
                "contractAddresses": ["0xc816865f172d640d93712c68a7e1f83f3fa63235"],
                "transactionHashes": [
                    "0x5d1f0c5a4e4b7f3f7c2a9b1e0d3c6a8b9e2f4d1c7a6b5e3d2c1b0a9f8e7d6c5b"
                ],
                "firstBlock": 1204511,
                "lastBlock": 1290330,
                "transactionCount": 1,
                "eventCount": 3,
                "totalGasUsed": 184211,
            }
        },
    }


class InteractionSummary(BaseModel):
    user_address: str = Field(alias="userAddress")
    from_block: int = Field(alias="fromBlock")
    to_block: int = Field(alias="toBlock")
    total_dapps_interacted: int = Field(default=0, alias="totalDappsInteracted")
    total_transactions: int = Field(default=0, alias="totalTransactions")
    interactions: list[InteractionRecord] = []
    scan_completeness: str = Field(default="full", alias="scanCompleteness")  # full, partial
    queries_issued: int = Field(default=0, alias="queriesIssued")
    queries_failed: int = Field(default=0, alias="queriesFailed")

    model_config = {"populate_by_name": True}

    def dapp_ids(self) -> list[str]:
        return [i.dapp_id for i in self.interactions]

    def for_dapp(self, dapp_id: str) -> InteractionRecord | None:
        for interaction in self.interactions:
            if interaction.dapp_id == dapp_id:
                return interaction
        return None


class Classification(BaseModel):
    category: str
    confidence: float
