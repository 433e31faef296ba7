from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BlockRange:
    """Inclusive [from_block, to_block] span."""

    from_block: int
    to_block: int

    def __post_init__(self):
        if self.from_block < 0 or self.to_block < self.from_block:
            raise ValueError(
                f"invalid block range [{self.from_block}, {self.to_block}]"
            )


@dataclass
class TransactionRecord:
    hash: str
    from_address: str
    to_address: str | None
    block_number: int
    gas_used: int = 0


@dataclass
class LogRecord:
    contract_address: str
    topics: list[str] = field(default_factory=list)
    data: str = "0x"
    block_number: int = 0
    transaction_hash: str = ""
    log_index: int = 0
    # Sender of the enclosing transaction, when it was selected alongside the log
    transaction_from: str | None = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.transaction_hash, self.log_index)
