from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from app.models.chain import BlockRange, LogRecord, TransactionRecord
from app.models.registry import TrackedContract
from app.services.progress import ProgressReporter


@dataclass
class DetectionResult:
    transactions: list[TransactionRecord] = field(default_factory=list)
    logs: list[LogRecord] = field(default_factory=list)
    queries_issued: int = 0
    queries_failed: int = 0


class BaseDetector(ABC):
    @abstractmethod
    async def detect(
        self,
        user_address: str,
        contracts: list[TrackedContract],
        block_range: BlockRange,
        reporter: ProgressReporter | None = None,
    ) -> DetectionResult:
        ...
