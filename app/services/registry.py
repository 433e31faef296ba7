from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from app.config import settings
from app.models.registry import DAppEntry, TrackedContract
from app.utils.errors import RegistryUnavailable

logger = logging.getLogger("registry")


def expand_entries(
    entries: list[DAppEntry], dapp_id: str | None = None
) -> list[TrackedContract]:
    """Turn registry entries into validated TrackedContract values.

    Invalid addresses are logged and dropped. The same address listed twice
    under one dApp collapses to a single contract.
    """
    contracts: list[TrackedContract] = []
    seen: set[tuple[str, str]] = set()

    for entry in entries:
        if dapp_id is not None and entry.id != dapp_id:
            continue
        for raw_address in entry.contracts:
            try:
                contract = TrackedContract(
                    address=raw_address, dapp_id=entry.id, dapp_name=entry.name
                )
            except ValidationError:
                logger.warning(
                    f"Ignoring invalid contract address {raw_address!r} for dApp {entry.id}"
                )
                continue
            key = (contract.address, contract.dapp_id)
            if key in seen:
                continue
            seen.add(key)
            contracts.append(contract)

    return contracts


class ContractRegistry(ABC):
    """Read-only source of tracked contracts."""

    @abstractmethod
    def dapps(self) -> list[DAppEntry]:
        ...

    def load_tracked_contracts(self, dapp_id: str | None = None) -> list[TrackedContract]:
        return expand_entries(self.dapps(), dapp_id)


class InMemoryRegistry(ContractRegistry):
    def __init__(self, entries: list[DAppEntry] | None = None):
        self._entries = list(entries or [])

    def dapps(self) -> list[DAppEntry]:
        return list(self._entries)


class JsonDirectoryRegistry(ContractRegistry):
    """One JSON file per dApp, re-read on every call.

    Each load is a fresh snapshot, so a scan sees the registry as it was
    when the scan started.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def dapps(self) -> list[DAppEntry]:
        if not self._path.is_dir():
            raise RegistryUnavailable(f"Registry directory not found: {self._path}")

        try:
            files = sorted(self._path.glob("*.json"))
        except OSError as e:
            raise RegistryUnavailable(f"Cannot list registry {self._path}: {e}") from e

        entries: list[DAppEntry] = []
        for dapp_file in files:
            try:
                data = json.loads(dapp_file.read_text())
                entries.append(DAppEntry(**data))
            except (OSError, ValueError, TypeError) as e:
                logger.error(f"Failed to load {dapp_file}: {e}")

        logger.debug(f"Loaded {len(entries)} dApps from {self._path}")
        return entries


_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def _registry_path(configured: str) -> Path:
    path = Path(configured)
    return path if path.is_absolute() else _PROJECT_ROOT / path


contract_registry = JsonDirectoryRegistry(_registry_path(settings.registry_dir))
