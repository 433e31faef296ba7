from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, field_validator

_CANONICAL_ADDRESS = re.compile(r"^0x[0-9a-f]{40}$")


class TrackedContract(BaseModel):
    address: str
    dapp_id: str
    dapp_name: str | None = None

    model_config = {"frozen": True}

    @field_validator("address")
    @classmethod
    def canonical_address(cls, value: str) -> str:
        value = value.strip().lower()
        if not _CANONICAL_ADDRESS.match(value):
            raise ValueError(f"not a 20-byte hex address: {value!r}")
        return value


class DAppMetadata(BaseModel):
    website: str | None = None
    twitter: str | None = None
    logo_url: str | None = None
    description: str | None = None


class DAppEntry(BaseModel):
    """One registry record as produced by the scraper/enrichment pipeline.

    `contracts` is kept as raw values: validation happens when the entry
    is expanded into TrackedContract values, so one bad address (or a null
    or a number) never rejects the whole dApp.
    """

    id: str
    name: str | None = None
    category: str | None = None
    contracts: list[Any] = []
    metadata: DAppMetadata = DAppMetadata()
