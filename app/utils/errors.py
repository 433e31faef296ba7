from __future__ import annotations

from fastapi.responses import JSONResponse


class ScanError(Exception):
    """Base class for errors that end a scan before it produces a summary."""


class InvalidAddress(ScanError):
    def __init__(self, address: str):
        super().__init__(f"Invalid EVM address: '{address}'")
        self.address = address


class InvalidBlockRange(ScanError):
    def __init__(self, from_block: int | None, to_block: int | None):
        super().__init__(f"Invalid block range: fromBlock={from_block}, toBlock={to_block}")
        self.from_block = from_block
        self.to_block = to_block


class RegistryUnavailable(ScanError):
    pass


class BackendQueryFailure(Exception):
    """A single indexing backend call failed after retries.

    Never fatal for a scan: detectors count it and move on.
    """


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def status_for(error: ScanError) -> int:
    if isinstance(error, RegistryUnavailable):
        return 503
    return 400
