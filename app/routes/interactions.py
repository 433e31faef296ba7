from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from app.models.request import ClassifyRequest
from app.models.response import ScanProgress
from app.services.classifier import classify
from app.services.inflight import InFlightScan, InFlightScans, scan_key
from app.services.scanner import interaction_scanner
from app.utils.address import normalize_address, validate_evm_address
from app.utils.errors import ScanError, error_response, status_for
from app.utils.sse import SSE_HEADERS, format_sse

logger = logging.getLogger("routes.interactions")

router = APIRouter(prefix="/v1")

_DONE = object()


def _check_params(address: str, from_block: int | None, to_block: int | None) -> str | None:
    if not validate_evm_address(address):
        return f"Invalid EVM address: '{address}'"
    if from_block is not None and from_block < 0:
        return "fromBlock must be >= 0"
    if to_block is not None and to_block < 0:
        return "toBlock must be >= 0"
    if from_block is not None and to_block is not None and to_block < from_block:
        return "toBlock must be >= fromBlock"
    return None


def _inflight(request: Request) -> InFlightScans:
    return request.app.state.inflight_scans


@router.get("/interactions/{address}")
async def get_interactions(
    address: str,
    request: Request,
    from_block: int | None = Query(default=None, alias="fromBlock"),
    to_block: int | None = Query(default=None, alias="toBlock"),
):
    """Scan a wallet and return every tracked dApp it interacted with."""
    address = address.strip()
    err = _check_params(address, from_block, to_block)
    if err:
        logger.warning(f"400 {err}")
        return error_response(400, err)

    address = normalize_address(address)
    key = scan_key(address, from_block, to_block)

    try:
        summary = await _inflight(request).run(
            key,
            lambda reporter: interaction_scanner.scan(
                address, from_block, to_block, reporter=reporter
            ),
        )
    except ScanError as e:
        return error_response(status_for(e), str(e))

    return summary.model_dump(mode="json", by_alias=True)


@router.get("/interactions/{address}/dapps/{dapp_id}")
async def get_dapp_interaction(
    address: str,
    dapp_id: str,
    from_block: int | None = Query(default=None, alias="fromBlock"),
    to_block: int | None = Query(default=None, alias="toBlock"),
):
    """Check a wallet against a single dApp's contracts."""
    address = address.strip()
    err = _check_params(address, from_block, to_block)
    if err:
        return error_response(400, err)

    address = normalize_address(address)
    try:
        interaction = await interaction_scanner.has_interacted(
            address, dapp_id, from_block, to_block
        )
    except ScanError as e:
        return error_response(status_for(e), str(e))

    return {
        "userAddress": address,
        "dappId": dapp_id,
        "hasInteracted": interaction is not None,
        "interaction": interaction.model_dump(mode="json", by_alias=True) if interaction else None,
    }


async def _event_stream(scan: InFlightScan, queue: asyncio.Queue, start_payload: dict):
    try:
        yield format_sse("start", start_payload)

        while True:
            item = await queue.get()
            if item is _DONE:
                break
            if isinstance(item, ScanProgress):
                yield format_sse("progress", item.model_dump(mode="json", by_alias=True))

        try:
            summary = scan.task.result()
        except ScanError as e:
            yield format_sse("error", {"error": str(e), "status": status_for(e)})
            return
        except Exception as e:
            logger.error(f"Scan {scan.key} crashed: {e}")
            yield format_sse("error", {"error": "Failed to check user interactions"})
            return

        yield format_sse("complete", summary.model_dump(mode="json", by_alias=True))
    finally:
        # Client may have gone away; the scan itself keeps running for other joiners
        scan.reporter.unsubscribe(queue.put_nowait)


@router.get("/interactions/{address}/stream")
async def stream_interactions(
    address: str,
    request: Request,
    from_block: int | None = Query(default=None, alias="fromBlock"),
    to_block: int | None = Query(default=None, alias="toBlock"),
):
    """Same scan as GET /interactions/{address}, streamed as Server-Sent Events."""
    address = address.strip()
    err = _check_params(address, from_block, to_block)
    if err:
        logger.warning(f"400 {err}")
        return error_response(400, err)

    address = normalize_address(address)
    key = scan_key(address, from_block, to_block)
    try:
        block_range = await interaction_scanner.resolve_range(from_block, to_block)
    except ScanError as e:
        return error_response(status_for(e), str(e))

    scan, started = _inflight(request).get_or_start(
        key,
        lambda reporter: interaction_scanner.scan(
            address, block_range.from_block, block_range.to_block, reporter=reporter
        ),
    )
    if started:
        scan.block_range = block_range
    # A joined scan may have resolved an open range against an older head
    scanned = scan.block_range or block_range

    # Subscribe before yielding control so the first updates are not missed
    queue: asyncio.Queue = asyncio.Queue()
    scan.reporter.subscribe(queue.put_nowait)
    scan.task.add_done_callback(lambda _t: queue.put_nowait(_DONE))

    client_ip = request.client.host if request.client else "unknown"
    logger.info(f"Stream {key} for {client_ip} ({'new scan' if started else 'joined'})")

    return StreamingResponse(
        _event_stream(
            scan,
            queue,
            {
                "userAddress": address,
                "fromBlock": scanned.from_block,
                "toBlock": scanned.to_block,
            },
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/classify")
async def classify_dapp(body: ClassifyRequest):
    """Guess a dApp category from the event signatures its contracts emit."""
    return classify(body.event_signatures).model_dump()
