from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from app.config import settings
from app.models.chain import BlockRange, LogRecord, TransactionRecord
from app.utils.errors import BackendQueryFailure

logger = logging.getLogger("hypersync")

LOG_FIELDS = [
    "address",
    "topic0",
    "topic1",
    "topic2",
    "topic3",
    "data",
    "block_number",
    "transaction_hash",
    "log_index",
]
TRANSACTION_FIELDS = ["hash", "from", "to", "block_number", "gas_used"]

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _to_int(value: Any) -> int | None:
    """Backend quantities arrive as JSON ints, decimal strings or 0x hex."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.startswith("0x") else int(value)
        except ValueError:
            return None
    return None


def _lower(value: Any) -> str | None:
    return value.lower() if isinstance(value, str) and value else None


def parse_transaction(raw: dict) -> TransactionRecord | None:
    tx_hash = _lower(raw.get("hash"))
    sender = _lower(raw.get("from"))
    block = _to_int(raw.get("block_number"))
    if not tx_hash or not sender or block is None:
        return None
    if raw.get("to") is not None and not isinstance(raw.get("to"), str):
        return None
    return TransactionRecord(
        hash=tx_hash,
        from_address=sender,
        to_address=_lower(raw.get("to")),
        block_number=block,
        gas_used=_to_int(raw.get("gas_used")) or 0,
    )


def parse_log(raw: dict) -> LogRecord | None:
    address = _lower(raw.get("address"))
    tx_hash = _lower(raw.get("transaction_hash"))
    block = _to_int(raw.get("block_number"))
    log_index = _to_int(raw.get("log_index"))
    if not address or not tx_hash or block is None or log_index is None:
        return None

    topics = []
    for slot in range(4):
        topic = raw.get(f"topic{slot}")
        if topic is None or topic == "":
            break
        if not isinstance(topic, str):
            return None
        topics.append(topic.lower())

    data = raw.get("data")
    if data is not None and not isinstance(data, str):
        return None

    return LogRecord(
        contract_address=address,
        topics=topics,
        data=(data or "0x").lower(),
        block_number=block,
        transaction_hash=tx_hash,
        log_index=log_index,
    )


def _records(batch: dict, key: str) -> list:
    records = batch.get(key)
    return records if isinstance(records, list) else []


class HyperSyncClient:
    """Thin async client for the HyperSync `/query` and `/height` endpoints.

    Only issues the HTTP calls and normalizes what comes back. Splitting a
    scan into sub-queries is the caller's job.
    """

    def __init__(
        self,
        base_url: str,
        rpc_url: str | None = None,
        api_token: str = "",
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._rpc_url = rpc_url
        self._api_token = api_token
        self._timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._max_retries = max_retries if max_retries is not None else settings.max_retries
        self._backoff = (
            backoff_seconds if backoff_seconds is not None else settings.retry_backoff_seconds
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._last_height: int | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self._api_token:
                headers["Authorization"] = f"Bearer {self._api_token}"
            self._client = httpx.AsyncClient(
                timeout=self._timeout, headers=headers, transport=self._transport
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _request(self, method: str, url: str, payload: dict | None = None) -> Any:
        attempt = 0
        while True:
            try:
                client = self._get_client()
                resp = await client.request(method, url, json=payload)
                if resp.status_code in _RETRYABLE_STATUS and attempt < self._max_retries:
                    raise httpx.HTTPStatusError(
                        f"retryable status {resp.status_code}",
                        request=resp.request,
                        response=resp,
                    )
                resp.raise_for_status()
                return resp.json()
            except (httpx.RequestError, httpx.HTTPStatusError) as e:
                if isinstance(e, httpx.HTTPStatusError):
                    retryable = e.response.status_code in _RETRYABLE_STATUS
                else:
                    # Decoding and redirect errors are permanent
                    retryable = isinstance(e, httpx.TransportError)
                if not retryable or attempt >= self._max_retries:
                    raise BackendQueryFailure(f"{method} {url} failed: {e}") from e
                delay = self._backoff * (2 ** attempt)
                attempt += 1
                logger.info(
                    f"{method} {url} failed ({e}), retry {attempt}/{self._max_retries} "
                    f"in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
            except ValueError as e:
                raise BackendQueryFailure(f"{method} {url} returned invalid JSON: {e}") from e

    async def _query(self, query: dict, block_range: BlockRange) -> list[dict]:
        """Run a query over the whole range, following `next_block` continuations.

        Returns the raw `data` batches. HyperSync's `to_block` is exclusive,
        so the inclusive range end is shifted by one on the wire.
        """
        url = f"{self._base_url}/query"
        end_exclusive = block_range.to_block + 1
        from_block = block_range.from_block
        batches: list[dict] = []

        for _ in range(settings.max_pages_per_query):
            payload = {**query, "from_block": from_block, "to_block": end_exclusive}
            body = await self._request("POST", url, payload)
            if not isinstance(body, dict) or not isinstance(body.get("data"), list):
                logger.warning(f"Discarding malformed HyperSync response: {str(body)[:200]}")
                raise BackendQueryFailure("malformed HyperSync response")

            batches.extend(b for b in body["data"] if isinstance(b, dict))

            next_block = _to_int(body.get("next_block"))
            if next_block is None or next_block >= end_exclusive or next_block <= from_block:
                return batches
            from_block = next_block

        # Blocks from `from_block` on were never scanned
        logger.warning(
            f"Query stopped after {settings.max_pages_per_query} pages at block {from_block}"
        )
        raise BackendQueryFailure(
            f"query truncated at block {from_block} of {block_range.to_block}"
        )

    async def query_transactions(
        self,
        block_range: BlockRange,
        from_address: str | None = None,
        to_address: str | None = None,
    ) -> list[TransactionRecord]:
        tx_filter: dict[str, list[str]] = {}
        if from_address:
            tx_filter["from"] = [from_address.lower()]
        if to_address:
            tx_filter["to"] = [to_address.lower()]

        batches = await self._query(
            {
                "transactions": [tx_filter],
                "field_selection": {"transaction": TRANSACTION_FIELDS},
            },
            block_range,
        )

        records: list[TransactionRecord] = []
        for batch in batches:
            for raw in _records(batch, "transactions"):
                record = parse_transaction(raw) if isinstance(raw, dict) else None
                if record is None:
                    logger.warning(f"Dropping malformed transaction: {str(raw)[:200]}")
                    continue
                records.append(record)
        return records

    async def query_logs(
        self,
        block_range: BlockRange,
        addresses: list[str] | None = None,
        topics: list[list[str] | None] | None = None,
        with_sender: bool = False,
    ) -> list[LogRecord]:
        """Fetch logs matching an address list and/or positional topic filter.

        `topics[i]` constrains topic slot i; None or [] means any value.
        With `with_sender`, the enclosing transactions are selected too and
        their `from` is attached to each log.
        """
        log_filter: dict[str, Any] = {}
        if addresses:
            log_filter["address"] = [a.lower() for a in addresses]
        if topics:
            log_filter["topics"] = [[t.lower() for t in slot] if slot else [] for slot in topics]

        field_selection: dict[str, list[str]] = {"log": LOG_FIELDS}
        if with_sender:
            field_selection["transaction"] = ["hash", "from"]

        batches = await self._query(
            {"logs": [log_filter], "field_selection": field_selection}, block_range
        )

        records: list[LogRecord] = []
        for batch in batches:
            senders: dict[str, str] = {}
            if with_sender:
                for tx in _records(batch, "transactions"):
                    if not isinstance(tx, dict):
                        continue
                    tx_hash, sender = _lower(tx.get("hash")), _lower(tx.get("from"))
                    if tx_hash and sender:
                        senders[tx_hash] = sender

            for raw in _records(batch, "logs"):
                record = parse_log(raw) if isinstance(raw, dict) else None
                if record is None:
                    logger.warning(f"Dropping malformed log: {str(raw)[:200]}")
                    continue
                record.transaction_from = senders.get(record.transaction_hash)
                records.append(record)
        return records

    async def _rpc_block_number(self) -> int | None:
        if not self._rpc_url:
            return None
        body = await self._request(
            "POST",
            self._rpc_url,
            {"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 1},
        )
        if isinstance(body, dict):
            return _to_int(body.get("result"))
        return None

    async def get_current_height(self) -> int:
        """Best-effort chain head. Never raises: the height only bounds a scan."""
        try:
            body = await self._request("GET", f"{self._base_url}/height")
            height = _to_int(body.get("height")) if isinstance(body, dict) else None
            if height:
                self._last_height = height
                return height
            logger.warning(f"HyperSync /height returned no usable height: {body}")
        except BackendQueryFailure as e:
            logger.warning(f"HyperSync height query failed, trying RPC fallback: {e}")

        try:
            height = await self._rpc_block_number()
            if height:
                self._last_height = height
                return height
        except BackendQueryFailure as e:
            logger.warning(f"RPC eth_blockNumber failed: {e}")

        fallback = self._last_height or settings.fallback_block_height
        logger.warning(f"Using fallback block height {fallback}")
        return fallback


hypersync_client = HyperSyncClient(
    settings.hypersync_url,
    rpc_url=settings.rpc_url,
    api_token=settings.hypersync_api_token,
)
