"""
Starknet JSON-RPC client
Thin async wrapper over httpx; every call carries a timeout and is cancellable.
"""

import asyncio
import itertools
import time
from typing import Any, Dict, List, Optional

import httpx
import structlog

from midatopay.chain.events import ChainEvent, TransactionReceipt
from midatopay.chain.felt import felt_hex
from midatopay.errors import RpcRequestError, RpcUnavailable

logger = structlog.get_logger()

# Starknet JSON-RPC error codes
TXN_HASH_NOT_FOUND = 29


class StarknetRPC:
    """
    Minimal Starknet node client:
    - block number, events, receipts (watcher / reconciler)
    - read-only contract calls (oracle)
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def request(self, method: str, params: Any) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self.client.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.warning("rpc_request_failed", method=method, error=str(e))
            raise RpcUnavailable(f"{method} failed: {e}") from e
        except ValueError as e:
            raise RpcUnavailable(f"{method} returned invalid JSON") from e

        if body.get("error"):
            error = body["error"]
            raise RpcRequestError(
                code=error.get("code", -1),
                message=error.get("message", "unknown error"),
                data=error.get("data"),
            )
        return body.get("result")

    async def block_number(self) -> int:
        return int(await self.request("starknet_blockNumber", []))

    async def get_events(
        self,
        address: str,
        keys: List[List[str]],
        from_block: int,
        to_block: int,
        chunk_size: int = 100,
    ) -> List[ChainEvent]:
        """
        Fetch all events in [from_block, to_block], following continuation tokens.

        event_index is the event's position among the returned events of the
        same transaction.
        """
        events: List[ChainEvent] = []
        per_tx: Dict[str, int] = {}
        continuation_token: Optional[str] = None

        while True:
            event_filter: Dict[str, Any] = {
                "from_block": {"block_number": from_block},
                "to_block": {"block_number": to_block},
                "address": address,
                "keys": keys,
                "chunk_size": chunk_size,
            }
            if continuation_token:
                event_filter["continuation_token"] = continuation_token

            result = await self.request("starknet_getEvents", {"filter": event_filter})

            for raw in result.get("events", []):
                tx_hash = felt_hex(raw["transaction_hash"])
                index = per_tx.get(tx_hash, 0)
                per_tx[tx_hash] = index + 1
                events.append(ChainEvent.from_rpc(raw, tx_hash, index))

            continuation_token = result.get("continuation_token")
            if not continuation_token:
                break

        return events

    async def get_transaction_receipt(self, transaction_hash: str) -> TransactionReceipt:
        raw = await self.request(
            "starknet_getTransactionReceipt",
            {"transaction_hash": transaction_hash},
        )
        return TransactionReceipt.from_rpc(raw)

    async def wait_for_transaction(
        self,
        transaction_hash: str,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> TransactionReceipt:
        """
        Poll until the node knows the transaction and has an execution outcome.

        Raises:
            RpcUnavailable: no receipt within timeout
        """
        deadline = time.monotonic() + timeout
        while True:
            try:
                receipt = await self.get_transaction_receipt(transaction_hash)
                if receipt.execution_status in ("SUCCEEDED", "REVERTED"):
                    return receipt
            except RpcRequestError as e:
                if e.code != TXN_HASH_NOT_FOUND:
                    raise

            if time.monotonic() >= deadline:
                raise RpcUnavailable(
                    f"Transaction {transaction_hash} not finalized after {timeout}s"
                )
            await asyncio.sleep(poll_interval)

    async def call(
        self,
        contract_address: str,
        entry_point_selector: str,
        calldata: Optional[List[str]] = None,
        block_id: str = "latest",
    ) -> List[str]:
        return await self.request(
            "starknet_call",
            {
                "request": {
                    "contract_address": contract_address,
                    "entry_point_selector": entry_point_selector,
                    "calldata": calldata or [],
                },
                "block_id": block_id,
            },
        )
