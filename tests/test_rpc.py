"""
Tests for the Starknet JSON-RPC client, using httpx.MockTransport
"""

import json

import httpx
import pytest

from midatopay.chain.rpc import StarknetRPC
from midatopay.errors import RpcRequestError, RpcUnavailable
from tests.factories import GATEWAY_ADDRESS

RPC_URL = "https://rpc.test"


def make_rpc(handler) -> StarknetRPC:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StarknetRPC(RPC_URL, timeout=1, client=client)


def rpc_result(request: httpx.Request, result) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


def rpc_error(request: httpx.Request, code: int, message: str) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={
        "jsonrpc": "2.0",
        "id": body["id"],
        "error": {"code": code, "message": message},
    })


async def test_block_number():
    def handler(request):
        assert json.loads(request.content)["method"] == "starknet_blockNumber"
        return rpc_result(request, 1234)

    rpc = make_rpc(handler)
    assert await rpc.block_number() == 1234
    await rpc.aclose()


async def test_rpc_error_is_raised():
    rpc = make_rpc(lambda request: rpc_error(request, 24, "Block not found"))
    with pytest.raises(RpcRequestError) as exc_info:
        await rpc.block_number()
    assert exc_info.value.code == 24


async def test_http_failure_is_unavailable():
    rpc = make_rpc(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(RpcUnavailable):
        await rpc.block_number()


async def test_connection_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    rpc = make_rpc(handler)
    with pytest.raises(RpcUnavailable):
        await rpc.block_number()


async def test_get_events_follows_continuation_tokens():
    pages = {
        None: {
            "events": [
                {"transaction_hash": "0xa", "from_address": GATEWAY_ADDRESS, "keys": ["0x1"], "data": [],
                 "block_number": 10},
                {"transaction_hash": "0xa", "from_address": GATEWAY_ADDRESS, "keys": ["0x1"], "data": [],
                 "block_number": 10},
            ],
            "continuation_token": "page-2",
        },
        "page-2": {
            "events": [
                {"transaction_hash": "0x0b", "from_address": GATEWAY_ADDRESS, "keys": ["0x1"], "data": [],
                 "block_number": 11},
            ],
        },
    }
    filters = []

    def handler(request):
        body = json.loads(request.content)
        assert body["method"] == "starknet_getEvents"
        event_filter = body["params"]["filter"]
        filters.append(event_filter)
        return rpc_result(request, pages[event_filter.get("continuation_token")])

    rpc = make_rpc(handler)
    events = await rpc.get_events(GATEWAY_ADDRESS, [["0x1"]], from_block=10, to_block=20, chunk_size=2)

    assert [e.event_id for e in events] == ["0xa_0", "0xa_1", "0xb_0"]
    assert len(filters) == 2
    assert filters[0]["from_block"] == {"block_number": 10}
    assert filters[0]["to_block"] == {"block_number": 20}
    assert filters[0]["chunk_size"] == 2


async def test_wait_for_transaction_tolerates_unknown_hash():
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        if calls["count"] == 1:
            return rpc_error(request, 29, "Transaction hash not found")
        return rpc_result(request, {
            "transaction_hash": "0xabc",
            "execution_status": "SUCCEEDED",
            "finality_status": "ACCEPTED_ON_L2",
            "events": [],
        })

    rpc = make_rpc(handler)
    receipt = await rpc.wait_for_transaction("0xabc", timeout=5, poll_interval=0)

    assert receipt.succeeded
    assert calls["count"] == 2


async def test_wait_for_transaction_times_out():
    rpc = make_rpc(lambda request: rpc_error(request, 29, "Transaction hash not found"))
    with pytest.raises(RpcUnavailable):
        await rpc.wait_for_transaction("0xabc", timeout=0, poll_interval=0)


async def test_call_request_shape():
    def handler(request):
        body = json.loads(request.content)
        assert body["method"] == "starknet_call"
        assert body["params"]["request"]["contract_address"] == GATEWAY_ADDRESS
        assert body["params"]["request"]["calldata"] == ["0x1"]
        assert body["params"]["block_id"] == "latest"
        return rpc_result(request, ["0x5"])

    rpc = make_rpc(handler)
    assert await rpc.call(GATEWAY_ADDRESS, "0x99", ["0x1"]) == ["0x5"]
