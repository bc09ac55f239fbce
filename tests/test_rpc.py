"""JSON-RPC chain client against a local aiohttp node stub."""

from __future__ import annotations

import asyncio

import pytest
from aiohttp import web
from eth_abi import encode

from escrow_wallet.address import parse_address
from escrow_wallet.balance import BalanceAggregator
from escrow_wallet.config import WalletConfig
from escrow_wallet.errors import ErrorCode, WalletError
from escrow_wallet.rpc import JsonRpcChainClient
from escrow_wallet.types import PendingTransfer, SignedTransaction

from conftest import CONTRACT

ACCOUNT = parse_address("0x" + "ab" * 20)
TXID = bytes(range(20))


def _run(responses, scenario, escrow_contract=CONTRACT):
    """Serve ``responses`` (method -> result or callable(params)) and run ``scenario(client)``."""
    seen = []

    async def handle(request: web.Request) -> web.Response:
        body = await request.json()
        method, params = body["method"], body["params"]
        seen.append((method, params))
        answer = responses[method]
        if callable(answer):
            answer = answer(params)
        if isinstance(answer, web.Response):
            return answer
        if isinstance(answer, dict) and "error" in answer:
            return web.json_response({"jsonrpc": "2.0", "id": body["id"], "error": answer["error"]})
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": answer})

    async def main():
        app = web.Application()
        app.router.add_post("/", handle)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()
        port = runner.addresses[0][1]
        try:
            async with JsonRpcChainClient(f"http://127.0.0.1:{port}/", escrow_contract, timeout=5.0) as client:
                return await scenario(client)
        finally:
            await runner.cleanup()

    return asyncio.run(main()), seen


def _balances(latest: int, pending: int):
    return {"eth_getBalance": lambda params: hex(latest if params[1] == "latest" else pending)}


def test_confirmed_balance() -> None:
    result, seen = _run(_balances(0x1234, 0x1234), lambda c: c.get_confirmed_balance(ACCOUNT))
    assert result == 0x1234
    assert seen == [("eth_getBalance", [str(ACCOUNT), "latest"])]


def test_pending_balance_is_incoming_delta() -> None:
    result, _ = _run(_balances(1_000, 1_500), lambda c: c.get_pending_balance(ACCOUNT))
    assert result == 500


def test_pending_balance_floors_at_zero() -> None:
    # Outgoing pending spends lower the pending state below latest.
    result, _ = _run(_balances(1_000, 400), lambda c: c.get_pending_balance(ACCOUNT))
    assert result == 0


def test_nonce_and_fee_rate() -> None:
    responses = {"eth_getTransactionCount": "0x7", "eth_gasPrice": "0x3b9aca00"}

    async def scenario(client):
        return await client.get_nonce(ACCOUNT), await client.suggest_fee_rate()

    (nonce, rate), seen = _run(responses, scenario)
    assert nonce == 7
    assert rate == 1_000_000_000
    assert seen[0] == ("eth_getTransactionCount", [str(ACCOUNT), "pending"])


def test_malformed_quantity() -> None:
    with pytest.raises(WalletError) as exc:
        _run({"eth_gasPrice": 12}, lambda c: c.suggest_fee_rate())
    assert exc.value.code == ErrorCode.UNAVAILABLE_CLIENT


def test_non_hex_quantity() -> None:
    with pytest.raises(WalletError) as exc:
        _run({"eth_gasPrice": "0xzz"}, lambda c: c.suggest_fee_rate())
    assert exc.value.code == ErrorCode.UNAVAILABLE_CLIENT


def test_non_hex_balance_is_unavailable_ledger() -> None:
    async def scenario(client):
        return await BalanceAggregator(client, ACCOUNT, timeout=5.0).snapshot()

    with pytest.raises(WalletError) as exc:
        _run({"eth_getBalance": "0xzz"}, scenario)
    assert exc.value.code == ErrorCode.UNAVAILABLE_LEDGER


def test_non_json_body() -> None:
    def gateway(params):
        return web.Response(text="<html>bad gateway</html>", content_type="text/html")

    with pytest.raises(WalletError) as exc:
        _run({"eth_gasPrice": gateway}, lambda c: c.suggest_fee_rate())
    assert exc.value.code == ErrorCode.UNAVAILABLE_CLIENT
    assert exc.value.operation == "eth_gasPrice"


def _signed() -> SignedTransaction:
    pending = PendingTransfer(nonce=3, recipient=ACCOUNT, amount=1, fee_ceiling=21_000)
    return SignedTransaction(raw=b"\xf8\x01", tx_hash=b"\x11" * 32, pending=pending)


def test_submit_returns_hash() -> None:
    result, seen = _run({"eth_sendRawTransaction": "0x" + "11" * 32}, lambda c: c.submit(_signed()))
    assert result == b"\x11" * 32
    assert seen == [("eth_sendRawTransaction", ["0xf801"])]


def test_submit_rejection() -> None:
    responses = {"eth_sendRawTransaction": {"error": {"code": -32000, "message": "nonce too low"}}}
    with pytest.raises(WalletError) as exc:
        _run(responses, lambda c: c.submit(_signed()))
    assert exc.value.code == ErrorCode.REJECTED_BY_NETWORK
    assert "nonce too low" in exc.value.message


def test_node_error_on_read_is_unavailable() -> None:
    responses = {"eth_gasPrice": {"error": {"code": -32603, "message": "internal"}}}
    with pytest.raises(WalletError) as exc:
        _run(responses, lambda c: c.suggest_fee_rate())
    assert exc.value.code == ErrorCode.UNAVAILABLE_CLIENT


def test_get_escrow_decodes_record() -> None:
    commitment = b"\x42" * 32
    record = "0x" + encode(["bytes32", "uint256", "uint256"], [commitment, 5_000, 1_700_000_000]).hex()
    result, seen = _run({"eth_call": record}, lambda c: c.get_escrow(TXID))
    assert result.commitment == commitment
    assert result.value == 5_000
    assert result.last_modified == 1_700_000_000
    call, tag = seen[0][1]
    assert call["to"].lower() == CONTRACT
    assert call["data"].endswith(TXID.hex() + "00" * 12)
    assert tag == "latest"


def test_get_escrow_missing_record() -> None:
    zero = "0x" + "00" * 96
    result, _ = _run({"eth_call": zero}, lambda c: c.get_escrow(TXID))
    assert result is None
    result, _ = _run({"eth_call": "0x"}, lambda c: c.get_escrow(TXID))
    assert result is None


def test_get_escrow_truncated_record() -> None:
    with pytest.raises(WalletError) as exc:
        _run({"eth_call": "0x1234"}, lambda c: c.get_escrow(TXID))
    assert exc.value.code == ErrorCode.UNAVAILABLE_CLIENT
    assert exc.value.operation == "eth_call"


def test_get_escrow_non_hex_result() -> None:
    with pytest.raises(WalletError) as exc:
        _run({"eth_call": "0xnothex"}, lambda c: c.get_escrow(TXID))
    assert exc.value.code == ErrorCode.UNAVAILABLE_CLIENT


def test_get_escrow_requires_contract() -> None:
    with pytest.raises(WalletError) as exc:
        _run({}, lambda c: c.get_escrow(TXID), escrow_contract=None)
    assert exc.value.code == ErrorCode.INVALID_ADDRESS


def test_connection_failure_is_unavailable_client() -> None:
    async def main():
        # Port 1 is reserved; nothing listens there.
        async with JsonRpcChainClient("http://127.0.0.1:1/", timeout=2.0) as client:
            await client.suggest_fee_rate()

    with pytest.raises(WalletError) as exc:
        asyncio.run(main())
    assert exc.value.code == ErrorCode.UNAVAILABLE_CLIENT
    assert exc.value.operation == "eth_gasPrice"


def test_from_config() -> None:
    config = WalletConfig(rpc_endpoint="http://node:8545", escrow_contract=CONTRACT, request_timeout=3.0)
    client = JsonRpcChainClient.from_config(config)
    assert client.endpoint == "http://node:8545"
    assert client.escrow_contract == CONTRACT
    assert client.timeout == 3.0
    assert client.session is None
