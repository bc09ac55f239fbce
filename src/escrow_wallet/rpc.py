"""Ethereum JSON-RPC chain client over aiohttp."""

from __future__ import annotations

import itertools
import logging
from typing import Any, List, Optional

import aiohttp
from eth_abi.exceptions import DecodingError

from .address import Address, format_address
from .config import DEFAULT_REQUEST_TIMEOUT, WalletConfig
from .contract import contract_address, decode_transactions_result, encode_transactions_query
from .errors import ErrorCode, WalletError
from .types import EscrowRecord, SignedTransaction

logger = logging.getLogger(__name__)


def _to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def _from_hex(value: str, method: str) -> bytes:
    v = value[2:] if value.startswith(("0x", "0X")) else value
    try:
        return bytes.fromhex(v)
    except ValueError as e:
        raise WalletError(ErrorCode.UNAVAILABLE_CLIENT, f"malformed hex data {value!r}", method) from e


def _quantity(value: Any) -> int:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise WalletError(ErrorCode.UNAVAILABLE_CLIENT, f"malformed quantity {value!r}")
    try:
        return int(value, 16)
    except ValueError as e:
        raise WalletError(ErrorCode.UNAVAILABLE_CLIENT, f"malformed quantity {value!r}") from e


class JsonRpcChainClient:
    """Chain client for a single Ethereum node endpoint."""

    def __init__(
        self,
        endpoint: str,
        escrow_contract: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.endpoint = endpoint
        self.escrow_contract = escrow_contract
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, config: WalletConfig) -> "JsonRpcChainClient":
        return cls(config.rpc_endpoint, config.escrow_contract, config.request_timeout)

    async def connect(self) -> None:
        """Initialize HTTP session."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        self.session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        """Close HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def __aenter__(self) -> "JsonRpcChainClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def request(self, method: str, params: List[Any]) -> Any:
        if self.session is None:
            await self.connect()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            async with self.session.post(self.endpoint, json=payload) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, ValueError) as e:
            # ValueError: the body was not JSON.
            logger.error(f"[{self.endpoint}] {method} failed: {e}")
            raise WalletError(ErrorCode.UNAVAILABLE_CLIENT, str(e), method) from e

        if not isinstance(data, dict):
            raise WalletError(ErrorCode.UNAVAILABLE_CLIENT, "malformed JSON-RPC response", method)
        if data.get("error"):
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = ErrorCode.REJECTED_BY_NETWORK if method == "eth_sendRawTransaction" else ErrorCode.UNAVAILABLE_CLIENT
            raise WalletError(code, message, method)
        return data.get("result")

    async def get_confirmed_balance(self, address: Address) -> int:
        return _quantity(await self.request("eth_getBalance", [format_address(address), "latest"]))

    async def get_pending_balance(self, address: Address) -> int:
        """Incoming funds not yet confirmed: pending state minus latest state, floored at 0."""
        latest = await self.get_confirmed_balance(address)
        pending = _quantity(await self.request("eth_getBalance", [format_address(address), "pending"]))
        return max(pending - latest, 0)

    async def get_nonce(self, address: Address) -> int:
        return _quantity(
            await self.request("eth_getTransactionCount", [format_address(address), "pending"])
        )

    async def suggest_fee_rate(self) -> int:
        return _quantity(await self.request("eth_gasPrice", []))

    async def submit(self, signed: SignedTransaction) -> bytes:
        result = await self.request("eth_sendRawTransaction", [_to_hex(signed.raw)])
        if not isinstance(result, str):
            raise WalletError(ErrorCode.REJECTED_BY_NETWORK, "node returned no transaction hash")
        logger.info(f"submitted transaction {result} nonce={signed.nonce}")
        return _from_hex(result, "eth_sendRawTransaction")

    async def get_escrow(self, transaction_id: bytes) -> Optional[EscrowRecord]:
        contract = contract_address(self.escrow_contract)
        call = {"to": format_address(contract), "data": _to_hex(encode_transactions_query(transaction_id))}
        result = await self.request("eth_call", [call, "latest"])
        if not isinstance(result, str):
            raise WalletError(ErrorCode.UNAVAILABLE_CLIENT, "malformed eth_call result", "eth_call")
        data = _from_hex(result, "eth_call")
        if not data:
            return None
        try:
            return decode_transactions_result(data)
        except DecodingError as e:
            raise WalletError(ErrorCode.UNAVAILABLE_CLIENT, f"malformed escrow record: {e}", "eth_call") from e
