"""Shared fakes and fixtures for wallet tests."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from escrow_wallet.address import Address
from escrow_wallet.config import WEI_PER_ETHER, WalletConfig
from escrow_wallet.credentials import KeystoreCredential
from escrow_wallet.types import EscrowRecord, SignedTransaction
from escrow_wallet.wallet import EscrowWallet

CHAIN_ID = 1337
CONTRACT = "0x" + "ee" * 20
ETHER = WEI_PER_ETHER

WALLET_KEY = "0x" + "01" * 32
BUYER_KEY = "0x" + "11" * 32
SELLER_KEY = "0x" + "22" * 32
MODERATOR_KEY = "0x" + "33" * 32
OUTSIDER_KEY = "0x" + "44" * 32


class FakeChainClient:
    """In-memory chain client recording every call by name."""

    def __init__(
        self,
        confirmed: int = ETHER,
        pending: int = 0,
        nonce: int = 7,
        fee_rate: int = 10,
        advance_nonce: bool = True,
    ):
        self.confirmed = confirmed
        self.pending = pending
        self.nonce = nonce
        self.fee_rate = fee_rate
        self.advance_nonce = advance_nonce
        self.escrows: Dict[bytes, EscrowRecord] = {}
        self.calls: List[str] = []
        self.submitted: List[SignedTransaction] = []
        self.failures: Dict[str, BaseException] = {}
        self.delays: Dict[str, float] = {}

    async def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.failures:
            raise self.failures[name]

    async def get_confirmed_balance(self, address: Address) -> int:
        await self._enter("get_confirmed_balance")
        return self.confirmed

    async def get_pending_balance(self, address: Address) -> int:
        await self._enter("get_pending_balance")
        return self.pending

    async def get_nonce(self, address: Address) -> int:
        await self._enter("get_nonce")
        return self.nonce

    async def suggest_fee_rate(self) -> int:
        await self._enter("suggest_fee_rate")
        return self.fee_rate

    async def submit(self, signed: SignedTransaction) -> bytes:
        await self._enter("submit")
        self.submitted.append(signed)
        if self.advance_nonce:
            self.nonce = max(self.nonce, signed.nonce + 1)
        return signed.tx_hash

    async def get_escrow(self, transaction_id: bytes) -> Optional[EscrowRecord]:
        await self._enter("get_escrow")
        return self.escrows.get(transaction_id)


@pytest.fixture
def client() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def config() -> WalletConfig:
    return WalletConfig(
        rpc_endpoint="http://127.0.0.1:1",
        chain_id=CHAIN_ID,
        escrow_contract=CONTRACT,
        request_timeout=0.5,
    )


@pytest.fixture
def credential() -> KeystoreCredential:
    return KeystoreCredential(WALLET_KEY)


@pytest.fixture
def buyer() -> KeystoreCredential:
    return KeystoreCredential(BUYER_KEY)


@pytest.fixture
def seller() -> KeystoreCredential:
    return KeystoreCredential(SELLER_KEY)


@pytest.fixture
def moderator() -> KeystoreCredential:
    return KeystoreCredential(MODERATOR_KEY)


@pytest.fixture
def outsider() -> KeystoreCredential:
    return KeystoreCredential(OUTSIDER_KEY)


@pytest.fixture
def wallet(client: FakeChainClient, credential: KeystoreCredential, config: WalletConfig) -> EscrowWallet:
    return EscrowWallet(client, credential, config)
