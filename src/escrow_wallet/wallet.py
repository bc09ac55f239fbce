"""Escrow wallet: the adapter's public operations over one account.

The wallet is constructed once with an explicit chain client and credential
and passed by reference to its callers; ``close()`` releases the credential.
It models a single account: ``new_address()`` returns the same address as
``address()``.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .address import Address, AddressLike, parse_address
from .balance import BalanceAggregator
from .builder import TransactionBuilder
from .chain import ChainClient, call_with_timeout
from .config import WalletConfig
from .credentials import Credential
from .errors import ErrorCode
from .hashing import commitment_hash
from .script import RedeemScript
from .types import Authorization, BalanceSnapshot, OpenedEscrow, Payout, SignedTransaction

logger = logging.getLogger(__name__)


class EscrowWallet:
    def __init__(self, client: ChainClient, credential: Credential, config: Optional[WalletConfig] = None):
        self.config = config if config is not None else WalletConfig()
        self.client = client
        self.credential = credential
        contract = parse_address(self.config.escrow_contract) if self.config.escrow_contract else None
        self.balances = BalanceAggregator(
            client,
            credential.address,
            dust_threshold=self.config.dust_threshold,
            timeout=self.config.request_timeout,
        )
        self.builder = TransactionBuilder(
            client,
            credential,
            chain_id=self.config.chain_id,
            escrow_contract=contract,
            transfer_gas_limit=self.config.transfer_gas_limit,
            escrow_gas_limit=self.config.escrow_gas_limit,
            timeout=self.config.request_timeout,
        )

    # --- addresses ---

    def address(self) -> Address:
        return self.credential.address

    def new_address(self) -> Address:
        """Single-account wallet: always the same address."""
        return self.credential.address

    # --- balances ---

    async def snapshot(self) -> BalanceSnapshot:
        return await self.balances.snapshot()

    async def balance(self, confirmed_only: bool = False) -> int:
        return await self.balances.balance(confirmed_only=confirmed_only)

    def currency_code(self) -> str:
        return self.config.currency_code

    def is_dust(self, amount: int) -> bool:
        return self.balances.is_dust(amount)

    # --- escrow ---

    def open_escrow(
        self,
        buyer: AddressLike,
        seller: AddressLike,
        moderator: Optional[AddressLike] = None,
        threshold: Optional[int] = None,
        timeout_hours: int = 0,
    ) -> OpenedEscrow:
        script = RedeemScript.create(
            buyer, seller, moderator=moderator, threshold=threshold, timeout_hours=timeout_hours
        )
        opened = OpenedEscrow(script=script, commitment=commitment_hash(script))
        logger.info(
            f"opened escrow {script.transaction_id.hex()} threshold={script.threshold} "
            f"timeout={script.timeout_hours}h commitment={opened.commitment_hex}"
        )
        return opened

    # --- issuance ---

    async def submit(self, signed: SignedTransaction) -> bytes:
        """Broadcast ``signed``. Call inside ``builder.issuing()`` when built separately."""
        handle = await call_with_timeout(
            self.client.submit(signed),
            operation="submit",
            timeout=self.config.request_timeout,
            code=ErrorCode.UNAVAILABLE_CLIENT,
            address=self.address(),
        )
        self.builder.mark_submitted(signed)
        return handle

    async def transfer(self, destination: AddressLike, amount: int, fee_rate: Optional[int] = None) -> bytes:
        async with self.builder.issuing():
            signed = await self.builder.build_transfer(destination, amount, fee_rate=fee_rate)
            return await self.submit(signed)

    async def fund_escrow(self, script: RedeemScript, amount: int, fee_rate: Optional[int] = None) -> bytes:
        async with self.builder.issuing():
            signed = await self.builder.build_funding(script, amount, fee_rate=fee_rate)
            return await self.submit(signed)

    async def release_escrow(
        self,
        script: RedeemScript,
        authorizations: Sequence[Authorization],
        payouts: Optional[Sequence[Payout]] = None,
        fee_rate: Optional[int] = None,
    ) -> bytes:
        async with self.builder.issuing():
            signed = await self.builder.build_release(script, authorizations, payouts=payouts, fee_rate=fee_rate)
            return await self.submit(signed)

    def close(self) -> None:
        self.credential.close()
