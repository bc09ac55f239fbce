"""Confirmed / unconfirmed balance accounting for the wallet address."""

from __future__ import annotations

import asyncio
import logging

from .address import Address
from .amounts import check_amount
from .chain import ChainClient, call_with_timeout, expect_quantity
from .config import DEFAULT_DUST_THRESHOLD, DEFAULT_REQUEST_TIMEOUT
from .errors import ErrorCode
from .types import BalanceSnapshot

logger = logging.getLogger(__name__)


class BalanceAggregator:
    """Read-only view over the chain client's ledger for one address.

    Snapshots take no lock and may run concurrently with each other and with
    transaction building.
    """

    def __init__(
        self,
        client: ChainClient,
        address: Address,
        dust_threshold: int = DEFAULT_DUST_THRESHOLD,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.client = client
        self.address = address
        self.dust_threshold = check_amount(dust_threshold, "dust_threshold")
        self.timeout = timeout

    async def confirmed(self) -> int:
        value = await call_with_timeout(
            self.client.get_confirmed_balance(self.address),
            operation="get_confirmed_balance",
            timeout=self.timeout,
            code=ErrorCode.UNAVAILABLE_LEDGER,
            address=self.address,
        )
        return expect_quantity(
            value, operation="get_confirmed_balance", code=ErrorCode.UNAVAILABLE_LEDGER, address=self.address
        )

    async def unconfirmed(self) -> int:
        value = await call_with_timeout(
            self.client.get_pending_balance(self.address),
            operation="get_pending_balance",
            timeout=self.timeout,
            code=ErrorCode.UNAVAILABLE_LEDGER,
            address=self.address,
        )
        return expect_quantity(
            value, operation="get_pending_balance", code=ErrorCode.UNAVAILABLE_LEDGER, address=self.address
        )

    async def snapshot(self) -> BalanceSnapshot:
        confirmed, unconfirmed = await asyncio.gather(self.confirmed(), self.unconfirmed())
        snap = BalanceSnapshot(confirmed=confirmed, unconfirmed=unconfirmed)
        logger.debug(f"balance {self.address}: confirmed={confirmed} unconfirmed={unconfirmed}")
        return snap

    async def balance(self, confirmed_only: bool = False) -> int:
        if confirmed_only:
            return await self.confirmed()
        return (await self.snapshot()).total

    def is_dust(self, amount: int) -> bool:
        """True iff ``amount`` is below the fixed dust threshold."""
        return check_amount(amount) < self.dust_threshold
