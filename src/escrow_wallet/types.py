"""Core value types shared by the wallet components."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .address import Address
from .amounts import checked_add
from .script import RedeemScript


@dataclass(frozen=True)
class BalanceSnapshot:
    confirmed: int
    unconfirmed: int

    @property
    def available(self) -> int:
        """Spendable balance for spend planning: confirmed funds only."""
        return self.confirmed

    @property
    def total(self) -> int:
        return checked_add(self.confirmed, self.unconfirmed)


@dataclass(frozen=True)
class Payout:
    destination: Address
    amount: int


@dataclass(frozen=True)
class Authorization:
    """A party's EIP-191 signature (r || s || v) over a release digest."""
    signer: Address
    signature: bytes


@dataclass(frozen=True)
class EscrowRecord:
    """What the escrow contract holds for one transaction id."""
    commitment: bytes
    value: int
    last_modified: int = 0


@dataclass(frozen=True)
class PendingTransfer:
    nonce: int
    recipient: Address
    amount: int
    fee_ceiling: int
    authorization: Tuple[Address, ...] = ()


@dataclass(frozen=True)
class SignedTransaction:
    raw: bytes
    tx_hash: bytes
    pending: PendingTransfer
    data: bytes = b""
    fee_rate: int = 0
    gas_limit: int = 0

    @property
    def nonce(self) -> int:
        return self.pending.nonce


@dataclass(frozen=True)
class OpenedEscrow:
    script: RedeemScript
    commitment: bytes

    @property
    def commitment_hex(self) -> str:
        return "0x" + self.commitment.hex()

