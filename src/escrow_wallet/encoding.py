"""Canonical byte encodings for redeem scripts and release digests.

Both layouts are wire formats shared with counterparties and the escrow
contract; field order and widths must not change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .address import Address
from .amounts import check_amount
from .config import ADDRESS_SIZE, HASH_SIZE, TRANSACTION_ID_SIZE
from .errors import ErrorCode, WalletError
from .script import RedeemScript, validate_script
from .types import Payout

# EIP-191 version 0x00: data with an intended validator (the escrow contract).
RELEASE_DIGEST_PREFIX = b"\x19\x00"


@dataclass
class Writer:
    buf: bytearray = field(default_factory=bytearray)

    def write_u8(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(1, "big", signed=False))

    def write_u32(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(4, "big", signed=False))

    def write_u256(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(32, "big", signed=False))

    def write_bytes(self, b: bytes) -> None:
        self.buf.extend(b)

    def write_address(self, address: Address) -> None:
        _expect_len("address", address.raw, ADDRESS_SIZE)
        self.write_bytes(address.raw)

    def write_padded_address(self, address: Address) -> None:
        _expect_len("address", address.raw, ADDRESS_SIZE)
        self.write_bytes(bytes(32 - ADDRESS_SIZE) + address.raw)

    def getvalue(self) -> bytes:
        return bytes(self.buf)


def _expect_len(name: str, value: bytes, size: int) -> None:
    if len(value) != size:
        raise WalletError(ErrorCode.INVALID_SCRIPT, f"{name} must be {size} bytes")


def serialize_script(script: RedeemScript) -> bytes:
    """Canonical encoding: id | threshold | timeout | buyer | seller [| moderator]."""
    validate_script(script)
    w = Writer()
    _expect_len("transaction_id", script.transaction_id, TRANSACTION_ID_SIZE)
    w.write_bytes(script.transaction_id)
    w.write_u8(script.threshold)
    w.write_u32(script.timeout_hours)
    w.write_address(script.buyer)
    w.write_address(script.seller)
    if script.threshold > 1:
        w.write_address(script.moderator)
    return w.getvalue()


def encode_release_payload(contract: Address, payouts: Sequence[Payout], commitment: bytes) -> bytes:
    """Bytes signed (after hashing) by every party authorising a release."""
    if len(commitment) != HASH_SIZE:
        raise WalletError(ErrorCode.INVALID_SCRIPT, f"commitment must be {HASH_SIZE} bytes")
    w = Writer()
    w.write_bytes(RELEASE_DIGEST_PREFIX)
    w.write_address(contract)
    for payout in payouts:
        w.write_padded_address(payout.destination)
    for payout in payouts:
        w.write_u256(check_amount(payout.amount, "payout amount"))
    w.write_bytes(commitment)
    return w.getvalue()
