"""Escrow redeem script model.

A redeem script is the release condition of one escrow: who the parties are,
how many of them must authorise a release, and after how many hours the
seller may reclaim alone. It is built once when the escrow is opened and is
immutable afterwards.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional, Tuple

from .address import Address, AddressLike, parse_address
from .config import TRANSACTION_ID_SIZE, U32_MAX, U8_MAX
from .errors import ErrorCode, WalletError


def new_transaction_id() -> bytes:
    """Fresh escrow identifier; never derived from chain state."""
    return secrets.token_bytes(TRANSACTION_ID_SIZE)


@dataclass(frozen=True)
class RedeemScript:
    transaction_id: bytes
    timeout_hours: int
    threshold: int
    buyer: Address
    seller: Address
    moderator: Optional[Address] = None

    @classmethod
    def create(
        cls,
        buyer: AddressLike,
        seller: AddressLike,
        moderator: Optional[AddressLike] = None,
        threshold: Optional[int] = None,
        timeout_hours: int = 0,
        transaction_id: Optional[bytes] = None,
    ) -> "RedeemScript":
        """Build and validate a script. Threshold defaults to 2 with a moderator, else 1."""
        try:
            buyer_addr = parse_address(buyer)
            seller_addr = parse_address(seller)
            moderator_addr = parse_address(moderator) if moderator is not None else None
        except WalletError as exc:
            raise WalletError(ErrorCode.INVALID_SCRIPT, exc.message) from exc
        if threshold is None:
            threshold = 2 if moderator_addr is not None else 1
        script = cls(
            transaction_id=transaction_id if transaction_id is not None else new_transaction_id(),
            timeout_hours=timeout_hours,
            threshold=threshold,
            buyer=buyer_addr,
            seller=seller_addr,
            moderator=moderator_addr,
        )
        validate_script(script)
        return script

    @property
    def participants(self) -> Tuple[Address, ...]:
        if self.moderator is None:
            return (self.buyer, self.seller)
        return (self.buyer, self.seller, self.moderator)

    @property
    def has_timeout(self) -> bool:
        return self.timeout_hours > 0


def max_threshold(script: RedeemScript) -> int:
    """Authorizing parties: buyer and seller jointly count as one, the moderator as another."""
    return 2 if script.moderator is not None else 1


def validate_script(script: RedeemScript) -> None:
    tid = script.transaction_id
    if not isinstance(tid, bytes) or len(tid) != TRANSACTION_ID_SIZE:
        raise WalletError(
            ErrorCode.INVALID_SCRIPT, f"transaction_id must be {TRANSACTION_ID_SIZE} bytes"
        )

    if isinstance(script.timeout_hours, bool) or not isinstance(script.timeout_hours, int):
        raise WalletError(ErrorCode.INVALID_SCRIPT, "timeout_hours must be an integer")
    if script.timeout_hours < 0 or script.timeout_hours > U32_MAX:
        raise WalletError(ErrorCode.INVALID_SCRIPT, "timeout_hours out of u32 range")

    threshold = script.threshold
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise WalletError(ErrorCode.INVALID_SCRIPT, "threshold must be an integer")
    if threshold <= 0:
        raise WalletError(ErrorCode.INVALID_SCRIPT, "threshold must be > 0")
    if threshold > U8_MAX:
        raise WalletError(ErrorCode.INVALID_SCRIPT, "threshold must fit u8")

    for name in ("buyer", "seller"):
        if not isinstance(getattr(script, name), Address):
            raise WalletError(ErrorCode.INVALID_SCRIPT, f"{name} must be an Address")
    if script.buyer == script.seller:
        raise WalletError(ErrorCode.INVALID_SCRIPT, "buyer and seller must differ")

    moderator = script.moderator
    if threshold > 1 and moderator is None:
        raise WalletError(ErrorCode.INVALID_SCRIPT, "threshold > 1 requires a moderator")
    if threshold == 1 and moderator is not None:
        # The moderator is not serialized for threshold 1, so it would not be committed to.
        raise WalletError(ErrorCode.INVALID_SCRIPT, "moderator requires threshold > 1")
    if moderator is not None:
        if not isinstance(moderator, Address):
            raise WalletError(ErrorCode.INVALID_SCRIPT, "moderator must be an Address")
        if moderator in (script.buyer, script.seller):
            raise WalletError(ErrorCode.INVALID_SCRIPT, "moderator must differ from buyer and seller")

    if threshold > max_threshold(script):
        raise WalletError(ErrorCode.INVALID_SCRIPT, "threshold exceeds authorizing party count")
