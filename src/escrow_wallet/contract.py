"""Escrow contract call data.

The contract keeps one record per transaction id and releases funds when it
receives enough party signatures over the release digest (or the seller's
alone once the script timeout has elapsed).
"""

from __future__ import annotations

from typing import Optional, Sequence

from eth_abi import decode, encode

from .address import Address, format_address, parse_address
from .config import SIGNATURE_SIZE
from .errors import ErrorCode, WalletError
from .hashing import commitment_hash, function_selector
from .script import RedeemScript
from .types import Authorization, EscrowRecord, Payout

ADD_TRANSACTION = "addTransaction(address,address,address[],uint8,uint32,bytes32,bytes20)"
EXECUTE = "execute(uint8[],bytes32[],bytes32[],bytes32,address[],uint256[])"
TRANSACTIONS = "transactions(bytes20)"

_RECORD_TYPES = ["bytes32", "uint256", "uint256"]


def _call(signature: str, types: list[str], args: list) -> bytes:
    return function_selector(signature) + encode(types, args)


def encode_add_transaction(script: RedeemScript) -> bytes:
    moderators = [format_address(script.moderator)] if script.moderator is not None else []
    return _call(
        ADD_TRANSACTION,
        ["address", "address", "address[]", "uint8", "uint32", "bytes32", "bytes20"],
        [
            format_address(script.buyer),
            format_address(script.seller),
            moderators,
            script.threshold,
            script.timeout_hours,
            commitment_hash(script),
            script.transaction_id,
        ],
    )


def split_signature(signature: bytes) -> tuple[int, bytes, bytes]:
    """Split a 65-byte r || s || v signature into (v, r, s)."""
    if len(signature) != SIGNATURE_SIZE:
        raise WalletError(
            ErrorCode.INVALID_SIGNATURE, f"signature must be {SIGNATURE_SIZE} bytes"
        )
    r, s, v = signature[:32], signature[32:64], signature[64]
    if v < 27:
        v += 27
    return v, r, s


def encode_execute(
    script: RedeemScript, authorizations: Sequence[Authorization], payouts: Sequence[Payout]
) -> bytes:
    sig_v, sig_r, sig_s = [], [], []
    for auth in authorizations:
        v, r, s = split_signature(auth.signature)
        sig_v.append(v)
        sig_r.append(r)
        sig_s.append(s)
    return _call(
        EXECUTE,
        ["uint8[]", "bytes32[]", "bytes32[]", "bytes32", "address[]", "uint256[]"],
        [
            sig_v,
            sig_r,
            sig_s,
            commitment_hash(script),
            [format_address(p.destination) for p in payouts],
            [p.amount for p in payouts],
        ],
    )


def encode_transactions_query(transaction_id: bytes) -> bytes:
    return _call(TRANSACTIONS, ["bytes20"], [transaction_id])


def decode_transactions_result(data: bytes) -> Optional[EscrowRecord]:
    """Decode the record getter; an all-zero commitment means no record."""
    commitment, value, last_modified = decode(_RECORD_TYPES, data)
    if commitment == bytes(32):
        return None
    return EscrowRecord(commitment=bytes(commitment), value=value, last_modified=last_modified)


def contract_address(value: Optional[str]) -> Address:
    if not value:
        raise WalletError(ErrorCode.INVALID_ADDRESS, "escrow contract address is not configured")
    return parse_address(value)
