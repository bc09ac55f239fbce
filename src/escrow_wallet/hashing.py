"""Hash assignments for the escrow wallet (Ethereum-native Keccak-256)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from Cryptodome.Hash import keccak

from .address import Address
from .encoding import encode_release_payload, serialize_script
from .script import RedeemScript
from .types import Payout


@dataclass(frozen=True)
class HashAssignment:
    purpose: str
    algorithm: str
    output_size: int
    input_layout: str


ASSIGNMENTS = [
    HashAssignment("commitment", "KECCAK-256", 32, "canonical redeem script bytes"),
    HashAssignment("release_digest", "KECCAK-256", 32, "0x19 || 0x00 || contract || destinations || amounts || commitment"),
    HashAssignment("function_selector", "KECCAK-256", 4, "ascii function signature"),
]


def keccak256(data: bytes) -> bytes:
    h = keccak.new(digest_bits=256)
    h.update(data)
    return h.digest()


def hash_script_bytes(serialized: bytes) -> bytes:
    """Commitment hash of an already-serialized script."""
    return keccak256(serialized)


def commitment_hash(script: RedeemScript) -> bytes:
    return hash_script_bytes(serialize_script(script))


def release_digest(script: RedeemScript, payouts: Sequence[Payout], contract: Address) -> bytes:
    return keccak256(encode_release_payload(contract, payouts, commitment_hash(script)))


def function_selector(signature: str) -> bytes:
    return keccak256(signature.encode("ascii"))[:4]
