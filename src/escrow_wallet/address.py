"""Participant addresses: 20-byte binary form, EIP-55 display form.

Equality is defined on the binary form. Text input is accepted in all-lower,
all-upper, or valid mixed-case checksum form; a mixed-case string with a bad
checksum is rejected rather than silently normalised.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from eth_utils import is_address, is_checksum_address, to_canonical_address, to_checksum_address

from .config import ADDRESS_SIZE
from .errors import ErrorCode, WalletError


@dataclass(frozen=True)
class Address:
    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, bytes) or len(self.raw) != ADDRESS_SIZE:
            raise WalletError(
                ErrorCode.INVALID_ADDRESS, f"address must be {ADDRESS_SIZE} bytes"
            )

    def __str__(self) -> str:
        return format_address(self)

    def __repr__(self) -> str:
        return f"Address({format_address(self)})"

    def __bytes__(self) -> bytes:
        return self.raw

    @property
    def is_zero(self) -> bool:
        return self.raw == bytes(ADDRESS_SIZE)


AddressLike = Union[Address, str, bytes, bytearray]

ZERO_ADDRESS = Address(bytes(ADDRESS_SIZE))


def parse_address(value: AddressLike) -> Address:
    if isinstance(value, Address):
        return value
    if isinstance(value, (bytes, bytearray)):
        return Address(bytes(value))
    if not isinstance(value, str):
        raise WalletError(ErrorCode.INVALID_ADDRESS, f"unsupported address type: {type(value).__name__}")
    text = value.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    text = "0x" + text
    if not is_address(text):
        raise WalletError(ErrorCode.INVALID_ADDRESS, f"invalid address: {value!r}")
    body = text[2:]
    if body != body.lower() and body != body.upper() and not is_checksum_address(text):
        raise WalletError(ErrorCode.INVALID_ADDRESS, f"bad checksum: {value!r}")
    return Address(bytes(to_canonical_address(text)))


def format_address(address: Address) -> str:
    return to_checksum_address(address.raw)


def is_valid_address(value: object) -> bool:
    try:
        parse_address(value)  # type: ignore[arg-type]
    except WalletError:
        return False
    return True
