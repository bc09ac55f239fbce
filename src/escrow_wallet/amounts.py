"""uint256 amount arithmetic with explicit overflow checks."""

from __future__ import annotations

from .config import U256_MAX
from .errors import ErrorCode, WalletError


def check_amount(value: object, name: str = "amount") -> int:
    """Return ``value`` if it is an int within uint256 bounds."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise WalletError(ErrorCode.INVALID_AMOUNT, f"{name} must be an integer")
    if value < 0:
        raise WalletError(ErrorCode.INVALID_AMOUNT, f"{name} must be >= 0")
    if value > U256_MAX:
        raise WalletError(ErrorCode.OVERFLOW, f"{name} exceeds u256 max")
    return value


def checked_add(a: int, b: int) -> int:
    total = a + b
    if total > U256_MAX:
        raise WalletError(ErrorCode.OVERFLOW, "u256 addition overflow")
    return total


def checked_mul(a: int, b: int) -> int:
    product = a * b
    if product > U256_MAX:
        raise WalletError(ErrorCode.OVERFLOW, "u256 multiplication overflow")
    return product


def checked_sum(values) -> int:
    total = 0
    for v in values:
        total = checked_add(total, v)
    return total
