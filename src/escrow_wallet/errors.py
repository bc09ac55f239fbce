"""Escrow wallet error codes and exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class ErrorCategory(IntEnum):
    VALIDATION = 0x01
    AUTHORIZATION = 0x02
    RESOURCE = 0x03
    NETWORK = 0x06
    INTERNAL = 0xFF


class ErrorCode(IntEnum):
    # Validation
    INVALID_SCRIPT = 0x0100
    INVALID_ADDRESS = 0x0101
    INVALID_DESTINATION = 0x0102
    INVALID_AMOUNT = 0x0103
    INVALID_SIGNATURE = 0x0104

    # Authorization
    THRESHOLD_NOT_MET = 0x0200
    SCRIPT_MISMATCH = 0x0201
    LOCKED_OR_INVALID_CREDENTIAL = 0x0202

    # Resource
    INSUFFICIENT_FUNDS = 0x0300
    OVERFLOW = 0x0301

    # Network
    UNAVAILABLE_LEDGER = 0x0600
    UNAVAILABLE_CLIENT = 0x0601
    REJECTED_BY_NETWORK = 0x0602

    # Internal
    INTERNAL_ERROR = 0xFF00


@dataclass(frozen=True)
class WalletError(Exception):
    code: ErrorCode
    message: str
    operation: Optional[str] = None
    address: Optional[str] = None

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory(self.code >> 8)

    @property
    def retryable(self) -> bool:
        """Transient external failures; the caller decides whether to retry."""
        return (
            self.category == ErrorCategory.NETWORK
            and self.code != ErrorCode.REJECTED_BY_NETWORK
        )

    def __str__(self) -> str:
        text = f"{self.code.name}({self.code:#06x}): {self.message}"
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.address:
            context.append(f"address={self.address}")
        if context:
            text += f" [{', '.join(context)}]"
        return text


# Allow Python's Exception machinery to set __traceback__/__context__/__cause__
# while keeping dataclass fields frozen (Python 3.13 contextlib compat).
_EXCEPTION_ATTRS = frozenset(
    ("__traceback__", "__context__", "__cause__", "__suppress_context__", "__notes__")
)
_frozen_setattr = WalletError.__setattr__


def _wallet_error_setattr(self: WalletError, name: str, value: object) -> None:
    if name in _EXCEPTION_ATTRS:
        object.__setattr__(self, name, value)
    else:
        _frozen_setattr(self, name, value)


WalletError.__setattr__ = _wallet_error_setattr  # type: ignore[method-assign]
