"""Chain client interface and bounded-timeout call helper.

The chain client is the only source of truth for balances, nonces and fee
rates. Every call made through :func:`call_with_timeout` either returns, or
fails with a typed :class:`WalletError`; none of them hangs or retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, Protocol, TypeVar

from .address import Address
from .errors import ErrorCode, WalletError
from .types import EscrowRecord, SignedTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChainClient(Protocol):
    async def get_confirmed_balance(self, address: Address) -> int: ...

    async def get_pending_balance(self, address: Address) -> int: ...

    async def get_nonce(self, address: Address) -> int: ...

    async def suggest_fee_rate(self) -> int: ...

    async def submit(self, signed: SignedTransaction) -> bytes: ...

    async def get_escrow(self, transaction_id: bytes) -> Optional[EscrowRecord]: ...


async def call_with_timeout(
    awaitable: Awaitable[T],
    *,
    operation: str,
    timeout: float,
    code: ErrorCode,
    address: Optional[Address] = None,
) -> T:
    """Await a chain-client call; map timeouts and transport failures to ``code``.

    A :class:`WalletError` raised by the client keeps its own code unless it is
    a generic availability failure, which is re-labelled with ``code`` so the
    caller sees the operation-level meaning (ledger vs. client).
    """
    where = str(address) if address is not None else None
    logger.debug(f"chain call {operation} address={where} timeout={timeout}")
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error(f"chain call {operation} timed out after {timeout}s")
        raise WalletError(code, f"timed out after {timeout}s", operation, where) from exc
    except WalletError as exc:
        if exc.code in (ErrorCode.UNAVAILABLE_CLIENT, ErrorCode.UNAVAILABLE_LEDGER):
            raise WalletError(code, exc.message, operation, where) from exc
        raise
    except OSError as exc:
        logger.error(f"chain call {operation} failed: {exc}")
        raise WalletError(code, str(exc) or type(exc).__name__, operation, where) from exc


def expect_quantity(value: object, *, operation: str, code: ErrorCode, address: Optional[Address] = None) -> int:
    """Reject answers that are not non-negative integers; never guess a value."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        where = str(address) if address is not None else None
        raise WalletError(code, f"client returned invalid quantity {value!r}", operation, where)
    return value
