"""Balance snapshots and dust classification."""

from __future__ import annotations

import asyncio

import pytest

from escrow_wallet.balance import BalanceAggregator
from escrow_wallet.config import U256_MAX
from escrow_wallet.errors import ErrorCategory, ErrorCode, WalletError
from escrow_wallet.types import BalanceSnapshot


def _aggregator(client, credential, **kwargs) -> BalanceAggregator:
    kwargs.setdefault("timeout", 0.2)
    return BalanceAggregator(client, credential.address, **kwargs)


def test_snapshot_sums(client, credential) -> None:
    client.confirmed = 5_000
    client.pending = 1_200
    snap = asyncio.run(_aggregator(client, credential).snapshot())
    assert snap == BalanceSnapshot(confirmed=5_000, unconfirmed=1_200)
    assert snap.available == 5_000
    assert snap.total == 6_200


def test_balance_total_matches_snapshot(client, credential) -> None:
    client.confirmed = 42
    client.pending = 8
    agg = _aggregator(client, credential)
    snap = asyncio.run(agg.snapshot())
    assert asyncio.run(agg.balance()) == snap.confirmed + snap.unconfirmed == 50
    assert asyncio.run(agg.balance(confirmed_only=True)) == 42


def test_confirmed_only_skips_pending_query(client, credential) -> None:
    asyncio.run(_aggregator(client, credential).balance(confirmed_only=True))
    assert client.calls == ["get_confirmed_balance"]


def test_client_failure_is_unavailable_ledger(client, credential) -> None:
    client.failures["get_pending_balance"] = ConnectionError("node down")
    with pytest.raises(WalletError) as exc:
        asyncio.run(_aggregator(client, credential).snapshot())
    assert exc.value.code == ErrorCode.UNAVAILABLE_LEDGER
    assert exc.value.operation == "get_pending_balance"
    assert exc.value.address == str(credential.address)
    assert exc.value.category == ErrorCategory.NETWORK
    assert exc.value.retryable


def test_client_unavailable_error_is_relabelled(client, credential) -> None:
    client.failures["get_confirmed_balance"] = WalletError(ErrorCode.UNAVAILABLE_CLIENT, "503")
    with pytest.raises(WalletError) as exc:
        asyncio.run(_aggregator(client, credential).balance(confirmed_only=True))
    assert exc.value.code == ErrorCode.UNAVAILABLE_LEDGER


def test_timeout_is_unavailable_ledger(client, credential) -> None:
    client.delays["get_confirmed_balance"] = 5.0
    with pytest.raises(WalletError) as exc:
        asyncio.run(_aggregator(client, credential, timeout=0.05).snapshot())
    assert exc.value.code == ErrorCode.UNAVAILABLE_LEDGER
    assert "timed out" in exc.value.message


@pytest.mark.parametrize("bad", [-1, None, "100", 1.5])
def test_invalid_answer_never_becomes_zero(client, credential, bad) -> None:
    client.confirmed = bad
    with pytest.raises(WalletError) as exc:
        asyncio.run(_aggregator(client, credential).snapshot())
    assert exc.value.code == ErrorCode.UNAVAILABLE_LEDGER


def test_total_overflow_is_reported() -> None:
    snap = BalanceSnapshot(confirmed=U256_MAX, unconfirmed=1)
    with pytest.raises(WalletError) as exc:
        snap.total
    assert exc.value.code == ErrorCode.OVERFLOW


def test_is_dust_threshold(client, credential) -> None:
    agg = _aggregator(client, credential)
    assert not agg.is_dust(10_000 + 10_000)
    assert agg.is_dust(10_000 - 100)
    assert not agg.is_dust(10_000)
    assert agg.is_dust(0)


def test_is_dust_monotonic(client, credential) -> None:
    agg = _aggregator(client, credential, dust_threshold=777)
    results = [agg.is_dust(x) for x in range(0, 2_000, 7)]
    # Once an amount is not dust, no larger amount is dust.
    assert results == sorted(results, reverse=True)
    assert results == [agg.is_dust(x) for x in range(0, 2_000, 7)]


def test_is_dust_rejects_negative(client, credential) -> None:
    with pytest.raises(WalletError) as exc:
        _aggregator(client, credential).is_dust(-5)
    assert exc.value.code == ErrorCode.INVALID_AMOUNT


def test_rejected_by_network_is_not_retryable() -> None:
    assert not WalletError(ErrorCode.REJECTED_BY_NETWORK, "nonce too low").retryable
    assert WalletError(ErrorCode.UNAVAILABLE_CLIENT, "down").retryable
    assert not WalletError(ErrorCode.INVALID_SCRIPT, "bad").retryable
