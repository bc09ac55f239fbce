"""Transaction assembly: transfers, escrow funding and threshold-gated releases.

The builder resolves nonce and fee rate through the chain client, signs with
the wallet credential and hands back a :class:`SignedTransaction`. It never
broadcasts. Builds whose result will be submitted must run inside
:meth:`TransactionBuilder.issuing` together with the submission, so two
transactions from this account are never built against the same nonce.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Iterable, List, Optional, Sequence, Tuple

from .address import Address, AddressLike, format_address, parse_address
from .amounts import check_amount, checked_add, checked_mul, checked_sum
from .chain import ChainClient, call_with_timeout, expect_quantity
from .config import DEFAULT_REQUEST_TIMEOUT, ESCROW_GAS_LIMIT, SECONDS_PER_HOUR, TRANSFER_GAS_LIMIT
from .contract import encode_add_transaction, encode_execute
from .credentials import Credential, recover_signer
from .errors import ErrorCode, WalletError
from .hashing import commitment_hash, release_digest
from .script import RedeemScript, validate_script
from .types import Authorization, EscrowRecord, Payout, PendingTransfer, SignedTransaction

logger = logging.getLogger(__name__)


def parse_destination(destination: AddressLike) -> Address:
    try:
        address = parse_address(destination)
    except WalletError as exc:
        raise WalletError(ErrorCode.INVALID_DESTINATION, exc.message, address=str(destination)) from exc
    if address.is_zero:
        raise WalletError(ErrorCode.INVALID_DESTINATION, "zero address is not a valid destination")
    return address


def _positive_amount(amount: int, name: str = "amount") -> int:
    amount = check_amount(amount, name)
    if amount == 0:
        raise WalletError(ErrorCode.INVALID_AMOUNT, f"{name} must be > 0")
    return amount


def sign_release(
    credential: Credential, script: RedeemScript, payouts: Sequence[Payout], contract: Address
) -> Authorization:
    """A party's authorisation of ``payouts`` for ``script`` on ``contract``."""
    digest = release_digest(script, payouts, contract)
    return Authorization(signer=credential.address, signature=credential.sign_digest(digest))


class TransactionBuilder:
    def __init__(
        self,
        client: ChainClient,
        credential: Credential,
        chain_id: int,
        escrow_contract: Optional[Address] = None,
        transfer_gas_limit: int = TRANSFER_GAS_LIMIT,
        escrow_gas_limit: int = ESCROW_GAS_LIMIT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.credential = credential
        self.chain_id = chain_id
        self.escrow_contract = escrow_contract
        self.transfer_gas_limit = transfer_gas_limit
        self.escrow_gas_limit = escrow_gas_limit
        self.timeout = timeout
        self._clock = clock
        self._lock = asyncio.Lock()
        # Lowest nonce not yet handed to the client by this process.
        self._next_nonce: Optional[int] = None

    @property
    def address(self) -> Address:
        return self.credential.address

    @asynccontextmanager
    async def issuing(self) -> AsyncIterator["TransactionBuilder"]:
        """Single sequencing point for build + submit."""
        async with self._lock:
            yield self

    def mark_submitted(self, signed: SignedTransaction) -> None:
        if self._next_nonce is None or signed.nonce >= self._next_nonce:
            self._next_nonce = signed.nonce + 1

    # --- client calls ---

    async def _confirmed_balance(self) -> int:
        value = await call_with_timeout(
            self.client.get_confirmed_balance(self.address),
            operation="get_confirmed_balance",
            timeout=self.timeout,
            code=ErrorCode.UNAVAILABLE_LEDGER,
            address=self.address,
        )
        return expect_quantity(
            value, operation="get_confirmed_balance", code=ErrorCode.UNAVAILABLE_LEDGER, address=self.address
        )

    async def _nonce(self) -> int:
        value = await call_with_timeout(
            self.client.get_nonce(self.address),
            operation="get_nonce",
            timeout=self.timeout,
            code=ErrorCode.UNAVAILABLE_CLIENT,
            address=self.address,
        )
        nonce = expect_quantity(value, operation="get_nonce", code=ErrorCode.UNAVAILABLE_CLIENT, address=self.address)
        if self._next_nonce is not None and self._next_nonce > nonce:
            logger.debug(f"client nonce {nonce} behind local sequence {self._next_nonce}")
            return self._next_nonce
        return nonce

    async def _fee_rate(self, fee_rate: Optional[int]) -> int:
        if fee_rate is not None:
            return check_amount(fee_rate, "fee_rate")
        value = await call_with_timeout(
            self.client.suggest_fee_rate(),
            operation="suggest_fee_rate",
            timeout=self.timeout,
            code=ErrorCode.UNAVAILABLE_CLIENT,
        )
        return expect_quantity(value, operation="suggest_fee_rate", code=ErrorCode.UNAVAILABLE_CLIENT)

    async def fetch_escrow(self, script: RedeemScript) -> EscrowRecord:
        """On-chain record for ``script``; SCRIPT_MISMATCH unless it commits to this script."""
        record = await call_with_timeout(
            self.client.get_escrow(script.transaction_id),
            operation="get_escrow",
            timeout=self.timeout,
            code=ErrorCode.UNAVAILABLE_CLIENT,
        )
        tid = script.transaction_id.hex()
        if record is None:
            raise WalletError(ErrorCode.SCRIPT_MISMATCH, f"no escrow recorded for transaction id {tid}", "get_escrow")
        if bytes(record.commitment) != commitment_hash(script):
            raise WalletError(
                ErrorCode.SCRIPT_MISMATCH,
                f"recorded commitment 0x{bytes(record.commitment).hex()} does not match script {tid}",
                "get_escrow",
            )
        return record

    def _require_contract(self) -> Address:
        if self.escrow_contract is None:
            raise WalletError(ErrorCode.INVALID_DESTINATION, "escrow contract address is not configured")
        return self.escrow_contract

    # --- signing ---

    def _sign(
        self,
        to: Address,
        value: int,
        data: bytes,
        nonce: int,
        fee_rate: int,
        gas_limit: int,
        fee_ceiling: int,
        authorization: Tuple[Address, ...],
    ) -> SignedTransaction:
        fields = {
            "nonce": nonce,
            "gasPrice": fee_rate,
            "gas": gas_limit,
            "to": format_address(to),
            "value": value,
            "data": "0x" + data.hex(),
            "chainId": self.chain_id,
        }
        raw, tx_hash = self.credential.sign_transaction(fields)
        pending = PendingTransfer(
            nonce=nonce,
            recipient=to,
            amount=value,
            fee_ceiling=fee_ceiling,
            authorization=authorization,
        )
        logger.info(f"built tx 0x{tx_hash.hex()} nonce={nonce} to={to} value={value} gas_price={fee_rate}")
        return SignedTransaction(
            raw=raw, tx_hash=tx_hash, pending=pending, data=data, fee_rate=fee_rate, gas_limit=gas_limit
        )

    async def _build_spend(
        self,
        to: Address,
        amount: int,
        data: bytes,
        gas_limit: int,
        fee_rate: Optional[int],
        authorization: Tuple[Address, ...],
    ) -> SignedTransaction:
        confirmed = await self._confirmed_balance()
        if amount > confirmed:
            raise WalletError(
                ErrorCode.INSUFFICIENT_FUNDS,
                f"amount {amount} exceeds confirmed balance {confirmed}",
                address=str(self.address),
            )
        rate = await self._fee_rate(fee_rate)
        fee_ceiling = checked_mul(gas_limit, rate)
        if checked_add(amount, fee_ceiling) > confirmed:
            raise WalletError(
                ErrorCode.INSUFFICIENT_FUNDS,
                f"amount {amount} plus fee ceiling {fee_ceiling} exceeds confirmed balance {confirmed}",
                address=str(self.address),
            )
        nonce = await self._nonce()
        return self._sign(to, amount, data, nonce, rate, gas_limit, fee_ceiling, authorization)

    # --- operations ---

    async def build_transfer(
        self, destination: AddressLike, amount: int, fee_rate: Optional[int] = None
    ) -> SignedTransaction:
        dest = parse_destination(destination)
        amount = _positive_amount(amount)
        return await self._build_spend(
            dest, amount, b"", self.transfer_gas_limit, fee_rate, (self.address,)
        )

    async def build_funding(
        self, script: RedeemScript, amount: int, fee_rate: Optional[int] = None
    ) -> SignedTransaction:
        """Deposit ``amount`` into the escrow contract under ``script``'s commitment."""
        validate_script(script)
        contract = self._require_contract()
        amount = _positive_amount(amount)
        return await self._build_spend(
            contract, amount, encode_add_transaction(script), self.escrow_gas_limit, fee_rate, (self.address,)
        )

    def verified_authorizations(
        self, script: RedeemScript, authorizations: Iterable[Authorization], digest: bytes
    ) -> List[Authorization]:
        """Distinct participant signatures that recover to their claimed signer."""
        participants = set(script.participants)
        seen: set[Address] = set()
        verified: List[Authorization] = []
        for auth in authorizations:
            if auth.signer in seen or auth.signer not in participants:
                logger.debug(f"ignoring authorization from {auth.signer}")
                continue
            if recover_signer(digest, auth.signature) != auth.signer:
                logger.debug(f"signature from {auth.signer} does not verify")
                continue
            seen.add(auth.signer)
            verified.append(auth)
        return verified

    def _timeout_elapsed(self, script: RedeemScript, record: EscrowRecord) -> bool:
        deadline = record.last_modified + script.timeout_hours * SECONDS_PER_HOUR
        return self._clock() >= deadline

    async def build_release(
        self,
        script: RedeemScript,
        authorizations: Sequence[Authorization],
        payouts: Optional[Sequence[Payout]] = None,
        fee_rate: Optional[int] = None,
    ) -> SignedTransaction:
        """Release escrowed funds; defaults to paying the whole recorded value to the seller."""
        validate_script(script)
        contract = self._require_contract()

        record: Optional[EscrowRecord] = None
        if payouts is None:
            record = await self.fetch_escrow(script)
            payouts = (Payout(destination=script.seller, amount=record.value),)
        else:
            payouts = tuple(
                Payout(destination=parse_destination(p.destination), amount=check_amount(p.amount, "payout amount"))
                for p in payouts
            )
        if not payouts:
            raise WalletError(ErrorCode.INVALID_AMOUNT, "release needs at least one payout")

        digest = release_digest(script, payouts, contract)
        verified = self.verified_authorizations(script, authorizations, digest)
        signers = tuple(a.signer for a in verified)

        if len(verified) < script.threshold:
            # Timeout escape: after the timeout the seller alone may release.
            if not (script.has_timeout and script.seller in signers):
                raise WalletError(
                    ErrorCode.THRESHOLD_NOT_MET,
                    f"{len(verified)} of {script.threshold} required authorizations",
                    "build_release",
                )
            if record is None:
                record = await self.fetch_escrow(script)
            if not self._timeout_elapsed(script, record):
                raise WalletError(
                    ErrorCode.THRESHOLD_NOT_MET,
                    f"{len(verified)} of {script.threshold} required authorizations and timeout not elapsed",
                    "build_release",
                )
            verified = [a for a in verified if a.signer == script.seller]
            signers = (script.seller,)
            logger.info(f"releasing {script.transaction_id.hex()} on seller timeout")

        if record is None:
            record = await self.fetch_escrow(script)

        total = checked_sum(p.amount for p in payouts)
        if total == 0:
            raise WalletError(ErrorCode.INVALID_AMOUNT, "nothing to release")
        if total > record.value:
            raise WalletError(
                ErrorCode.INVALID_AMOUNT, f"payouts {total} exceed escrowed value {record.value}", "build_release"
            )

        data = encode_execute(script, verified, payouts)
        return await self._build_spend(contract, 0, data, self.escrow_gas_limit, fee_rate, signers)
