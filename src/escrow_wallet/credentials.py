"""Wallet signing credentials backed by eth-account."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError

from .address import Address, parse_address
from .config import HASH_SIZE
from .errors import ErrorCode, WalletError

logger = logging.getLogger(__name__)


class Credential(Protocol):
    @property
    def address(self) -> Address: ...

    def sign_transaction(self, fields: Dict[str, Any]) -> Tuple[bytes, bytes]: ...

    def sign_digest(self, digest: bytes) -> bytes: ...

    def close(self) -> None: ...


class KeystoreCredential:
    """A single unlocked private key. ``close()`` drops the key reference."""

    def __init__(self, private_key: bytes | str):
        try:
            self._account = Account.from_key(private_key)
        except (ValidationError, ValueError, TypeError) as exc:
            raise WalletError(ErrorCode.LOCKED_OR_INVALID_CREDENTIAL, "invalid private key") from exc
        self._address = parse_address(self._account.address)

    @classmethod
    def from_keyfile(cls, path: str | Path, password: str) -> "KeystoreCredential":
        """Unlock an encrypted JSON keystore (web3 secret storage)."""
        try:
            keyfile = json.loads(Path(path).read_text())
        except (OSError, ValueError) as exc:
            raise WalletError(
                ErrorCode.LOCKED_OR_INVALID_CREDENTIAL, f"cannot read keystore {path}: {exc}"
            ) from exc
        try:
            key = Account.decrypt(keyfile, password)
        except (ValueError, TypeError, KeyError) as exc:
            raise WalletError(
                ErrorCode.LOCKED_OR_INVALID_CREDENTIAL, f"cannot unlock keystore {path}"
            ) from exc
        credential = cls(bytes(key))
        logger.info(f"unlocked keystore for {credential.address}")
        return credential

    @property
    def address(self) -> Address:
        return self._address

    @property
    def closed(self) -> bool:
        return self._account is None

    def _unlocked(self):
        if self._account is None:
            raise WalletError(
                ErrorCode.LOCKED_OR_INVALID_CREDENTIAL, "credential has been closed", address=str(self._address)
            )
        return self._account

    def sign_transaction(self, fields: Dict[str, Any]) -> Tuple[bytes, bytes]:
        """Sign a legacy transaction dict; returns (raw, tx_hash)."""
        account = self._unlocked()
        try:
            signed = account.sign_transaction(fields)
        except (ValueError, TypeError) as exc:
            raise WalletError(
                ErrorCode.LOCKED_OR_INVALID_CREDENTIAL, f"signing failed: {exc}", "sign_transaction", str(self._address)
            ) from exc
        return bytes(signed.raw_transaction), bytes(signed.hash)

    def sign_digest(self, digest: bytes) -> bytes:
        """EIP-191 ``personal_sign`` over a 32-byte digest; returns r || s || v."""
        if len(digest) != HASH_SIZE:
            raise WalletError(ErrorCode.INVALID_SIGNATURE, f"digest must be {HASH_SIZE} bytes")
        account = self._unlocked()
        signed = account.sign_message(encode_defunct(primitive=digest))
        return bytes(signed.signature)

    def close(self) -> None:
        self._account = None


def recover_signer(digest: bytes, signature: bytes) -> Optional[Address]:
    """Address that produced ``signature`` over ``digest``, or None if unrecoverable."""
    try:
        recovered = Account.recover_message(encode_defunct(primitive=digest), signature=signature)
    except (BadSignature, ValidationError, ValueError, TypeError) as exc:
        logger.debug(f"signature recovery failed: {exc}")
        return None
    return parse_address(recovered)
