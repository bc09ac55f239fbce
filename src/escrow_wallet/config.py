"""Escrow wallet configuration constants and runtime settings.

Keep the wire constants aligned with the escrow contract: changing any
size below is a breaking protocol change for counterparties.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

# Wire sizes
ADDRESS_SIZE = 20
TRANSACTION_ID_SIZE = 20
HASH_SIZE = 32
SIGNATURE_SIZE = 65

# Integer bounds
U8_MAX = (1 << 8) - 1
U32_MAX = (1 << 32) - 1
U256_MAX = (1 << 256) - 1

# Escrow
SECONDS_PER_HOUR = 3600

# Units
WEI_PER_ETHER = 10**18
DEFAULT_CURRENCY_CODE = "ETH"
DEFAULT_DUST_THRESHOLD = 10_000

# Gas
TRANSFER_GAS_LIMIT = 21_000
ESCROW_GAS_LIMIT = 4_000_000

# Chain / network
CHAIN_ID_MAINNET = 1
DEFAULT_RPC_ENDPOINT = "http://localhost:8545"
DEFAULT_REQUEST_TIMEOUT = 30.0

ENV_PREFIX = "ESCROW_WALLET_"

_TRUE_VALUES = ("true", "1", "yes")


@dataclass
class WalletConfig:
    """Runtime settings for a single wallet instance."""
    rpc_endpoint: str = DEFAULT_RPC_ENDPOINT
    chain_id: int = CHAIN_ID_MAINNET
    escrow_contract: Optional[str] = None
    keyfile: Optional[str] = None
    currency_code: str = DEFAULT_CURRENCY_CODE
    dust_threshold: int = DEFAULT_DUST_THRESHOLD
    transfer_gas_limit: int = TRANSFER_GAS_LIMIT
    escrow_gas_limit: int = ESCROW_GAS_LIMIT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    verbose: bool = False

    @classmethod
    def from_yaml(cls, path: str | Path) -> "WalletConfig":
        """Load configuration from a YAML mapping, ignoring unknown keys."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: config must be a mapping")
        config = cls()
        config.update(data)
        return config

    @classmethod
    def from_env(cls, base: Optional["WalletConfig"] = None) -> "WalletConfig":
        """Overlay ``ESCROW_WALLET_*`` environment variables on ``base``."""
        config = base if base is not None else cls()
        overrides: dict[str, Any] = {}
        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is not None:
                overrides[f.name] = raw
        config.update(overrides)
        return config

    @classmethod
    def load(cls, path: Optional[str | Path] = None) -> "WalletConfig":
        base = cls.from_yaml(path) if path else cls()
        return cls.from_env(base)

    def update(self, values: dict[str, Any]) -> None:
        known = {f.name: f for f in fields(self)}
        for key, value in values.items():
            if key not in known or value is None:
                continue
            if key == "escrow_contract" and isinstance(value, int) and not isinstance(value, bool):
                # YAML 1.1 reads an unquoted 0x... address as an integer.
                value = f"0x{value:040x}"
            setattr(self, key, _coerce(known[key].type, value))
        if self.dust_threshold < 0:
            raise ValueError("dust_threshold must be >= 0")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")


def _coerce(annotation: Any, value: Any) -> Any:
    # Annotations are strings under `from __future__ import annotations`.
    kind = str(annotation)
    if kind == "bool":
        if isinstance(value, bool):
            return value
        return str(value).lower() in _TRUE_VALUES
    if kind == "int":
        return int(value)
    if kind == "float":
        return float(value)
    return str(value)
