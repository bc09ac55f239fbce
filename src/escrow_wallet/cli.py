#!/usr/bin/env python3
"""
Escrow wallet command line.

Balance queries, transfers, and offline redeem-script hashing.
"""

import asyncio
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import click
import yaml

from escrow_wallet.address import format_address
from escrow_wallet.config import WalletConfig
from escrow_wallet.credentials import KeystoreCredential
from escrow_wallet.encoding import serialize_script
from escrow_wallet.errors import WalletError
from escrow_wallet.hashing import commitment_hash
from escrow_wallet.rpc import JsonRpcChainClient
from escrow_wallet.script import RedeemScript
from escrow_wallet.wallet import EscrowWallet

logger = logging.getLogger("escrow_wallet")

PASSWORD_ENV = "ESCROW_WALLET_PASSWORD"


class PlainDumper(yaml.SafeDumper):
    pass


def _str_representer(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style=None)


PlainDumper.add_representer(str, _str_representer)


def _load_credential(config: WalletConfig) -> KeystoreCredential:
    if not config.keyfile:
        raise click.UsageError("no keyfile configured (set keyfile or ESCROW_WALLET_KEYFILE)")
    password = os.environ.get(PASSWORD_ENV)
    if password is None:
        password = click.prompt("Keystore password", hide_input=True)
    return KeystoreCredential.from_keyfile(config.keyfile, password)


def _run_with_wallet(config: WalletConfig, action) -> Any:
    """Run ``action(wallet)`` against a live node, always releasing resources."""
    credential = _load_credential(config)

    async def run() -> Any:
        async with JsonRpcChainClient.from_config(config) as client:
            wallet = EscrowWallet(client, credential, config)
            try:
                return await action(wallet)
            finally:
                wallet.close()

    return asyncio.run(run())


def _fail(exc: WalletError) -> None:
    logger.error(str(exc))
    sys.exit(1)


def _script_entry(name: str, script: RedeemScript) -> Dict[str, Any]:
    return {
        "name": name,
        "input": {
            "transaction_id": script.transaction_id.hex(),
            "threshold": script.threshold,
            "timeout_hours": script.timeout_hours,
            "buyer": format_address(script.buyer),
            "seller": format_address(script.seller),
            "moderator": format_address(script.moderator) if script.moderator else None,
        },
        "expected": {
            "serialized_hex": serialize_script(script).hex(),
            "commitment_hex": commitment_hash(script).hex(),
        },
    }


def script_vectors() -> List[Dict[str, Any]]:
    """Canonical redeem-script vectors for counterparties to check against."""
    tid = bytes(range(20))
    buyer, seller, moderator = b"\xaa" * 20, b"\xbb" * 20, b"\xcc" * 20
    return [
        _script_entry(
            "two_of_three_24h",
            RedeemScript.create(buyer, seller, moderator, threshold=2, timeout_hours=24, transaction_id=tid),
        ),
        _script_entry(
            "one_of_two_24h",
            RedeemScript.create(buyer, seller, threshold=1, timeout_hours=24, transaction_id=tid),
        ),
        _script_entry(
            "two_of_three_no_timeout",
            RedeemScript.create(buyer, seller, moderator, threshold=2, timeout_hours=0, transaction_id=tid),
        ),
    ]


@click.group()
@click.option("--config", "config_path", default=None, help="Path to a YAML wallet config")
@click.option("--rpc-endpoint", default=None, help="Ethereum JSON-RPC endpoint URL")
@click.option("--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], rpc_endpoint: Optional[str], verbose: bool) -> None:
    """Escrow-capable single-account wallet."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        config = WalletConfig.load(config_path)
    except (ValueError, OSError, yaml.YAMLError) as exc:
        raise click.UsageError(f"invalid configuration: {exc}")
    if rpc_endpoint:
        config.rpc_endpoint = rpc_endpoint
    if verbose:
        config.verbose = True
    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    ctx.obj = config


@main.command()
@click.pass_obj
def address(config: WalletConfig) -> None:
    """Print the wallet address."""
    try:
        credential = _load_credential(config)
    except WalletError as exc:
        _fail(exc)
    click.echo(str(credential.address))
    credential.close()


@main.command()
@click.option("--confirmed-only", is_flag=True, help="Report confirmed funds only")
@click.pass_obj
def balance(config: WalletConfig, confirmed_only: bool) -> None:
    """Print confirmed, unconfirmed and total balance."""

    async def action(wallet: EscrowWallet) -> None:
        if confirmed_only:
            confirmed = await wallet.balance(confirmed_only=True)
            click.echo(f"confirmed: {confirmed} {wallet.currency_code()}")
            return
        snap = await wallet.snapshot()
        click.echo(f"confirmed: {snap.confirmed} {wallet.currency_code()}")
        click.echo(f"unconfirmed: {snap.unconfirmed} {wallet.currency_code()}")
        click.echo(f"total: {snap.total} {wallet.currency_code()}")

    try:
        _run_with_wallet(config, action)
    except WalletError as exc:
        _fail(exc)


@main.command()
@click.argument("destination")
@click.argument("amount", type=int)
@click.option("--fee-rate", type=int, default=None, help="Gas price override in wei")
@click.pass_obj
def transfer(config: WalletConfig, destination: str, amount: int, fee_rate: Optional[int]) -> None:
    """Send AMOUNT (smallest unit) to DESTINATION."""

    async def action(wallet: EscrowWallet) -> bytes:
        return await wallet.transfer(destination, amount, fee_rate=fee_rate)

    try:
        handle = _run_with_wallet(config, action)
    except WalletError as exc:
        _fail(exc)
    click.echo("0x" + handle.hex())


@main.command("script-hash")
@click.option("--buyer", required=True)
@click.option("--seller", required=True)
@click.option("--moderator", default=None)
@click.option("--threshold", type=int, default=None)
@click.option("--timeout-hours", type=int, default=0, show_default=True)
@click.option("--transaction-id", default=None, help="20-byte hex id (random when omitted)")
def script_hash(
    buyer: str,
    seller: str,
    moderator: Optional[str],
    threshold: Optional[int],
    timeout_hours: int,
    transaction_id: Optional[str],
) -> None:
    """Serialize a redeem script and print its commitment hash."""
    try:
        tid = bytes.fromhex(transaction_id.removeprefix("0x")) if transaction_id else None
    except ValueError:
        raise click.BadParameter("must be hex", param_hint="--transaction-id")
    try:
        script = RedeemScript.create(
            buyer, seller, moderator, threshold=threshold, timeout_hours=timeout_hours, transaction_id=tid
        )
    except WalletError as exc:
        _fail(exc)
    click.echo(f"transaction_id: {script.transaction_id.hex()}")
    click.echo(f"serialized: {serialize_script(script).hex()}")
    click.echo(f"commitment: {commitment_hash(script).hex()}")


@main.command()
@click.option("--output", default=None, help="Write vectors to this YAML file instead of stdout")
def vectors(output: Optional[str]) -> None:
    """Dump canonical redeem-script vectors as YAML."""
    text = yaml.dump({"test_vectors": script_vectors()}, Dumper=PlainDumper, sort_keys=False, width=4096)
    if output:
        with open(output, "w") as f:
            f.write(text)
        logger.info(f"wrote {output}")
    else:
        click.echo(text, nl=False)


if __name__ == "__main__":
    main()
