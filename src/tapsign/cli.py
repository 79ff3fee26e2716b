"""Click CLI for tapsign."""

import asyncio
import json as json_mod
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

import click

from tapsign.address import bytes_to_address, derive_address
from tapsign.card import CardStore
from tapsign.config import TapSignConfig, get_chain_id, get_rpc_url, load_config
from tapsign.constants import SUPPORTED_CURVE, WEI_PER_ETH
from tapsign.errors import (
    BroadcastRejected,
    ChainIdMismatch,
    InternalVerificationFailed,
    InvalidPublicKey,
    RpcUnavailable,
    SignatureAddressMismatch,
    SigningFailed,
    TapSignError,
    UnsupportedCurve,
)
from tapsign.pipeline import sign_and_broadcast, sign_transaction
from tapsign.rpc import RpcClient
from tapsign.signer import CardHashSigner
from tapsign.transaction import WalletDescriptor

logger = logging.getLogger(__name__)

# Order matters: subclasses before their bases.
ERROR_LABELS = [
    (UnsupportedCurve, "Unsupported wallet curve"),
    (InvalidPublicKey, "Invalid wallet public key"),
    (ChainIdMismatch, "Wrong network"),
    (RpcUnavailable, "Network error"),
    (SigningFailed, "Card signing failed"),
    (SignatureAddressMismatch, "Untrusted signature, not broadcast"),
    (InternalVerificationFailed, "Internal verification failed, not broadcast"),
    (BroadcastRejected, "Node rejected transaction"),
]


class _JsonFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record):
        return json_mod.dumps({
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        })


def setup_logging(level: str, json_log: bool = False) -> None:
    if json_log:
        handler = logging.StreamHandler()
        handler.setFormatter(_JsonFormatter())
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            handlers=[handler],
        )
    else:
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def describe_error(error: TapSignError) -> str:
    """Prefix an error message with the kind of failure."""
    for cls, label in ERROR_LABELS:
        if isinstance(error, cls):
            return f"{label}: {error}"
    return str(error)


def parse_eth_amount(amount: str) -> int:
    """Convert an ETH amount string to wei using Decimal for precision."""
    try:
        wei = Decimal(amount) * Decimal(WEI_PER_ETH)
    except InvalidOperation:
        raise click.BadParameter(f"'{amount}' is not a number", param_hint="--value")
    if wei < 0 or wei != wei.to_integral_value():
        raise click.BadParameter(
            f"'{amount}' is not a non-negative amount of wei", param_hint="--value"
        )
    return int(wei)


def parse_hex_data(data: str) -> bytes:
    hex_str = data[2:] if data.lower().startswith("0x") else data
    try:
        return bytes.fromhex(hex_str)
    except ValueError:
        raise click.BadParameter(f"'{data}' is not hex data", param_hint="--data")


@click.group()
@click.option("--config", "-c", "config_path", type=click.Path(exists=True),
              default=None, help="Path to config YAML file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json-log", is_flag=True, help="Output logs in structured JSON format")
@click.pass_context
def cli(ctx, config_path, verbose, json_log):
    """tapsign: sign Ethereum transactions with hash-only signing cards."""
    ctx.ensure_object(dict)

    if config_path:
        config = load_config(Path(config_path))
    else:
        config = TapSignConfig()

    if verbose:
        config.log_level = "DEBUG"

    setup_logging(config.log_level, json_log=json_log)
    ctx.obj["config"] = config


# --- Address derivation ---

@cli.command("address")
@click.argument("public_key")
@click.option("--curve", default=SUPPORTED_CURVE, show_default=True,
              help="Curve of the wallet key")
def address(public_key, curve):
    """Print the Ethereum address for a wallet public key."""
    try:
        click.echo(bytes_to_address(derive_address(public_key, curve)))
    except TapSignError as e:
        click.echo(f"Error: {describe_error(e)}", err=True)
        sys.exit(1)


# --- Send ---

@cli.command("send")
@click.option("--card", "-k", "card_name", required=True, help="Software card name")
@click.option("--to", "recipient", required=True, help="Recipient Ethereum address (0x...)")
@click.option("--data", default="0x", help="Call data as hex (default: empty)")
@click.option("--value", default="0", help="Amount in ETH (default: 0)")
@click.option("--rpc-url", default=None, help="JSON-RPC URL (overrides config)")
@click.option("--chain-id", type=int, default=None, help="Expected chain ID (overrides config)")
@click.option("--passphrase", prompt=True, hide_input=True, default="",
              help="Card passphrase")
@click.option("--dry-run", is_flag=True, help="Sign and print the raw transaction without broadcasting")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def send(ctx, card_name, recipient, data, value, rpc_url, chain_id,
         passphrase, dry_run, yes):
    """Build, card-sign, verify and broadcast a transaction."""
    config = ctx.obj["config"]
    if rpc_url:
        config.rpc_url = rpc_url
    if chain_id is not None:
        config.chain_id = chain_id

    payload = parse_hex_data(data)
    value_wei = parse_eth_amount(value)

    store = CardStore(config.card_dir)
    try:
        soft_card = store.load_card(card_name, passphrase=passphrase)
    except FileNotFoundError:
        click.echo(f"Error: Card '{card_name}' not found.", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: Failed to unlock card: {e}", err=True)
        sys.exit(1)

    scanned = soft_card.scan()
    wallet = WalletDescriptor.from_dict(
        dict(scanned["wallets"][0], cardId=scanned["cardId"])
    )
    resolved_rpc = get_rpc_url(config)
    expected_chain_id = get_chain_id(config)

    click.echo("Preparing transaction...")
    click.echo(f"  Card:    {wallet.card_id}")
    click.echo(f"  To:      {recipient}")
    click.echo(f"  Value:   {value} ETH")
    click.echo(f"  Data:    {len(payload)} bytes")
    click.echo(f"  RPC:     {resolved_rpc}")
    click.echo()

    if not dry_run and not yes:
        if not click.confirm(f"Sign and broadcast to {recipient}?", default=False):
            click.echo("Cancelled.")
            return

    async def _run():
        async with RpcClient(resolved_rpc) as rpc:
            signer = CardHashSigner(soft_card, card_id=wallet.card_id)
            kwargs = dict(
                rpc=rpc, signer=signer, value=value_wei,
                priority_fee=config.priority_fee_wei,
                expected_chain_id=expected_chain_id,
            )
            if dry_run:
                return await sign_transaction(wallet, recipient, payload, **kwargs)
            return await sign_and_broadcast(wallet, recipient, payload, **kwargs)

    try:
        result = asyncio.run(_run())
    except TapSignError as e:
        logger.error("Send failed: %s", e)
        click.echo(f"Error: {describe_error(e)}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if dry_run:
        click.echo(f"Signed by: {result.sender()}")
        click.echo(f"TX hash:   {result.tx_hash}")
        click.echo(f"Raw:       {result.raw_hex}")
    else:
        click.echo(f"Success! TX hash: {result}")


# --- Software card management ---

@cli.group()
def card():
    """Manage local software cards (development stand-in for hardware)."""
    pass


def _store(ctx) -> CardStore:
    return CardStore(ctx.obj["config"].card_dir)


@card.command("create")
@click.option("--name", "-n", required=True, help="Card name")
@click.option("--passphrase", prompt=True, hide_input=True,
              confirmation_prompt=True,
              help="Encryption passphrase (required)")
@click.pass_context
def card_create(ctx, name, passphrase):
    """Create a new software card with a random key."""
    if not passphrase:
        click.echo("Error: A passphrase is required to protect the card key.", err=True)
        sys.exit(1)
    try:
        descriptor = _store(ctx).create_card(name, passphrase=passphrase)
    except FileExistsError:
        click.echo(f"Error: Card '{name}' already exists.", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Card created: {name}")
    click.echo(f"Card ID:      {descriptor['cardId']}")
    click.echo(f"Address:      {descriptor['address']}")


@card.command("import")
@click.option("--name", "-n", required=True, help="Card name")
@click.option("--private-key", prompt=True, hide_input=True,
              help="Hex-encoded private key (with or without 0x prefix)")
@click.option("--passphrase", prompt=True, hide_input=True,
              confirmation_prompt=True, default="",
              help="Encryption passphrase")
@click.pass_context
def card_import(ctx, name, private_key, passphrase):
    """Import an existing private key as a software card."""
    try:
        descriptor = _store(ctx).import_card(name, private_key, passphrase=passphrase)
    except FileExistsError:
        click.echo(f"Error: Card '{name}' already exists.", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Card imported: {name}")
    click.echo(f"Address:       {descriptor['address']}")


@card.command("list")
@click.pass_context
def card_list(ctx):
    """List all software cards."""
    cards = _store(ctx).list_cards()
    if not cards:
        click.echo("No cards found. Create one with: tapsign card create --name <name>")
        return

    click.echo(f"{'Name':<20} {'Card ID':<18} {'Address'}")
    click.echo("-" * 82)
    for c in cards:
        click.echo(f"{c['name']:<20} {c['card_id']:<18} {c['address']}")


@card.command("show")
@click.option("--name", "-n", required=True, help="Card name")
@click.pass_context
def card_show(ctx, name):
    """Show a card's wallet descriptor."""
    try:
        descriptor = _store(ctx).get_descriptor(name)
    except FileNotFoundError:
        click.echo(f"Error: Card '{name}' not found.", err=True)
        sys.exit(1)
    wallet = descriptor["wallets"][0]
    click.echo(f"Card ID:    {descriptor['cardId']}")
    click.echo(f"Curve:      {wallet['curve']}")
    click.echo(f"Public key: {wallet['publicKey']}")
    click.echo(f"Address:    {descriptor['address']}")


@card.command("delete")
@click.option("--name", "-n", required=True, help="Card name")
@click.confirmation_option(prompt="Are you sure you want to delete this card?")
@click.pass_context
def card_delete(ctx, name):
    """Delete a software card."""
    try:
        _store(ctx).delete_card(name)
        click.echo(f"Card '{name}' deleted.")
    except FileNotFoundError:
        click.echo(f"Error: Card '{name}' not found.", err=True)
        sys.exit(1)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
