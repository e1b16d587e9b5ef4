"""
Gavel CLI - Command Line Interface for the auction engine

Main entry point for all CLI commands.
"""

import base64
import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import click
from cryptography.fernet import Fernet, InvalidToken

from gavel import __version__
from gavel.core.auction import AuctionEngine, ItemInput
from gavel.core.call import CallDispatcher, create_bid_call, create_init_call
from gavel.core.clock import ManualClock, SystemClock
from gavel.core.config import DEFAULT_DURATION, load_config
from gavel.core.errors import AuctionError
from gavel.core.storage import StorageManager
from gavel.crypto import (
    KeyPair,
    ZERO_ADDRESS,
    bytes_to_hex,
    generate_keypair,
    hex_to_bytes,
    is_valid_address,
    keypair_from_private_key,
)
from gavel.utils.logger import get_logger, setup_logging

logger = get_logger("cli")


# =============================================================================
# Helpers
# =============================================================================


def _wallet_fernet(wallet_name: str, password: str) -> Fernet:
    """Derive the wallet encryption key from the password (PBKDF2)."""
    salt = wallet_name.encode()  # Wallet name as salt (deterministic per wallet)
    key = base64.urlsafe_b64encode(
        hashlib.pbkdf2_hmac('sha256', password.encode(), salt, 100000)
    )
    return Fernet(key)


def decrypt_wallet_key(wallet_data: dict, wallet_name: str, password: str) -> Optional[bytes]:
    """
    Decrypt a wallet's private key.

    Args:
        wallet_data: Loaded wallet JSON data
        wallet_name: Wallet name (used as salt)
        password: User's password

    Returns:
        Decrypted private key bytes, or None on failure
    """
    if "encrypted_private_key" not in wallet_data:
        return None

    try:
        fernet = _wallet_fernet(wallet_name, password)
        return fernet.decrypt(wallet_data["encrypted_private_key"].encode())
    except InvalidToken:
        return None


def _fail(ctx: click.Context, message: str) -> None:
    logger.debug(f"Command {ctx.info_name} failed: {message}")
    click.echo(f"❌ {message}")
    ctx.exit(1)


def _wallet_path(ctx: click.Context, name: str) -> Path:
    return ctx.obj["data_dir"] / "wallets" / f"{name}.json"


def _load_wallet(ctx: click.Context, name: str) -> dict:
    wallet_path = _wallet_path(ctx, name)
    if not wallet_path.exists():
        _fail(ctx, f"Wallet '{name}' not found. Create with: gavel wallet create --name {name}")
    wallet_data = json.loads(wallet_path.read_text())
    if not is_valid_address(wallet_data.get("address", "")):
        _fail(ctx, f"Wallet '{name}' has no valid address: {wallet_path}")
    return wallet_data


def _unlock_wallet(ctx: click.Context, name: str, password: str) -> KeyPair:
    wallet_data = _load_wallet(ctx, name)
    private_key = decrypt_wallet_key(wallet_data, name, password)
    if private_key is None:
        _fail(ctx, f"Could not unlock wallet '{name}': wrong password")
    return keypair_from_private_key(private_key)


def _open_storage(ctx: click.Context) -> StorageManager:
    config = ctx.obj["config"]
    return StorageManager(data_dir=ctx.obj["data_dir"], db_name=config.db_name)


def _open_engine(ctx: click.Context) -> Tuple[AuctionEngine, StorageManager]:
    storage = _open_storage(ctx)
    if not storage.has_engine():
        _fail(ctx, f"No auction deployed in {ctx.obj['data_dir']}. Run: gavel deploy --admin NAME")
    engine = AuctionEngine.load(storage, clock=SystemClock(), max_items=ctx.obj["config"].max_items)
    return engine, storage


def _parse_item(text: str) -> ItemInput:
    """Parse 'description:price' (the description may itself contain colons)."""
    description, sep, price = text.rpartition(":")
    if not sep:
        raise click.BadParameter(f"expected DESCRIPTION:PRICE, got {text!r}")
    try:
        return ItemInput(desc=description, startingPrice=int(price))
    except ValueError as e:
        raise click.BadParameter(f"{text!r}: {e}")


def _format_time(timestamp: Optional[int]) -> str:
    if timestamp is None:
        return "-"
    iso = datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    return f"{timestamp} ({iso})"


def _format_bidder(address: bytes) -> str:
    return "(no bids)" if address == ZERO_ADDRESS else bytes_to_hex(address)


# =============================================================================
# Root Group
# =============================================================================


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (default: $GAVEL_DATA_DIR or ~/.gavel)")
@click.option("--env-file", default=None, help="Load settings from this .env file")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, debug, data_dir, env_file):
    """Gavel - single-auction settlement engine"""
    try:
        config = load_config(env_file)
    except ValueError as e:
        raise click.UsageError(str(e))
    if data_dir:
        config.data_dir = Path(data_dir).expanduser()

    level = logging.DEBUG if debug else config.log_level
    setup_logging(level=level, log_dir=str(config.log_dir), log_to_file=config.log_to_file)
    config.ensure_dirs()

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["data_dir"] = config.data_dir


# =============================================================================
# Wallet Commands
# =============================================================================


@cli.group()
def wallet():
    """Wallet management commands"""
    pass


@wallet.command("create")
@click.option("--name", default="default", help="Wallet name")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Encryption password")
@click.pass_context
def wallet_create(ctx, name, password):
    """Create a new encrypted wallet"""
    wallet_path = _wallet_path(ctx, name)
    if wallet_path.exists():
        _fail(ctx, f"Wallet '{name}' already exists")

    kp = generate_keypair()
    encrypted_private_key = _wallet_fernet(name, password).encrypt(kp.private_key).decode('utf-8')

    wallet_path.parent.mkdir(parents=True, exist_ok=True)
    wallet_data = {
        "name": name,
        "address": kp.address_hex,
        "encrypted_private_key": encrypted_private_key,
        "public_key": bytes_to_hex(kp.public_key),
    }
    wallet_path.write_text(json.dumps(wallet_data, indent=2))

    click.echo(f"✓ Wallet created: {name}")
    click.echo(f"  Address: {kp.address_hex}")
    click.echo(f"  Saved to: {wallet_path}")
    click.echo(f"  ⚠️  Remember your password - it cannot be recovered!")


@wallet.command("list")
@click.pass_context
def wallet_list(ctx):
    """List all wallets"""
    wallet_dir = ctx.obj["data_dir"] / "wallets"
    if not wallet_dir.exists():
        click.echo("No wallets found.")
        return

    for wallet_file in sorted(wallet_dir.glob("*.json")):
        data = json.loads(wallet_file.read_text())
        click.echo(f"  {data['name']}: {data['address']}")


# =============================================================================
# Auction Lifecycle Commands
# =============================================================================


@cli.command("deploy")
@click.option("--admin", "admin_wallet", required=True, help="Wallet that will administer the auction")
@click.pass_context
def deploy(ctx, admin_wallet):
    """Create the auction engine with a wallet as administrator"""
    wallet_data = _load_wallet(ctx, admin_wallet)
    storage = _open_storage(ctx)
    if storage.has_engine():
        _fail(ctx, f"An auction is already deployed in {ctx.obj['data_dir']}")

    engine = AuctionEngine(hex_to_bytes(wallet_data["address"]), storage_manager=storage)

    click.echo("✓ Auction engine deployed")
    click.echo(f"  Administrator: {bytes_to_hex(engine.administrator)}")
    click.echo(f"  Database: {storage.db_path}")


@cli.command("init")
@click.option("--wallet", "wallet_name", required=True, help="Administrator wallet")
@click.option("--password", prompt=True, hide_input=True, help="Wallet password")
@click.option("--item", "items", multiple=True, required=True, help="Item as DESCRIPTION:PRICE (repeatable)")
@click.option("--duration", type=int, default=None, help="Seconds until the deadline")
@click.option("--deadline", type=int, default=None, help="Absolute deadline (Unix seconds)")
@click.pass_context
def init(ctx, wallet_name, password, items, duration, deadline):
    """Seed the catalog and open bidding"""
    if duration is not None and deadline is not None:
        raise click.UsageError("Use either --duration or --deadline, not both")

    parsed: List[ItemInput] = [_parse_item(text) for text in items]
    kp = _unlock_wallet(ctx, wallet_name, password)
    engine, storage = _open_engine(ctx)

    if deadline is None:
        deadline = engine.clock.now() + (duration if duration is not None else ctx.obj["config"].default_duration)

    dispatcher = CallDispatcher(engine, storage_manager=storage)
    call = create_init_call(kp, parsed, deadline, dispatcher.next_nonce(kp.address))
    try:
        dispatcher.submit(call)
    except (AuctionError, ValueError) as e:
        _fail(ctx, f"{type(e).__name__}: {e}")

    click.echo(f"✓ Auction initialized with {engine.item_count} items")
    click.echo(f"  Deadline: {_format_time(engine.deadline)}")


@cli.command("bid")
@click.option("--wallet", "wallet_name", required=True, help="Bidder wallet")
@click.option("--password", prompt=True, hide_input=True, help="Wallet password")
@click.argument("item_id", type=int)
@click.argument("amount", type=int)
@click.pass_context
def bid(ctx, wallet_name, password, item_id, amount):
    """Bid AMOUNT on item ITEM_ID"""
    kp = _unlock_wallet(ctx, wallet_name, password)
    engine, storage = _open_engine(ctx)

    dispatcher = CallDispatcher(engine, storage_manager=storage)
    call = create_bid_call(kp, item_id, amount, dispatcher.next_nonce(kp.address))
    try:
        dispatcher.submit(call)
    except (AuctionError, ValueError, TypeError) as e:
        _fail(ctx, f"{type(e).__name__}: {e}")

    click.echo(f"✓ Bid accepted: item {item_id}, amount {amount}")


@cli.command("show")
@click.pass_context
def show(ctx):
    """Show auction state"""
    engine, _ = _open_engine(ctx)

    click.echo("Auction")
    click.echo("-" * 40)
    click.echo(f"  Administrator: {bytes_to_hex(engine.administrator)}")
    click.echo(f"  Phase: {engine.phase().name}")
    click.echo(f"  Deadline: {_format_time(engine.deadline)}")
    click.echo(f"  Items: {engine.item_count}")

    for item in engine.items():
        record = engine.bid_record_for(item.id)
        click.echo(
            f"    [{item.id}] {item.description}  start={item.starting_price}  "
            f"highest={record.highest_bid}  bidder={_format_bidder(record.highest_bidder)}"
        )


@cli.command("winners")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def winners(ctx, as_json):
    """Show the winners report (after the deadline)"""
    engine, _ = _open_engine(ctx)
    try:
        report = engine.determine_winner()
    except AuctionError as e:
        _fail(ctx, f"{type(e).__name__}: {e}")

    if as_json:
        click.echo(json.dumps([entry.to_dict() for entry in report], indent=2))
        return

    click.echo("Winners")
    click.echo("-" * 40)
    for entry in report:
        click.echo(f"  [{entry.id}] {_format_bidder(entry.highest_bidder)}  amount={entry.bid_amt}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
def demo():
    """Run the reference auction on an in-memory engine"""
    click.echo("=" * 60)
    click.echo("  GAVEL - DEMO")
    click.echo("=" * 60)
    click.echo()

    clock = ManualClock()
    kp_admin = generate_keypair()
    kp_bidder = generate_keypair()

    engine = AuctionEngine(kp_admin.address, clock=clock)
    dispatcher = CallDispatcher(engine)
    click.echo(f"📦 Engine deployed, administrator {kp_admin.address_hex}")
    click.echo()

    click.echo("🏛️  Administrator lists items...")
    deadline = clock.now() + DEFAULT_DURATION
    dispatcher.submit(create_init_call(
        kp_admin,
        [{"id": 1, "desc": "ball", "startingPrice": 1}, {"id": 1, "desc": "book", "startingPrice": 3}],
        deadline,
        dispatcher.next_nonce(kp_admin.address),
    ))
    for item in engine.items():
        click.echo(f"  ✓ [{item.id}] {item.description} from {item.starting_price}")
    click.echo()

    click.echo("💸 Bidder offers 2 for the ball...")
    dispatcher.submit(create_bid_call(kp_bidder, 0, 2, dispatcher.next_nonce(kp_bidder.address)))
    click.echo(f"  ✓ Highest bid on ball: {engine.highest_bid(0)}")

    click.echo("🚫 Administrator tries to bid...")
    try:
        dispatcher.submit(create_bid_call(kp_admin, 1, 10, dispatcher.next_nonce(kp_admin.address)))
    except AuctionError as e:
        click.echo(f"  ✓ Rejected: {type(e).__name__}")
    click.echo()

    click.echo("⏩ One week passes...")
    clock.increase(DEFAULT_DURATION)
    click.echo()

    click.echo("⚖️  Winners:")
    for entry in engine.determine_winner():
        click.echo(f"  [{entry.id}] {_format_bidder(entry.highest_bidder)}  amount={entry.bid_amt}")
    click.echo()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
