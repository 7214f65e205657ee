"""
CLI interface for Credit Guard.

Operator access to a device's local ledger: inspect balances, spend,
add credits and force a sync.
"""

import logging
import sqlite3
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from credit_guard.config.loader import CreditGuardConfig, StorageConfig, load_credit_config
from credit_guard.core.account import CreditAccount
from credit_guard.core.errors import StoreConflict
from credit_guard.core.gate import Resource
from credit_guard.core.tiers import UNLIMITED
from credit_guard.sdk.credits_client import CreditsClient
from credit_guard.storage.db import DEFAULT_DB_PATH
from credit_guard.storage.repository import LedgerStore, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1  # Denied spend or error

CONFIG_ERRORS = (ValueError, FileNotFoundError, yaml.YAMLError)
COMMAND_ERRORS = CONFIG_ERRORS + (sqlite3.Error, StoreConflict)

ACCOUNT_OPTION = typer.Option("local", "--account", "-a", help="Account identifier")
TIER_OPTION = typer.Option(None, "--tier", "-t", help="Subscription tier (defaults to free)")
DB_OPTION = typer.Option(None, "--db", help="Path to the local ledger database")
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML configuration")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Credit Guard CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    if ctx.invoked_subcommand is None:
        console.print("Credit Guard - Use --help to see available commands")


def _load_config(config_path: Optional[str], db: Optional[str]) -> CreditGuardConfig:
    config = load_credit_config(config_path) if config_path else CreditGuardConfig(storage=StorageConfig())
    if db:
        config = CreditGuardConfig(
            storage=StorageConfig(path=db),
            remote=config.remote,
            low_credit_threshold=config.low_credit_threshold,
            tiers=config.tiers,
            aliases=config.aliases,
        )
    return config


def _build_account(
    account: str,
    tier: Optional[str],
    config: CreditGuardConfig,
    base_url: Optional[str] = None,
) -> CreditAccount:
    client = None
    if base_url:
        client = CreditsClient(base_url)
    elif config.remote:
        client = CreditsClient(config.remote.base_url, timeout=config.remote.timeout_seconds)
    account_obj = CreditAccount(
        account,
        tier,
        LedgerStore(config.storage.path),
        policy=config.tier_policy(),
        client=client,
        low_credit_threshold=config.low_credit_threshold,
    )
    account_obj.sync.seed_from_tier(account_obj.tier)
    return account_obj


def _format_limit(value) -> str:
    return "unlimited" if value is UNLIMITED else str(value)


def _display_snapshot(account: CreditAccount) -> None:
    snapshot = account.snapshot()
    table = Table(title=f"Credits for {account.account_id}")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Tier", snapshot.tier_id)
    table.add_row("Searches left today", _format_limit(snapshot.search_remaining))
    table.add_row("Verification credits", _format_limit(snapshot.verification_remaining))
    table.add_row("Low", "yes" if snapshot.is_low else "no")
    table.add_row("Pending reconciliation", "yes" if snapshot.needs_reconciliation else "no")
    synced = snapshot.last_synced_at.isoformat(timespec="seconds") if snapshot.last_synced_at else "never"
    table.add_row("Last synced", synced)
    console.print(table)


@app.command()
def init(db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the local ledger database")):
    """Initialize the local ledger database."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Ledger database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(
    account: str = ACCOUNT_OPTION,
    tier: Optional[str] = TIER_OPTION,
    db: Optional[str] = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION,
):
    """Show remaining searches and verification credits."""
    try:
        account_obj = _build_account(account, tier, _load_config(config, db))
        _display_snapshot(account_obj)
        sys.exit(EXIT_CODE_PASS)
    except COMMAND_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def spend(
    resource: Resource = typer.Argument(..., help="Resource to spend"),
    amount: int = typer.Option(1, "--amount", "-n", help="Units to spend"),
    account: str = ACCOUNT_OPTION,
    tier: Optional[str] = TIER_OPTION,
    db: Optional[str] = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION,
):
    """Spend search or verification units through the gate."""
    try:
        account_obj = _build_account(account, tier, _load_config(config, db))
    except COMMAND_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    result = account_obj.spend(resource, amount)
    if result.granted:
        console.print(
            f"[green]GRANTED[/] {amount} {resource.value} "
            f"({_format_limit(result.remaining)} remaining)"
        )
        sys.exit(EXIT_CODE_PASS)
    console.print(
        f"[red]DENIED[/] {amount} {resource.value} "
        f"({_format_limit(result.remaining)} remaining)"
    )
    sys.exit(EXIT_CODE_FAIL)


@app.command()
def credit(
    amount: int = typer.Argument(..., help="Credits to add"),
    account: str = ACCOUNT_OPTION,
    tier: Optional[str] = TIER_OPTION,
    db: Optional[str] = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION,
):
    """Add verification credits locally until the next sync confirms them."""
    try:
        account_obj = _build_account(account, tier, _load_config(config, db))
        state = account_obj.verification.credit(amount)
    except COMMAND_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Balance is now {state.balance}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def sync(
    account: str = ACCOUNT_OPTION,
    tier: Optional[str] = TIER_OPTION,
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Backend base URL"),
    db: Optional[str] = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION,
):
    """Fetch the authoritative balance and reconcile the local cache."""
    try:
        account_obj = _build_account(account, tier, _load_config(config, db), base_url=base_url)
    except COMMAND_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if account_obj.sync.client is None:
        console.print("[red]Error:[/] no backend configured, pass --base-url or set remote.base_url")
        sys.exit(EXIT_CODE_FAIL)

    state = account_obj.sync.refresh()
    if state is None:
        console.print("[yellow]Sync failed, cached balance kept[/]")
        _display_snapshot(account_obj)
        sys.exit(EXIT_CODE_FAIL)

    console.print("[green]✓[/] Balance synced")
    _display_snapshot(account_obj)
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
