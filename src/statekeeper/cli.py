"""
Statekeeper CLI
Operator commands to inspect and reset quota windows.
"""

import asyncio
import logging
import os
import re
import sys
from typing import Any, Awaitable, Callable, TypeVar

import click
from rich.console import Console
from rich.table import Table

from statekeeper.config import Settings, get_settings
from statekeeper.quota import CryptoQuotaManager, TokenQuotaManager
from statekeeper.state import QuotaWindow, close_state_client

T = TypeVar("T")

console = Console()

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def _run(settings: Settings, action: Callable[[Settings], Awaitable[T]]) -> T:
    """Run an async action, closing the shared state client afterwards."""

    async def runner() -> T:
        try:
            return await action(settings)
        finally:
            await close_state_client()

    return asyncio.run(runner())


def _fail(message: str) -> None:
    console.print(f"❌ [red]{message}[/red]")
    sys.exit(1)


def _print_json(data: Any) -> None:
    console.print_json(data=data)


def _window_row(table: Table, name: str, window: QuotaWindow, scale: float = 1) -> None:
    if window.is_unlimited:
        table.add_row(name, "unlimited", "-", "-", "-")
        return
    table.add_row(
        name,
        f"{window.limit / scale:g}",
        f"{window.used / scale:g}",
        f"{window.remaining / scale:g}",
        str(window.reset_at),
    )


def _window_table(title: str) -> Table:
    table = Table(title=title)
    table.add_column("Window", style="cyan")
    table.add_column("Limit", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Remaining", justify="right", style="green")
    table.add_column("Resets at", justify="right", style="dim")
    return table


def _parse_addresses(values: tuple[str, ...]) -> list[str]:
    raw = list(values)
    if not raw:
        raw = [
            a.strip()
            for a in os.environ.get("QUOTA_CRYPTO_ADDRESSES", "").split(",")
            if a.strip()
        ]
    invalid = [a for a in raw if not ADDRESS_PATTERN.match(a)]
    if invalid:
        raise click.BadParameter(f"Not a 0x address: {', '.join(invalid)}")
    return [a.lower() for a in raw]


@click.group()
@click.option("--log-level", "-l", default=None, help="Logging level (default from settings)")
@click.pass_context
def cli(ctx, log_level: str | None):
    """Statekeeper CLI - inspect and reset shared quota windows."""
    ctx.ensure_object(dict)
    try:
        settings = get_settings()
    except ValueError as e:
        _fail(f"Invalid configuration: {e}")
    logging.basicConfig(
        level=getattr(logging, (log_level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj["settings"] = settings


@cli.command("reset-tokens")
@click.argument("token_ids", nargs=-1)
@click.option("--all", "reset_all", is_flag=True, help="Reset every token quota window")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def reset_tokens(ctx, token_ids: tuple[str, ...], reset_all: bool, as_json: bool):
    """Reset token quota windows by TOKEN_IDS or with --all."""
    if not reset_all and not token_ids:
        _fail("Provide one or more token ids or use --all")

    async def action(settings: Settings):
        manager = TokenQuotaManager(settings=settings)
        if reset_all:
            return await manager.reset_all_quotas()
        return await manager.reset_many_token_quotas(list(token_ids))

    try:
        result = _run(ctx.obj["settings"], action)
    except Exception as e:
        _fail(f"Reset failed: {e}")

    if as_json:
        _print_json({"scope": "token", "mode": "all" if reset_all else "ids", **result.to_dict()})
        return
    console.print(f"✅ [green]Deleted {result.deleted} token quota window(s)[/green]")
    for key in result.keys:
        console.print(f"   {key}")


@cli.command("reset-crypto")
@click.argument("addresses", nargs=-1)
@click.option("--all", "reset_all", is_flag=True, help="Reset every crypto quota window")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def reset_crypto(ctx, addresses: tuple[str, ...], reset_all: bool, as_json: bool):
    """Reset crypto quota windows for ADDRESSES on the active network, or --all."""
    parsed = [] if reset_all else _parse_addresses(addresses)
    if not reset_all and not parsed:
        _fail("Provide one or more addresses (args or QUOTA_CRYPTO_ADDRESSES) or use --all")

    async def action(settings: Settings):
        manager = CryptoQuotaManager(settings=settings)
        if reset_all:
            return await manager.reset_all_crypto_quotas()
        return await manager.reset_crypto_quotas_by_addresses(parsed)

    try:
        result = _run(ctx.obj["settings"], action)
    except Exception as e:
        _fail(f"Reset failed: {e}")

    if as_json:
        _print_json(
            {"scope": "crypto", "mode": "all" if reset_all else "addresses", **result.to_dict()}
        )
        return
    console.print(f"✅ [green]Deleted {result.deleted} crypto quota window(s)[/green]")
    for key in result.keys:
        console.print(f"   {key}")


@cli.command("token-status")
@click.argument("token_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def token_status(ctx, token_id: str, as_json: bool):
    """Show the token quota window for TOKEN_ID."""

    async def action(settings: Settings):
        return await TokenQuotaManager(settings=settings).ensure_and_check(token_id)

    try:
        check = _run(ctx.obj["settings"], action)
    except Exception as e:
        _fail(f"Error: {e}")

    if as_json:
        _print_json(check.to_dict())
        return

    table = _window_table(f"Token quota: {token_id}")
    _window_row(table, "tokens", check.window)
    console.print(table)
    status = "[green]allowed[/green]" if check.allowed else "[red]exhausted[/red]"
    console.print(f"Status: {status}")


@cli.command("crypto-status")
@click.argument("address")
@click.option("--amount", "-a", default=0.0, type=float, help="Spend to precheck (ETH)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def crypto_status(ctx, address: str, amount: float, as_json: bool):
    """Precheck a spend of --amount ETH for ADDRESS (no usage is recorded)."""
    if not ADDRESS_PATTERN.match(address):
        _fail(f"Not a 0x address: {address}")

    async def action(settings: Settings):
        return await CryptoQuotaManager(settings=settings).precheck_crypto_spend(
            address, amount
        )

    try:
        precheck = _run(ctx.obj["settings"], action)
    except Exception as e:
        _fail(f"Error: {e}")

    if as_json:
        _print_json(precheck.to_dict())
        return

    table = Table(title=f"Crypto quota on {precheck.network}: {address.lower()}")
    table.add_column("Window", style="cyan")
    table.add_column("Remaining (ETH)", justify="right", style="green")
    table.add_row("global", f"{precheck.remaining_global_eth:g}")
    table.add_row("address", f"{precheck.remaining_user_eth:g}")
    console.print(table)
    if precheck.allowed:
        console.print(f"Spend of {amount:g} ETH: [green]allowed[/green]")
    else:
        console.print(f"Spend of {amount:g} ETH: [red]denied ({precheck.reason})[/red]")
    console.print(f"Resets at: {precheck.reset_at}")


if __name__ == "__main__":
    cli()
