"""
Keyward CLI - rotate, import and restore credentials held by the vault daemon.
"""
import asyncio
import sys
import logging
from pathlib import Path
from typing import Optional

import click
from rich.logging import RichHandler

from . import (
    KeywardCLI,
    console,
    describe_status,
    print_backup_table,
    print_history_table,
    print_rotation_table,
    print_site_table,
)
from ..automation.login import CredentialNotFound, login_to_site
from ..automation.runner import RotationRunner, RotationSelector
from ..automation.sites import SiteConfigNotFound
from ..config import get_settings
from ..core.backup import BackupError, list_backups
from ..core.generator import DEFAULT_LENGTH, MIN_LENGTH, generate_password
from ..core.importer import import_table, restore_backup
from ..core.vault_client import AuthFailed, VaultError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, console=console)]
)
logger = logging.getLogger("keyward")


def _run(coro):
    """Run a coroutine to completion. Ctrl-C cancels it so its cleanup still runs."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/]")
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option(
    "--socket",
    "socket_path",
    default=None,
    help="Vault daemon socket [env: KEYWARD_SOCKET]"
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, dir_okay=True),
    default=None,
    help="Directory for history, backups and the browser profile [env: KEYWARD_DATA_DIR]"
)
@click.option(
    "--sites-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Site configuration file [env: KEYWARD_SITES_FILE]"
)
@click.option(
    "--passphrase",
    default=None,
    help="Vault passphrase (prompt if not provided) [env: KEYWARD_PASSPHRASE]"
)
@click.option(
    "--debug/--no-debug",
    default=False,
    help="Enable debug output",
    show_default=True
)
@click.pass_context
def cli(ctx: click.Context, socket_path: Optional[str], data_dir: Optional[str],
        sites_file: Optional[str], passphrase: Optional[str], debug: bool) -> None:
    """Keyward - rotate website passwords stored in the vault daemon."""
    # Set debug logging if enabled
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug mode enabled")

    try:
        settings = get_settings().with_overrides(
            socket_path=socket_path,
            data_dir=data_dir,
            sites_file=sites_file,
            passphrase=passphrase,
        )
    except ValueError as e:
        raise click.ClickException(str(e))

    # Store the CLI instance in the context
    ctx.obj = KeywardCLI(settings, debug=debug)

    # If no command is provided, show help
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("--site", default=None, help="Only rotate credentials of sites whose key contains this")
@click.option("--dry-run", is_flag=True, default=False, help="Generate and show passwords, change nothing")
@click.option("--engine", type=click.Choice(["playwright", "selenium"]), default="playwright", show_default=True)
@click.option("--headless/--no-headless", default=False, help="Run the browser without a window", show_default=True)
@click.pass_obj
def rotate(cli: KeywardCLI, site: Optional[str], dry_run: bool, engine: str, headless: bool) -> None:
    """Rotate passwords on websites via browser automation."""
    directory = cli.load_sites()
    if dry_run:
        console.print("[yellow]Dry run: nothing will be changed.[/]")

    async def run():
        client = await cli.open_vault()
        eng = cli.make_engine(engine)
        started = False
        try:
            entries = await client.list()
            logger.info(f"Found {len(entries)} credentials")
            if not dry_run:
                await eng.start(headless=headless, user_data_dir=str(cli.settings.browser_profile))
                started = True
            runner = RotationRunner(
                client, eng, cli.history_store(),
                dry_run=dry_run,
                pause_seconds=cli.settings.pause_seconds,
                step_timeout_ms=cli.settings.step_timeout_ms,
            )
            return await runner.rotate(entries, directory, RotationSelector(site=site))
        finally:
            if started:
                await eng.stop()
            await client.close()

    try:
        summary = _run(run())
    except VaultError as e:
        raise click.ClickException(f"Rotation aborted: {e}")
    print_rotation_table(summary)


@cli.command("import")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def import_(cli: KeywardCLI, csv_file: str) -> None:
    """Import a browser CSV export into the vault, keeping a backup."""

    async def run():
        client = await cli.open_vault(unlock=False)
        try:
            return await import_table(
                client, Path(csv_file), cli.settings.backup_dir,
                passphrase=cli.passphrase(),
            )
        finally:
            await client.close()

    try:
        summary = _run(run())
    except AuthFailed as e:
        raise click.ClickException(f"Failed to unlock vault: {e}")
    except (VaultError, BackupError, OSError, UnicodeDecodeError) as e:
        raise click.ClickException(f"Import failed: {e}")

    if summary.backup_path:
        console.print(f"[dim]Backup: {summary.backup_path}[/]")
    console.print(
        f"[green]✓[/] Imported {summary.imported}, "
        f"skipped {summary.skipped} ({len(summary.duplicates)} duplicates), "
        f"failed {summary.failed}"
    )
    for error in summary.errors:
        console.print(f"[red]✗[/] {error}")


@cli.command()
@click.option("--latest", is_flag=True, default=False, help="Restore the most recent backup")
@click.option("--file", "file_name", default=None, help="Restore this backup (name or path)")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, dir_okay=True),
    default=None,
    help="Where the restored CSV goes (default: data dir)"
)
@click.pass_obj
def restore(cli: KeywardCLI, latest: bool, file_name: Optional[str], output_dir: Optional[str]) -> None:
    """List import backups, or restore one to a CSV file."""
    backup_dir = cli.settings.backup_dir
    backups = list_backups(backup_dir)

    if file_name:
        path = Path(file_name)
        if not path.exists():
            path = backup_dir / file_name
        if not path.exists():
            raise click.ClickException(f"Backup not found: {file_name}")
    elif latest:
        if not backups:
            raise click.ClickException(f"No backups in {backup_dir}")
        path = backups[0]
    else:
        print_backup_table(backups)
        if backups:
            console.print("Use --latest or --file NAME to restore one.")
        return

    try:
        output = restore_backup(path, Path(output_dir) if output_dir else cli.settings.data_dir)
    except BackupError as e:
        raise click.ClickException(f"Restore failed: {e}")
    console.print(f"[green]✓[/] Restored {path.name} to {output}")
    console.print("[yellow]The file contains plaintext passwords. Delete it when done.[/]")


@cli.command()
@click.argument("site")
@click.option("--engine", type=click.Choice(["playwright", "selenium"]), default="playwright", show_default=True)
@click.pass_obj
def login(cli: KeywardCLI, site: str, engine: str) -> None:
    """Open a browser and log into SITE with its stored credential."""
    directory = cli.load_sites()

    async def run():
        client = await cli.open_vault()
        eng = cli.make_engine(engine)
        started = False
        try:
            await eng.start(headless=False, user_data_dir=str(cli.settings.browser_profile))
            started = True
            outcome = await login_to_site(
                client, eng, directory, site,
                step_timeout_ms=cli.settings.step_timeout_ms,
            )
            if outcome.success:
                console.print(f"[green]✓[/] Logged into [bold]{outcome.site}[/] as {outcome.username}")
            else:
                console.print(f"[yellow]Login to {outcome.site} did not complete, finish it in the browser.[/]")
            console.print("Close the browser window when done.")
            await eng.wait_closed()
            return outcome
        finally:
            if started:
                await eng.stop()
            await client.close()

    try:
        _run(run())
    except (SiteConfigNotFound, CredentialNotFound) as e:
        raise click.ClickException(str(e))
    except VaultError as e:
        raise click.ClickException(f"Login failed: {e}")


@cli.command()
@click.option(
    "--length",
    "-l",
    type=click.IntRange(min=MIN_LENGTH),
    default=DEFAULT_LENGTH,
    help="Length of generated password",
    show_default=True
)
def generate(length: int) -> None:
    """Print a strong random password."""
    click.echo(generate_password(length))


@cli.command()
@click.option("--validate", is_flag=True, default=False, help="Only check that the configuration loads")
@click.pass_obj
def sites(cli: KeywardCLI, validate: bool) -> None:
    """List configured sites."""
    directory = cli.load_sites()
    if validate:
        console.print(f"[green]✓[/] {len(directory)} sites valid ({directory.source})")
        return
    print_site_table(list(directory))


@cli.command()
@click.pass_obj
def status(cli: KeywardCLI) -> None:
    """Show the vault daemon status."""

    async def run():
        client = await cli.open_vault(unlock=False)
        try:
            return await client.status()
        finally:
            await client.close()

    try:
        with cli._progress_spinner("Contacting vault daemon..."):
            result = _run(run())
    except VaultError as e:
        raise click.ClickException(f"Status check failed: {e}")
    console.print(f"[green]✓[/] Vault daemon at {cli.settings.socket_path}: {describe_status(result)}")


@cli.command()
@click.argument("credential_id")
@click.pass_obj
def history(cli: KeywardCLI, credential_id: str) -> None:
    """Show when a credential was rotated."""
    try:
        entries = cli.history_store().load(credential_id)
    except ValueError as e:
        raise click.ClickException(str(e))
    print_history_table(credential_id, entries)


def main() -> None:
    """Entry point for the Keyward CLI."""
    try:
        cli(prog_name="keyward")
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if logger.isEnabledFor(logging.DEBUG):
            import traceback
            console.print(traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
