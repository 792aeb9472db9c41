"""
Keyward CLI - Command Line Interface for the Keyward rotation orchestrator.
"""
from typing import Optional, List
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn

from ..automation.engine import AutomationEngine
from ..automation.playwright_engine import PlaywrightEngine
from ..automation.selenium_engine import SeleniumEngine, SELENIUM_AVAILABLE
from ..automation.sites import SiteConfig, SiteConfigError, SiteDirectory
from ..automation.types import RotationStatus, RotationSummary
from ..config import Settings
from ..core.backup import BackupError, load_backup
from ..core.history import HistoryStore
from ..core.models import HistoryEntry
from ..core.vault_client import AuthFailed, VaultClient, VaultError

logger = logging.getLogger(__name__)

# Create console for rich output
console = Console()

STATUS_STYLES = {
    RotationStatus.SUCCESS: "green",
    RotationStatus.SKIPPED: "yellow",
    RotationStatus.FAILED: "red",
}


class KeywardCLI:
    """Shared state for one CLI invocation: settings plus factories for the vault, engine and site directory."""

    def __init__(self, settings: Settings, debug: bool = False):
        """Initialize the CLI."""
        self.settings = settings
        self.debug = debug

    def _progress_spinner(self, description: str):
        """Create a progress spinner context manager."""
        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True
        )
        progress.add_task(description, total=None)
        return progress

    def load_sites(self) -> SiteDirectory:
        """Load the site directory. An explicitly configured file must exist."""
        try:
            return SiteDirectory.load(
                self.settings.resolved_sites_file,
                required=self.settings.sites_file is not None,
            )
        except SiteConfigError as e:
            raise click.ClickException(str(e))

    def history_store(self) -> HistoryStore:
        return HistoryStore(self.settings.history_dir)

    def make_engine(self, name: str) -> AutomationEngine:
        if name == "playwright":
            return PlaywrightEngine()
        if not SELENIUM_AVAILABLE:
            raise click.ClickException("Selenium not installed. Install extra: pip install .[selenium]")
        return SeleniumEngine()

    def passphrase(self) -> str:
        """Passphrase from --passphrase or KEYWARD_PASSPHRASE, otherwise prompt."""
        if self.settings.passphrase:
            return self.settings.passphrase
        return click.prompt("Vault passphrase", hide_input=True)

    def vault(self) -> VaultClient:
        return VaultClient(self.settings.socket_path, timeout=self.settings.request_timeout)

    async def open_vault(self, unlock: bool = True) -> VaultClient:
        """Connect to the daemon and unlock it.

        Raises:
            click.ClickException: If the daemon is unreachable or rejects the passphrase
        """
        client = self.vault()
        try:
            await client.connect()
            if unlock:
                await client.unlock(self.passphrase())
        except AuthFailed as e:
            await client.close()
            raise click.ClickException(f"Failed to unlock vault: {e}")
        except VaultError as e:
            await client.close()
            raise click.ClickException(str(e))
        return client


def print_rotation_table(summary: RotationSummary) -> None:
    """Print per-credential rotation results and totals."""
    if not summary.results:
        console.print("[yellow]No credentials matched a site configuration.[/]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Credential")
    table.add_column("Status")
    table.add_column("Reason", style="dim")
    table.add_column("New password", style="dim")

    for result in summary.results:
        style = STATUS_STYLES.get(result.status, "")
        status = result.status.value + (" (dry run)" if result.dry_run else "")
        reason = result.reason_code
        if result.detail:
            reason = f"{reason}: {result.detail}" if reason else result.detail
        table.add_row(result.name, f"[{style}]{status}[/]", reason, result.preview)

    console.print(table)
    console.print(
        f"[green]{summary.succeeded} succeeded[/], "
        f"[yellow]{summary.skipped} skipped[/], "
        f"[red]{summary.failed} failed[/]"
    )


def print_site_table(sites: List[SiteConfig]) -> None:
    """Print a table of configured sites."""
    if not sites:
        console.print("[yellow]No sites configured.[/]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Key", style="dim")
    table.add_column("Name")
    table.add_column("Domains")
    table.add_column("Rotation")

    for site in sites:
        if site.rotatable:
            rotation = "[green]automatic[/]"
        elif site.change_password is not None and site.change_password.requires_mfa:
            rotation = "[yellow]manual (MFA)[/]"
        else:
            rotation = "[dim]manual[/]"
        table.add_row(site.key, site.name, ", ".join(sorted(site.domains)), rotation)

    console.print(table)


def print_backup_table(backups: List[Path]) -> None:
    """Print import backups so one can be picked for restore."""
    if not backups:
        console.print("[yellow]No backups found.[/]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("Backup", overflow="fold")
    table.add_column("Imported at")
    table.add_column("Entries", justify="right")
    table.add_column("Source", style="dim")

    for index, path in enumerate(backups, 1):
        try:
            record = load_backup(path)
        except BackupError as e:
            logger.debug(f"Cannot read {path}: {e}")
            table.add_row(str(index), path.name, "[red]unreadable[/]", "", "")
            continue
        imported_at = record.imported_at[:19].replace("T", " ")
        table.add_row(str(index), path.name, imported_at, str(record.count), Path(record.source).name)

    console.print(table)


def print_history_table(entry_id: str, entries: List[HistoryEntry]) -> None:
    """Print when a credential was rotated. Stored secrets are never shown."""
    if not entries:
        console.print(f"[yellow]No rotation history for {entry_id}.[/]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Rotated at")
    table.add_column("Note", style="dim")

    for entry in entries:
        table.add_row(entry.rotated_at, entry.note or "")

    console.print(table)


def describe_status(status: Optional[dict]) -> str:
    if not status:
        return "unknown"
    return ", ".join(f"{k}={v}" for k, v in sorted(status.items()))
