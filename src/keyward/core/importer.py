"""Import CSV password exports into the vault, and restore import backups."""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .backup import load_backup, parse_table, restore_to_table, write_backup
from .models import NewEntry, utcnow
from .vault_client import DEFAULT_CATEGORY, VaultClient, VaultError

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    backup_path: Optional[Path] = None
    duplicates: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.failed


async def import_table(client: VaultClient, csv_path: Path, backup_dir: Path,
                       passphrase: Optional[str] = None,
                       category: str = DEFAULT_CATEGORY) -> ImportSummary:
    """Import a CSV export into the vault.

    The backup is written and synced before the first ``create``. Entries
    whose URL already exists in the vault are skipped as duplicates, as are
    entries without a password. A failed ``create`` is counted and the import
    moves on to the next row.

    Args:
        client: Connected vault client
        csv_path: CSV export to read
        backup_dir: Where the pre-import backup goes
        passphrase: Unlock the vault first when given
        category: Vault category for new entries

    Returns:
        Counts of imported, skipped and failed rows
    """
    csv_path = Path(csv_path)
    with open(csv_path, encoding="utf-8", newline="") as f:
        entries = parse_table(f.read())
    summary = ImportSummary()
    logger.info(f"Found {len(entries)} passwords in {csv_path}")
    if not entries:
        return summary

    if passphrase is not None:
        await client.unlock(passphrase)

    existing = await client.list(category)
    existing_urls = {e.url for e in existing if e.url}

    summary.backup_path = write_backup(entries, str(csv_path), backup_dir)

    for entry in entries:
        if entry.url and entry.url in existing_urls:
            logger.info(f"Skipping {entry.name} (already exists)")
            summary.skipped += 1
            summary.duplicates.append(entry.url)
            continue
        if not entry.password:
            logger.info(f"Skipping {entry.name} (no password)")
            summary.skipped += 1
            continue
        try:
            await client.create(NewEntry(
                name=entry.name,
                value=entry.password.encode("utf-8"),
                username=entry.username,
                url=entry.url,
                category=category,
            ))
        except VaultError as e:
            logger.warning(f"Failed to import {entry.name}: {e}")
            summary.failed += 1
            summary.errors.append(f"{entry.name}: {e}")
            continue
        logger.info(f"Imported {entry.name} ({entry.username})")
        summary.imported += 1
        if entry.url:
            existing_urls.add(entry.url)

    return summary


def restore_backup(backup_path: Path, output_dir: Path) -> Path:
    """Write a backup out as an importable CSV file (owner-only permissions).

    Returns:
        Path of the written CSV file
    """
    backup = load_backup(backup_path)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = utcnow().strftime("%Y-%m-%dT%H-%M-%S")
    output_path = output_dir / f"restored-passwords-{stamp}.csv"

    fd = os.open(output_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
        f.write(restore_to_table(backup))
    logger.info(f"Restored {backup.count} entries to {output_path}")
    return output_path
