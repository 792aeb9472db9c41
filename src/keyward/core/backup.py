"""
CSV import format and import backups.

Browser password exports (Chrome, Edge) are CSV files with the header
``name,url,username,password``. Some exporters leave out the name column,
giving ``url,username,password``; the name is then derived from the URL.

Before an import touches the vault, every parsed row is written to a
timestamped JSON backup holding a short SHA-256 prefix of each password (for
display) and the password itself in base64 (for restore). A backup file is
therefore as sensitive as the export it came from.
"""
import csv
import hashlib
import io
import json
import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Tuple, Union
from urllib.parse import urlparse

from ..exceptions import KeywardError
from .models import (
    BackupEntry, BackupRecord, RawEntry, decode_secret, encode_secret, utcnow,
)

logger = logging.getLogger(__name__)

HEADER = ["name", "url", "username", "password"]
BACKUP_PREFIX = "import-"
HASH_LENGTH = 16


class BackupError(KeywardError):
    """A backup file is missing, unreadable or inconsistent."""
    pass


def derive_name(url: str) -> str:
    """Short site name from a URL: ``https://www.mail.example.com`` -> ``mail``."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        hostname = None
    if not hostname:
        return url
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname.split(".")[0]


def secret_hash(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def parse_table(text: str) -> List[RawEntry]:
    """Parse a CSV password export.

    The first row is treated as the header. Rows with four or more fields
    are ``name,url,username,password``; rows with exactly three are
    ``url,username,password``. Shorter rows and rows the CSV reader rejects
    are skipped.

    Args:
        text: Full file contents

    Returns:
        Parsed entries in file order
    """
    entries: List[RawEntry] = []
    reader = csv.reader(io.StringIO(text, newline=""))
    header = True

    while True:
        try:
            row = next(reader)
        except StopIteration:
            break
        except csv.Error as e:
            logger.debug(f"Skipping malformed row on line {reader.line_num}: {e}")
            continue
        if header:
            header = False
            continue
        if not any(field.strip() for field in row):
            continue
        if len(row) >= 4:
            name, url, username, password = row[:4]
            entries.append(RawEntry(
                name=name or derive_name(url),
                url=url,
                username=username,
                password=password,
            ))
        elif len(row) == 3:
            url, username, password = row
            entries.append(RawEntry(
                name=derive_name(url),
                url=url,
                username=username,
                password=password,
            ))
        else:
            logger.debug(f"Skipping malformed row on line {reader.line_num} ({len(row)} fields)")
    return entries


def build_backup(entries: Iterable[RawEntry], source: str) -> BackupRecord:
    return BackupRecord(
        imported_at=utcnow().isoformat(),
        source=source,
        entries=[
            BackupEntry(
                name=e.name,
                url=e.url,
                username=e.username,
                password_hash=secret_hash(e.password),
                original_password=encode_secret(e.password.encode("utf-8")),
            )
            for e in entries
        ],
    )


def write_backup(entries: Iterable[RawEntry], source: str, backup_dir: Path) -> Path:
    """Write a new backup file and sync it to disk.

    Existing backups are never overwritten.

    Args:
        entries: Parsed rows about to be imported
        source: Path of the CSV file they came from
        backup_dir: Directory holding backups

    Returns:
        Path of the written backup
    """
    backup_dir = Path(backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)
    record = build_backup(entries, source)
    stamp = record.imported_at.replace(":", "-").replace(".", "-").replace("+", "Z")

    path = backup_dir / f"{BACKUP_PREFIX}{stamp}.json"
    suffix = 1
    while True:
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            break
        except FileExistsError:
            path = backup_dir / f"{BACKUP_PREFIX}{stamp}-{suffix}.json"
            suffix += 1

    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(record.to_dict(), f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    logger.info(f"Backup saved: {path} ({record.count} entries)")
    return path


def load_backup(path: Union[str, Path]) -> BackupRecord:
    path = Path(path)
    if not path.exists():
        raise BackupError(f"Backup not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        record = BackupRecord(
            imported_at=data["imported_at"],
            source=data.get("source", ""),
            entries=[BackupEntry.from_dict(e) for e in data.get("entries", [])],
        )
    except (ValueError, KeyError, TypeError) as e:
        raise BackupError(f"Unreadable backup {path.name}: {e}") from e
    if data.get("count") != record.count:
        raise BackupError(
            f"Backup {path.name} is inconsistent: count={data.get('count')} "
            f"but {record.count} entries"
        )
    return record


def _backup_order(path: Path) -> Tuple[str, int]:
    # import-<stamp>-<n>.json only exists when import-<stamp>.json was taken first
    match = re.match(r"^(.*)-(\d+)$", path.stem)
    if match and (path.parent / f"{match.group(1)}.json").exists():
        return match.group(1), int(match.group(2))
    return path.stem, 0


def list_backups(backup_dir: Path) -> List[Path]:
    """Backup files in a directory, newest first."""
    backup_dir = Path(backup_dir)
    if not backup_dir.is_dir():
        return []
    files = [p for p in backup_dir.iterdir()
             if p.name.startswith(BACKUP_PREFIX) and p.suffix == ".json"]
    return sorted(files, key=_backup_order, reverse=True)


def restore_to_table(backup: BackupRecord) -> str:
    """Render a backup as a CSV export that browsers can import again."""
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n", quoting=csv.QUOTE_ALL)
    writer.writerow(HEADER)
    for entry in backup.entries:
        try:
            password = decode_secret(entry.original_password).decode("utf-8")
        except ValueError as e:
            raise BackupError(f"Corrupt password for {entry.name}: {e}") from e
        writer.writerow([entry.name, entry.url, entry.username, password])
    return out.getvalue()
