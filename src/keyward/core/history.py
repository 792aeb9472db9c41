import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from .models import HistoryEntry

logger = logging.getLogger(__name__)


class HistoryStore:
    """Append-only rotation history, one JSON array file per credential id.

    Entries hold previous secrets (base64) so a human can recover them. Files
    are created owner-only and are never pruned here.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def path_for(self, entry_id: str) -> Path:
        """History file for a credential. Ids may only hold letters, digits, ``-`` and ``_``."""
        if not entry_id or not all(c.isalnum() or c in "-_" for c in entry_id):
            raise ValueError(f"Invalid credential id: {entry_id!r}")
        return self.directory / f"{entry_id}.json"

    def load(self, entry_id: str) -> List[HistoryEntry]:
        path = self.path_for(entry_id)
        if not path.exists():
            return []
        data = json.loads(path.read_text(encoding="utf-8"))
        return [HistoryEntry.from_dict(item) for item in data]

    def append(self, entry_id: str, secret: bytes, note: Optional[str] = None) -> HistoryEntry:
        """Record a secret for a credential and flush it to disk before returning."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(entry_id)
        history = self.load(entry_id)
        entry = HistoryEntry.record(secret, note=note)
        history.append(entry)

        tmp = path.with_suffix(".json.tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump([h.to_dict() for h in history], f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
        logger.debug(f"Password history saved for {entry_id} ({len(history)} entries)")
        return entry
