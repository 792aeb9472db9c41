import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


def encode_secret(value: bytes) -> str:
    """Reversible text encoding used for secrets on the wire and on disk."""
    return base64.b64encode(value).decode("ascii")


def decode_secret(encoded: str) -> bytes:
    return base64.b64decode(encoded.encode("ascii"), validate=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CredentialSummary:
    """A vault entry as returned by ``list``: identity and metadata, no secret."""
    id: str
    name: str
    url: str = ""
    username: str = ""
    category: str = "authentication"
    entry_type: str = "password"
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CredentialSummary':
        return cls(
            id=str(data['id']),
            name=data.get('name') or '',
            url=data.get('url') or '',
            username=data.get('username') or '',
            category=data.get('category') or 'authentication',
            entry_type=data.get('entry_type') or 'password',
            tags=list(data.get('tags') or []),
        )


@dataclass
class CredentialRecord:
    """A full vault entry including its secret.

    Held in memory only for the duration of one rotation or login. The
    secret is kept as raw bytes and is excluded from ``repr``.
    """
    id: str
    name: str
    value: bytes = field(repr=False)
    url: str = ""
    username: str = ""
    category: str = "authentication"
    entry_type: str = "password"
    tags: List[str] = field(default_factory=list)
    created: Optional[str] = None
    modified: Optional[str] = None

    @property
    def secret(self) -> str:
        return self.value.decode("utf-8")

    def masked(self) -> str:
        return self.secret[:4] + "*" * 12

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CredentialRecord':
        """Build a record from a vault ``get`` response (``value`` is base64)."""
        return cls(
            id=str(data['id']),
            name=data.get('name') or '',
            value=decode_secret(data.get('value') or ''),
            url=data.get('url') or '',
            username=data.get('username') or '',
            category=data.get('category') or 'authentication',
            entry_type=data.get('entry_type') or 'password',
            tags=list(data.get('tags') or []),
            created=data.get('created'),
            modified=data.get('modified'),
        )


@dataclass
class NewEntry:
    """Payload of a vault ``create`` command."""
    name: str
    value: bytes = field(repr=False)
    username: Optional[str] = None
    url: Optional[str] = None
    category: str = "authentication"
    entry_type: str = "password"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'category': self.category,
            'entry_type': self.entry_type,
            'name': self.name,
            'value': encode_secret(self.value),
            'username': self.username or None,
            'url': self.url or None,
        }


@dataclass
class HistoryEntry:
    """One recovery record in a credential's rotation history."""
    password: str
    rotated_at: str
    note: Optional[str] = None

    @classmethod
    def record(cls, secret: bytes, note: Optional[str] = None) -> 'HistoryEntry':
        return cls(password=encode_secret(secret), rotated_at=utcnow().isoformat(), note=note)

    def to_dict(self) -> Dict[str, Any]:
        data = {'password': self.password, 'rotated_at': self.rotated_at}
        if self.note:
            data['note'] = self.note
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HistoryEntry':
        return cls(
            password=data['password'],
            rotated_at=data['rotated_at'],
            note=data.get('note'),
        )


@dataclass
class RawEntry:
    """A credential row parsed from a CSV export."""
    name: str
    url: str
    username: str
    password: str = field(repr=False)


@dataclass
class BackupEntry:
    name: str
    url: str
    username: str
    password_hash: str
    original_password: str = field(repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'url': self.url,
            'username': self.username,
            'password_hash': self.password_hash,
            'original_password': self.original_password,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BackupEntry':
        return cls(
            name=data.get('name') or '',
            url=data.get('url') or '',
            username=data.get('username') or '',
            password_hash=data.get('password_hash') or '',
            original_password=data['original_password'],
        )


@dataclass
class BackupRecord:
    """Snapshot of an import, written before any entry reaches the vault."""
    imported_at: str
    source: str
    entries: List[BackupEntry] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'imported_at': self.imported_at,
            'source': self.source,
            'count': self.count,
            'entries': [e.to_dict() for e in self.entries],
        }
