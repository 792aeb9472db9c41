"""
Runtime configuration for Keyward.

Settings are read from environment variables with sensible defaults; CLI
options override them per invocation.

    KEYWARD_SOCKET            vault daemon Unix socket
    KEYWARD_DATA_DIR          history, backups and browser profile live here
    KEYWARD_SITES_FILE        site configuration document (JSON)
    KEYWARD_REQUEST_TIMEOUT   seconds to wait for one vault response
    KEYWARD_STEP_TIMEOUT_MS   per fill/click timeout in milliseconds
    KEYWARD_PAUSE_SECONDS     pause between credentials during rotation
    KEYWARD_PASSPHRASE        vault passphrase (prompted for when unset)
"""
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

DEFAULT_SOCKET = "/run/keyward/vault.sock"
DEFAULT_DATA_DIR = os.path.expanduser("~/.keyward")


@dataclass(frozen=True)
class Settings:
    socket_path: str = DEFAULT_SOCKET
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    sites_file: Optional[Path] = None
    request_timeout: float = 30.0
    step_timeout_ms: int = 10000
    pause_seconds: float = 2.0
    passphrase: Optional[str] = None

    @property
    def history_dir(self) -> Path:
        return self.data_dir / "password-history"

    @property
    def backup_dir(self) -> Path:
        return self.data_dir / "backups"

    @property
    def browser_profile(self) -> Path:
        return self.data_dir / "browser-profile"

    @property
    def resolved_sites_file(self) -> Path:
        return self.sites_file or (self.data_dir / "site-configs.json")

    def with_overrides(self, **overrides) -> "Settings":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "data_dir" in changes:
            changes["data_dir"] = Path(changes["data_dir"]).expanduser()
        if "sites_file" in changes:
            changes["sites_file"] = Path(changes["sites_file"]).expanduser()
        return replace(self, **changes)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def get_settings() -> Settings:
    """Build settings from the current environment."""
    sites = os.environ.get("KEYWARD_SITES_FILE")
    return Settings(
        socket_path=os.environ.get("KEYWARD_SOCKET", DEFAULT_SOCKET),
        data_dir=Path(os.environ.get("KEYWARD_DATA_DIR", DEFAULT_DATA_DIR)).expanduser(),
        sites_file=Path(sites).expanduser() if sites else None,
        request_timeout=_env_float("KEYWARD_REQUEST_TIMEOUT", 30.0),
        step_timeout_ms=int(_env_float("KEYWARD_STEP_TIMEOUT_MS", 10000)),
        pause_seconds=_env_float("KEYWARD_PAUSE_SECONDS", 2.0),
        passphrase=os.environ.get("KEYWARD_PASSPHRASE") or None,
    )
