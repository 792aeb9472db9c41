"""
Shared fixtures: an in-process vault daemon on a Unix socket and a scripted
browser engine.
"""

import asyncio
import base64
import json
import os
import shutil
import tempfile
from typing import Callable, Dict, List, Optional

import pytest

from keyward.automation.sites import SiteDirectory
from keyward.core.history import HistoryStore
from keyward.core.vault_client import VaultClient

PASSPHRASE = "correct horse battery staple"

SITES = {
    "sites": {
        "example": {
            "name": "Example",
            "domains": ["example.com"],
            "password_length": 24,
            "login": {
                "url": "https://example.com/login",
                "steps": [
                    {"fill": "#user", "value": "{username}"},
                    {"fill": "#pass", "value": "{password}"},
                    {"click": "#submit", "wait": 0},
                ],
            },
            "change_password": {
                "url": "https://example.com/settings/password",
                "steps": [
                    {"fill": "#old", "value": "{old_password}"},
                    {"fill": "#new", "value": "{new_password}"},
                    {"fill": "#confirm", "value": "{new_password}"},
                    {"click": "#save"},
                ],
            },
        },
        "locked": {
            "name": "Locked Down",
            "domains": ["locked.test"],
            "login": {"url": "https://locked.test/login", "steps": []},
            "change_password": {
                "url": "https://locked.test/password",
                "requires_mfa": True,
                "steps": [],
            },
        },
    }
}


class FakeVault:
    """Vault daemon double speaking newline-delimited JSON.

    Knobs:
        echo_ids: Echo ``request_id`` back (responses may then be reordered)
        delays: Per-request response delays in seconds, consumed in order
        fail: Command name -> error message to answer with
        support_update: Answer ``update`` like a daemon without that command
        garbage_before: Send an undecodable line before every response
        split_writes: Deliver every response in two chunks
        hangup_on: Close the connection on receiving this command
    """

    def __init__(self):
        self.entries: Dict[str, dict] = {}
        self.requests: List[dict] = []
        self.unlocked = False
        self.echo_ids = True
        self.delays: List[float] = []
        self.fail: Dict[str, str] = {}
        self.support_update = True
        self.garbage_before = False
        self.split_writes = False
        self.hangup_on: Optional[str] = None
        self.on_request: Optional[Callable[[dict], None]] = None
        self.socket_path = ""
        self._writers = []
        self._next_id = 1

    def add(self, name: str, password: str, url: str = "", username: str = "",
            category: str = "authentication") -> str:
        entry_id = f"entry-{self._next_id}"
        self._next_id += 1
        self.entries[entry_id] = {
            "id": entry_id,
            "name": name,
            "url": url or None,
            "username": username or None,
            "category": category,
            "entry_type": "password",
            "value": base64.b64encode(password.encode()).decode(),
        }
        return entry_id

    def password(self, entry_id: str) -> str:
        return base64.b64decode(self.entries[entry_id]["value"]).decode()

    def commands(self) -> List[str]:
        return [r["cmd"] for r in self.requests]

    def handle(self, req: dict) -> dict:
        cmd = req.get("cmd")
        if cmd in self.fail:
            return {"status": "error", "message": self.fail[cmd]}
        if cmd == "status":
            return {"status": "ok", "data": {"locked": not self.unlocked, "entries": len(self.entries)}}
        if cmd == "unlock":
            if req.get("passphrase") != PASSPHRASE:
                return {"status": "error", "message": "invalid passphrase"}
            self.unlocked = True
            return {"status": "ok"}
        if cmd == "lock":
            self.unlocked = False
            return {"status": "ok"}
        if cmd == "list":
            items = [
                {k: v for k, v in e.items() if k != "value"}
                for e in self.entries.values()
                if e["category"] == req.get("category")
            ]
            return {"status": "ok", "data": items}
        if cmd == "get":
            entry = self.entries.get(req.get("id"))
            if entry is None:
                return {"status": "error", "message": "entry not found"}
            return {"status": "ok", "data": dict(entry)}
        if cmd == "create":
            data = req["entry"]
            entry_id = f"entry-{self._next_id}"
            self._next_id += 1
            self.entries[entry_id] = dict(data, id=entry_id)
            return {"status": "ok", "data": {"id": entry_id}}
        if cmd == "delete":
            if self.entries.pop(req.get("id"), None) is None:
                return {"status": "error", "message": "entry not found"}
            return {"status": "ok"}
        if cmd == "update":
            if not self.support_update:
                return {"status": "error", "message": "invalid request: unknown variant `update`"}
            entry = self.entries.get(req.get("id"))
            if entry is None:
                return {"status": "error", "message": "entry not found"}
            entry["value"] = req["value"]
            return {"status": "ok"}
        return {"status": "error", "message": f"unknown command {cmd}"}

    async def serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        tasks = []
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                req = json.loads(line)
                self.requests.append(req)
                if self.on_request:
                    self.on_request(req)
                if req.get("cmd") == self.hangup_on:
                    writer.close()
                    break
                delay = self.delays.pop(0) if self.delays else 0
                if self.echo_ids:
                    tasks.append(asyncio.ensure_future(self._respond(writer, req, delay)))
                else:
                    # Untagged daemons answer strictly in order
                    await self._respond(writer, req, delay)
        except (ConnectionError, OSError):
            pass
        finally:
            for task in tasks:
                task.cancel()

    async def _respond(self, writer: asyncio.StreamWriter, req: dict, delay: float) -> None:
        if delay:
            await asyncio.sleep(delay)
        response = self.handle(req)
        if self.echo_ids:
            response["request_id"] = req.get("request_id")
        data = json.dumps(response).encode() + b"\n"
        if writer.is_closing():
            return
        if self.garbage_before:
            writer.write(b"{not json\n")
        if self.split_writes:
            half = len(data) // 2
            writer.write(data[:half])
            await writer.drain()
            await asyncio.sleep(0.01)
            data = data[half:]
        writer.write(data)
        await writer.drain()

    def close_connections(self) -> None:
        for writer in self._writers:
            writer.close()


class FakeEngine:
    """Browser engine double that records every call.

    Selectors in ``fail_selectors`` and URLs in ``fail_urls`` raise. Filling a
    selector in ``cancel_selectors`` raises CancelledError, as if the task were
    cancelled mid-step.
    """

    def __init__(self, fail_selectors=(), fail_urls=(), cancel_selectors=()):
        self.calls: List[tuple] = []
        self.fail_selectors = set(fail_selectors)
        self.fail_urls = set(fail_urls)
        self.cancel_selectors = set(cancel_selectors)

    async def start(self, headless: bool = True, user_data_dir: Optional[str] = None) -> None:
        self.calls.append(("start", headless))

    async def stop(self) -> None:
        self.calls.append(("stop",))

    async def open_page(self) -> None:
        self.calls.append(("open_page",))

    async def close_page(self) -> None:
        self.calls.append(("close_page",))

    async def goto(self, url: str, timeout_ms: int = 30000) -> None:
        self.calls.append(("goto", url))
        if url in self.fail_urls:
            raise RuntimeError(f"net::ERR_NAME_NOT_RESOLVED at {url}")

    async def fill(self, selector: str, value: str, timeout_ms: int = 10000) -> None:
        self.calls.append(("fill", selector, value))
        if selector in self.cancel_selectors:
            raise asyncio.CancelledError()
        if selector in self.fail_selectors:
            raise TimeoutError(f"Timeout waiting for {selector}")

    async def click(self, selector: str, timeout_ms: int = 10000) -> None:
        self.calls.append(("click", selector))
        if selector in self.fail_selectors:
            raise TimeoutError(f"Timeout waiting for {selector}")

    async def wait_closed(self) -> None:
        self.calls.append(("wait_closed",))

    @property
    def urls(self) -> List[str]:
        return [c[1] for c in self.calls if c[0] == "goto"]

    def filled(self, selector: str) -> Optional[str]:
        for call in self.calls:
            if call[0] == "fill" and call[1] == selector:
                return call[2]
        return None

    def called(self, name: str) -> bool:
        return any(c[0] == name for c in self.calls)


@pytest.fixture
async def vault():
    """A running fake vault daemon. Socket lives under /tmp to stay within the path length limit."""
    fake = FakeVault()
    directory = tempfile.mkdtemp(prefix="kw-", dir="/tmp")
    fake.socket_path = os.path.join(directory, "vault.sock")
    server = await asyncio.start_unix_server(fake.serve, path=fake.socket_path)
    yield fake
    fake.close_connections()
    server.close()
    await server.wait_closed()
    shutil.rmtree(directory, ignore_errors=True)


@pytest.fixture
async def client(vault):
    vault_client = VaultClient(vault.socket_path, timeout=2)
    await vault_client.connect()
    yield vault_client
    await vault_client.close()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def directory():
    return SiteDirectory.from_dict(SITES, source="test")


@pytest.fixture
def history(tmp_path):
    return HistoryStore(tmp_path / "password-history")


@pytest.fixture
def clean_env(monkeypatch):
    """Remove Keyward env vars that leak between tests."""
    for key in [
        "KEYWARD_SOCKET",
        "KEYWARD_DATA_DIR",
        "KEYWARD_SITES_FILE",
        "KEYWARD_REQUEST_TIMEOUT",
        "KEYWARD_STEP_TIMEOUT_MS",
        "KEYWARD_PAUSE_SECONDS",
        "KEYWARD_PASSPHRASE",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def passphrase():
    return PASSPHRASE


@pytest.fixture
def engine_factory():
    return FakeEngine
