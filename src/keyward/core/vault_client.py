"""
Client for the vault daemon.

The daemon speaks newline-delimited JSON over a Unix socket: one request
object per line (``{"cmd": ..., ...}``) and one response object per line
(``{"status": "ok"|"error", "data"?, "message"?}``). Secret values travel
base64-encoded.

Every request is tagged with a ``request_id``. Daemons that echo the id back
get their responses matched by id, so replies may arrive in any order.
Daemons that do not echo it answer strictly in order, and the client matches
those responses against the oldest outstanding request. A request that timed
out keeps its place in that order until its late response turns up, which
is then dropped instead of being handed to the next caller.
"""
import asyncio
import json
import logging
import uuid
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from ..exceptions import KeywardError
from .models import CredentialRecord, CredentialSummary, NewEntry, encode_secret

logger = logging.getLogger(__name__)

DEFAULT_SOCKET = "/run/keyward/vault.sock"
DEFAULT_TIMEOUT = 30.0
DEFAULT_CATEGORY = "authentication"
AGENT_ID = "keyward"

# Error messages the daemon uses for a command it does not understand
_UNSUPPORTED_MARKERS = ("invalid request", "unknown variant", "unknown command")


class VaultError(KeywardError):
    """Base exception for vault communication errors."""
    pass


class VaultUnavailable(VaultError):
    """The daemon is not running, refused the connection or hung up."""
    pass


class AuthFailed(VaultError):
    """The daemon rejected the passphrase."""
    pass


class VaultTimeout(VaultError):
    """A single request got no response in time. The connection stays open."""
    pass


class VaultCommandError(VaultError):
    """The daemon answered with ``status: error``."""
    pass


class ProtocolDecodeError(VaultError):
    """An inbound line was not a JSON object."""
    pass


class VaultClient:
    """Async request/response client for the vault daemon."""

    def __init__(self, socket_path: str = DEFAULT_SOCKET, timeout: float = DEFAULT_TIMEOUT):
        """Create a client. Call :meth:`connect` (or use ``async with``) before any request.

        Args:
            socket_path: Path of the daemon's Unix socket
            timeout: Seconds to wait for each response
        """
        self.socket_path = socket_path
        self.timeout = timeout
        self.connected = False
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._write_lock: Optional[asyncio.Lock] = None
        self._buffer = b""
        self._pending: Dict[str, asyncio.Future] = {}
        self._order: Deque[str] = deque()
        self._echoes_ids = False

    async def __aenter__(self) -> "VaultClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---- connection ----

    async def connect(self) -> None:
        """Open the socket and start reading responses.

        Raises:
            VaultUnavailable: If the daemon cannot be reached
        """
        try:
            reader, writer = await asyncio.open_unix_connection(self.socket_path)
        except FileNotFoundError as e:
            raise VaultUnavailable(
                f"Vault daemon not running (no socket at {self.socket_path})"
            ) from e
        except ConnectionRefusedError as e:
            raise VaultUnavailable("Vault daemon refused connection") from e
        except OSError as e:
            raise VaultUnavailable(f"Cannot connect to vault daemon: {e}") from e
        self._attach(reader, writer)
        logger.info("Connected to vault daemon")

    def _attach(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._buffer = b""
        self._write_lock = asyncio.Lock()
        self.connected = True
        self._reader_task = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        """Close the connection. Outstanding requests fail with VaultUnavailable."""
        writer, task = self._writer, self._reader_task
        self._writer = None
        self._reader_task = None
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._connection_lost("Vault connection closed")

    async def _read_loop(self) -> None:
        assert self._reader is not None
        try:
            while True:
                data = await self._reader.read(65536)
                if not data:
                    break
                self._feed(data)
        except (ConnectionError, OSError) as e:
            logger.warning(f"Vault connection error: {e}")
        finally:
            self._connection_lost("Vault daemon closed the connection")

    def _connection_lost(self, reason: str) -> None:
        if self.connected:
            logger.debug(reason)
        self.connected = False
        pending = list(self._pending.values())
        self._pending.clear()
        self._order.clear()
        for future in pending:
            if not future.done():
                future.set_exception(VaultUnavailable(reason))

    # ---- framing ----

    def _feed(self, data: bytes) -> None:
        """Buffer inbound bytes and dispatch every complete line."""
        self._buffer += data
        while b"\n" in self._buffer:
            line, self._buffer = self._buffer.split(b"\n", 1)
            if not line.strip():
                continue
            try:
                message = self._decode(line)
            except ProtocolDecodeError as e:
                logger.warning(f"Discarding malformed vault response: {e}")
                continue
            self._dispatch(message)

    @staticmethod
    def _decode(line: bytes) -> Dict[str, Any]:
        try:
            message = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise ProtocolDecodeError(f"undecodable line ({len(line)} bytes): {e}") from e
        if not isinstance(message, dict):
            raise ProtocolDecodeError(f"expected a JSON object, got {type(message).__name__}")
        return message

    def _dispatch(self, message: Dict[str, Any]) -> None:
        request_id = message.pop("request_id", None)
        if request_id is not None:
            self._echoes_ids = True
            try:
                self._order.remove(request_id)
            except ValueError:
                pass
        elif self._order:
            request_id = self._order.popleft()
        else:
            logger.warning("Discarding unsolicited vault response")
            return

        future = self._pending.pop(request_id, None)
        if future is None:
            logger.debug(f"Dropping late response for request {request_id}")
            return
        if not future.done():
            future.set_result(message)

    def _abandon(self, request_id: str) -> None:
        self._pending.pop(request_id, None)
        # Untagged daemons still owe a response for this slot; keep it queued
        if self._echoes_ids:
            try:
                self._order.remove(request_id)
            except ValueError:
                pass

    # ---- requests ----

    async def request(self, cmd: str, **fields: Any) -> Dict[str, Any]:
        """Send one command and wait for its response.

        Args:
            cmd: Command name
            **fields: Command fields

        Returns:
            The decoded response object

        Raises:
            VaultUnavailable: If not connected or the connection drops
            VaultTimeout: If no response arrives within the timeout
        """
        if not self.connected or self._writer is None:
            raise VaultUnavailable("Not connected to vault")

        request_id = uuid.uuid4().hex
        payload = dict(fields, cmd=cmd, request_id=request_id)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        self._order.append(request_id)

        try:
            self._writer.write(json.dumps(payload).encode("utf-8") + b"\n")
            async with self._write_lock:
                await self._writer.drain()
        except (ConnectionError, OSError) as e:
            self._abandon(request_id)
            raise VaultUnavailable(f"Lost connection to vault: {e}") from e

        try:
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            self._abandon(request_id)
            raise VaultTimeout(f"Vault request '{cmd}' timed out after {self.timeout:g}s")
        except asyncio.CancelledError:
            self._abandon(request_id)
            raise

    async def _call(self, cmd: str, failure: str, **fields: Any) -> Any:
        response = await self.request(cmd, **fields)
        if response.get("status") == "ok":
            return response.get("data")
        raise VaultCommandError(response.get("message") or failure)

    async def status(self) -> Dict[str, Any]:
        return await self._call("status", "Status check failed") or {}

    async def unlock(self, passphrase: str, categories: Optional[List[str]] = None) -> bool:
        """Unlock the vault.

        Raises:
            AuthFailed: If the daemon rejects the passphrase
        """
        fields: Dict[str, Any] = {"passphrase": passphrase}
        if categories:
            fields["categories"] = categories
        try:
            await self._call("unlock", "Unlock failed", **fields)
        except VaultCommandError as e:
            raise AuthFailed(str(e)) from e
        return True

    async def lock(self) -> bool:
        await self._call("lock", "Lock failed")
        return True

    async def list(self, category: str = DEFAULT_CATEGORY) -> List[CredentialSummary]:
        data = await self._call("list", "List failed", category=category)
        return [CredentialSummary.from_dict(item) for item in (data or [])]

    async def get(self, entry_id: str, agent_id: Optional[str] = AGENT_ID,
                  purpose: Optional[str] = None) -> CredentialRecord:
        """Fetch a full entry, secret included. ``purpose`` is recorded in the vault's audit log."""
        fields: Dict[str, Any] = {"id": entry_id}
        if agent_id:
            fields["agent_id"] = agent_id
        if purpose:
            fields["purpose"] = purpose
        data = await self._call("get", "Get failed", **fields)
        if not data:
            raise VaultCommandError(f"Entry {entry_id} returned no data")
        try:
            return CredentialRecord.from_dict(data)
        except (KeyError, ValueError) as e:
            raise VaultCommandError(f"Entry {entry_id} is malformed: {e}") from e

    async def create(self, entry: NewEntry) -> str:
        data = await self._call("create", "Create failed", entry=entry.to_dict())
        return str((data or {}).get("id", ""))

    async def delete(self, entry_id: str) -> bool:
        await self._call("delete", "Delete failed", id=entry_id)
        return True

    async def update(self, entry_id: str, value: bytes) -> bool:
        await self._call("update", "Update failed", id=entry_id, value=encode_secret(value))
        return True

    async def replace(self, record: CredentialRecord, value: bytes) -> str:
        """Store a new secret for an existing entry.

        Uses the ``update`` command. Daemons without it get a new entry with
        the same name, username and URL, after which the old one is deleted.

        Returns:
            The id of the entry now holding the secret
        """
        try:
            await self.update(record.id, value)
            return record.id
        except VaultCommandError as e:
            if not any(marker in str(e).lower() for marker in _UNSUPPORTED_MARKERS):
                raise
            logger.info("Vault daemon has no update command, replacing entry")

        new_id = await self.create(NewEntry(
            name=record.name,
            value=value,
            username=record.username,
            url=record.url,
            category=record.category,
            entry_type=record.entry_type,
        ))
        await self.delete(record.id)
        return new_id

    async def use_for_auth(self, entry_id: str, target_url: str, agent_id: str = AGENT_ID,
                           purpose: str = "authentication") -> Dict[str, Any]:
        return await self._call(
            "use_for_auth", "Auth failed",
            id=entry_id, target_url=target_url, agent_id=agent_id, purpose=purpose,
        ) or {}
