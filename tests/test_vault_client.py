"""Tests for keyward.core.vault_client against the in-process fake daemon."""

import asyncio

import pytest

from keyward.core.models import CredentialRecord, NewEntry
from keyward.core.vault_client import (
    AuthFailed,
    ProtocolDecodeError,
    VaultClient,
    VaultCommandError,
    VaultTimeout,
    VaultUnavailable,
)


class TestConnection:
    @pytest.mark.asyncio
    async def test_missing_socket(self, tmp_path):
        client = VaultClient(str(tmp_path / "nope.sock"))
        with pytest.raises(VaultUnavailable):
            await client.connect()

    @pytest.mark.asyncio
    async def test_request_before_connect(self):
        client = VaultClient("/tmp/unused.sock")
        with pytest.raises(VaultUnavailable):
            await client.status()

    @pytest.mark.asyncio
    async def test_context_manager(self, vault):
        async with VaultClient(vault.socket_path, timeout=2) as client:
            assert client.connected
            status = await client.status()
            assert status["locked"] is True
        assert not client.connected

    @pytest.mark.asyncio
    async def test_hangup_fails_pending_request(self, vault, client):
        vault.hangup_on = "list"
        with pytest.raises(VaultUnavailable):
            await client.list()
        assert not client.connected


class TestCommands:
    @pytest.mark.asyncio
    async def test_unlock(self, vault, client, passphrase):
        assert await client.unlock(passphrase)
        assert vault.unlocked

    @pytest.mark.asyncio
    async def test_unlock_wrong_passphrase(self, client):
        with pytest.raises(AuthFailed, match="invalid passphrase"):
            await client.unlock("wrong")

    @pytest.mark.asyncio
    async def test_list_returns_summaries(self, vault, client):
        vault.add("Mail", "p1", url="https://mail.example.com", username="a@x.com")
        entries = await client.list()
        assert len(entries) == 1
        assert entries[0].name == "Mail"
        assert entries[0].username == "a@x.com"

    @pytest.mark.asyncio
    async def test_get_decodes_secret(self, vault, client):
        entry_id = vault.add("Mail", "s3cret", url="https://mail.example.com")
        record = await client.get(entry_id, purpose="testing")
        assert record.value == b"s3cret"
        assert "s3cret" not in repr(record)
        req = vault.requests[-1]
        assert req["agent_id"] == "keyward"
        assert req["purpose"] == "testing"

    @pytest.mark.asyncio
    async def test_get_unknown(self, client):
        with pytest.raises(VaultCommandError, match="not found"):
            await client.get("missing")

    @pytest.mark.asyncio
    async def test_create_and_delete(self, vault, client):
        entry_id = await client.create(NewEntry(name="Bank", value=b"p2", url="https://bank.example.com"))
        assert vault.password(entry_id) == "p2"
        assert await client.delete(entry_id)
        assert entry_id not in vault.entries

    @pytest.mark.asyncio
    async def test_replace_uses_update(self, vault, client):
        entry_id = vault.add("Mail", "old", url="https://mail.example.com")
        record = await client.get(entry_id)
        assert await client.replace(record, b"new") == entry_id
        assert vault.password(entry_id) == "new"
        assert "create" not in vault.commands()

    @pytest.mark.asyncio
    async def test_replace_falls_back_to_create_then_delete(self, vault, client):
        vault.support_update = False
        entry_id = vault.add("Mail", "old", url="https://mail.example.com", username="a@x.com")
        record = await client.get(entry_id)
        new_id = await client.replace(record, b"new")

        assert new_id != entry_id
        assert entry_id not in vault.entries
        assert vault.password(new_id) == "new"
        assert vault.entries[new_id]["username"] == "a@x.com"
        assert vault.commands()[-3:] == ["update", "create", "delete"]

    @pytest.mark.asyncio
    async def test_replace_propagates_real_errors(self, vault, client):
        vault.fail["update"] = "disk full"
        record = CredentialRecord(id="entry-1", name="Mail", value=b"old")
        with pytest.raises(VaultCommandError, match="disk full"):
            await client.replace(record, b"new")
        assert "create" not in vault.commands()


class TestCorrelation:
    @pytest.mark.asyncio
    async def test_concurrent_requests_resolve_out_of_order(self, vault, client):
        vault.add("Mail", "p1", category="a")
        vault.add("Bank", "p2", category="b")
        vault.delays = [0.3, 0]

        first, second = await asyncio.gather(client.list("a"), client.list("b"))

        assert [e.name for e in first] == ["Mail"]
        assert [e.name for e in second] == ["Bank"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("echo_ids", [True, False])
    async def test_late_response_is_dropped(self, vault, echo_ids):
        vault.echo_ids = echo_ids
        vault.add("Mail", "p1")
        vault.delays = [0.6]

        async with VaultClient(vault.socket_path, timeout=0.4) as client:
            with pytest.raises(VaultTimeout):
                await client.list()
            # The late list response must not be handed to this request
            status = await client.status()
            assert isinstance(status, dict)
            assert status["entries"] == 1
            assert client.connected

            await asyncio.sleep(0.3)
            entries = await client.list()
            assert [e.name for e in entries] == ["Mail"]

    @pytest.mark.asyncio
    async def test_untagged_responses_in_order(self, vault):
        vault.echo_ids = False
        vault.add("Mail", "p1")
        async with VaultClient(vault.socket_path, timeout=2) as client:
            status, entries = await asyncio.gather(client.status(), client.list())
        assert status["entries"] == 1
        assert entries[0].name == "Mail"


class TestFraming:
    @pytest.mark.asyncio
    async def test_malformed_line_is_discarded(self, vault, client):
        vault.garbage_before = True
        status = await client.status()
        assert status["locked"] is True
        assert client.connected

    @pytest.mark.asyncio
    async def test_partial_lines_are_buffered(self, vault, client):
        vault.split_writes = True
        vault.add("Mail", "p1")
        entries = await client.list()
        assert entries[0].name == "Mail"

    def test_decode_rejects_non_objects(self):
        with pytest.raises(ProtocolDecodeError):
            VaultClient._decode(b"[1, 2]")
        with pytest.raises(ProtocolDecodeError):
            VaultClient._decode(b"\xff\xfe")

    def test_unsolicited_response_is_ignored(self):
        client = VaultClient()
        client._feed(b'{"status": "ok"}\n')
        assert client._pending == {}
