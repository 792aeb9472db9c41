"""Tests for keyward.automation.login."""

import pytest

from keyward.automation.login import CredentialNotFound, login_to_site
from keyward.automation.sites import SiteConfigNotFound, SiteDirectory


class TestLoginToSite:
    @pytest.mark.asyncio
    async def test_logs_in_with_stored_credential(self, vault, client, engine, directory):
        entry_id = vault.add("Example", "pw", url="https://example.com", username="alice")

        outcome = await login_to_site(client, engine, directory, "example")

        assert outcome.success
        assert outcome.site == "example"
        assert outcome.credential_id == entry_id
        assert engine.urls == ["https://example.com/login"]
        assert engine.filled("#user") == "alice"
        assert engine.filled("#pass") == "pw"
        assert not engine.called("close_page")

    @pytest.mark.asyncio
    async def test_by_url(self, vault, client, engine, directory):
        vault.add("Example", "pw", url="https://example.com", username="alice")
        outcome = await login_to_site(client, engine, directory, "https://www.example.com/home")
        assert outcome.site == "example"

    @pytest.mark.asyncio
    async def test_unknown_site(self, client, engine, directory):
        with pytest.raises(SiteConfigNotFound):
            await login_to_site(client, engine, directory, "nowhere")
        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_no_credential(self, vault, client, engine, directory):
        vault.add("Other", "pw", url="https://other.test")
        with pytest.raises(CredentialNotFound):
            await login_to_site(client, engine, directory, "example")
        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_failed_step_reported(self, vault, client, directory, engine_factory):
        engine = engine_factory(fail_selectors={"#submit"})
        vault.add("Example", "pw", url="https://example.com", username="alice")
        outcome = await login_to_site(client, engine, directory, "example")
        assert not outcome.success

    @pytest.mark.asyncio
    async def test_login_page_unreachable(self, vault, client, directory, engine_factory):
        engine = engine_factory(fail_urls={"https://example.com/login"})
        vault.add("Example", "pw", url="https://example.com", username="alice")

        outcome = await login_to_site(client, engine, directory, "example")

        assert not outcome.success
        assert not engine.called("fill")

    @pytest.mark.asyncio
    async def test_old_password_placeholder(self, vault, client, engine):
        directory = SiteDirectory.from_dict({"sites": {"legacy": {
            "domains": ["legacy.test"],
            "login": {"url": "https://legacy.test/login", "steps": [
                {"fill": "#user", "value": "{username}"},
                {"fill": "#pass", "value": "{old_password}"},
            ]},
        }}}, source="test")
        vault.add("Legacy", "pw", url="https://legacy.test", username="alice")

        outcome = await login_to_site(client, engine, directory, "legacy")

        assert outcome.success
        assert engine.filled("#pass") == "pw"
