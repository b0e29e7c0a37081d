"""Tests for client construction and the terminal handshake."""

import io
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import API_KEY, API_SECRET, FakeRtm, auth_rsp, fail, make_credential, ok
from rtm_client.auth import AuthState
from rtm_client.config import load_auth_config, save_auth_config, save_settings
from rtm_client.exceptions import AuthError
from rtm_client.models import AppSettings, AuthConfig, Perms
from rtm_client.services import (
    NO_KEYS_MESSAGE,
    authorize_interactively,
    connect,
    create_client,
)


class TestCreateClient:
    """Tests for create_client."""

    def test_settings_applied(self):
        """Transport and auth session follow the settings."""
        settings = AppSettings(request_timeout_seconds=3.0, max_retries=4, perms=Perms.DELETE)
        client = create_client(API_KEY, API_SECRET, settings)
        assert client.transport.timeout == 3.0
        assert client.transport.max_retries == 4
        assert client.auth.perms == Perms.DELETE
        assert not client.is_authenticated

    def test_with_credential(self):
        """A saved credential is loaded into the slot."""
        client = create_client(API_KEY, API_SECRET, AppSettings(), credential=make_credential())
        assert client.is_authenticated


class TestConnect:
    """Tests for connect()."""

    def test_no_keys(self):
        """Without saved keys connect fails with a hint."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch("rtm_client.config.CONFIG_DIR", Path(tmpdir)):
                result = connect()
        assert not result.success
        assert result.error == NO_KEYS_MESSAGE
        assert result.client is None

    def test_broken_config(self):
        """Unreadable config is reported, not raised."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "auth.json").write_text("{")
            with patch("rtm_client.config.CONFIG_DIR", Path(tmpdir)):
                result = connect()
        assert not result.success
        assert "Invalid JSON" in result.error

    def test_connects_with_saved_state(self):
        """Saved keys, credential and settings are used."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch("rtm_client.config.CONFIG_DIR", Path(tmpdir)):
                save_auth_config(AuthConfig(API_KEY, API_SECRET, make_credential()))
                save_settings(AppSettings(default_filter="tag:home"))
                result = connect()
        assert result.success
        assert result.client is not None and result.client.is_authenticated
        assert result.settings.default_filter == "tag:home"

    def test_credential_changes_persisted(self):
        """New credentials in the slot are written to auth.json."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch("rtm_client.config.CONFIG_DIR", Path(tmpdir)):
                save_auth_config(AuthConfig(API_KEY, API_SECRET))
                result = connect()
                credential = make_credential(token="fresh")
                result.client.slot.replace(credential)
                assert load_auth_config().credential == credential
                result.client.slot.clear()
                assert load_auth_config().credential is None


@pytest.mark.asyncio
class TestAuthorizeInteractively:
    """Tests for the terminal handshake."""

    async def test_prints_url_and_exchanges(self):
        """The URL is printed and the token exchanged after Enter."""
        fake = FakeRtm()
        fake.on("rtm.auth.getFrob", ok(frob="frob-1"))
        fake.on("rtm.auth.getToken", auth_rsp(token="tok-x"))
        client = create_client(
            API_KEY, API_SECRET, AppSettings(), http_client=fake.http_client()
        )
        stdout = io.StringIO()

        credential = await authorize_interactively(
            client.auth, stdin=io.StringIO("\n"), stdout=stdout
        )

        assert credential.token == "tok-x"
        assert client.slot.credential == credential
        output = stdout.getvalue()
        assert "auth_url: https://www.rememberthemilk.com/services/auth/?" in output
        assert "Press enter when authorised..." in output

    async def test_eof_cancels(self):
        """Closing stdin cancels the handshake."""
        fake = FakeRtm()
        fake.on("rtm.auth.getFrob", ok(frob="frob-1"))
        client = create_client(
            API_KEY, API_SECRET, AppSettings(), http_client=fake.http_client()
        )

        with pytest.raises(AuthError):
            await authorize_interactively(client.auth, stdin=io.StringIO(""), stdout=io.StringIO())

        assert "rtm.auth.getToken" not in fake.methods()

    async def test_denied(self):
        """A denied authorization raises AuthError."""
        fake = FakeRtm()
        fake.on("rtm.auth.getFrob", ok(frob="frob-1"))
        fake.on("rtm.auth.getToken", fail(101, "Invalid frob - did you authenticate?"))
        client = create_client(
            API_KEY, API_SECRET, AppSettings(max_retries=0), http_client=fake.http_client()
        )

        with pytest.raises(AuthError):
            await authorize_interactively(client.auth, stdin=io.StringIO("\n"), stdout=io.StringIO())

        assert client.auth.state == AuthState.FAILED
