"""Client construction from saved configuration.

Shared by the CLI commands and the TUI: loads the app keys and credential,
builds the transport, credential slot and client, and keeps the saved
credential in sync with the slot.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import TextIO

import httpx

from .auth import AuthSession, CredentialSlot
from .client import RtmClient
from .config import load_auth_config, load_settings, save_credential
from .exceptions import AuthError, ConfigError, record_error
from .models import AppSettings, AuthConfig, Credential, Perms
from .transport import RtmTransport

logger = logging.getLogger(__name__)

NO_KEYS_MESSAGE = "No API key saved. Use `rtm auth-app KEY SECRET` to supply them."


@dataclass
class ClientResult:
    """Outcome of building a client from saved configuration."""

    success: bool
    error: str | None = None
    client: RtmClient | None = None
    settings: AppSettings | None = None

    @classmethod
    def ok(cls, client: RtmClient, settings: AppSettings) -> ClientResult:
        return cls(success=True, client=client, settings=settings)

    @classmethod
    def fail(cls, error: str) -> ClientResult:
        return cls(success=False, error=error)


def create_client(
    api_key: str,
    api_secret: str,
    settings: AppSettings,
    *,
    credential: Credential | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> RtmClient:
    """Wire a transport, credential slot, auth session and client together."""
    transport = RtmTransport(
        api_key,
        api_secret,
        timeout=settings.request_timeout_seconds,
        max_retries=settings.max_retries,
        retry_backoff=settings.retry_backoff_seconds,
        client=http_client,
    )
    slot = CredentialSlot(credential)
    auth = AuthSession(transport, slot, perms=settings.perms)
    return RtmClient(transport, slot, auth=auth)


def persist_credential(credential: Credential | None) -> None:
    """Slot listener saving every credential change to ``auth.json``."""
    try:
        save_credential(credential)
    except ConfigError as e:
        record_error(e)
        logger.error("Could not save credential: %s", e)


def connect(*, http_client: httpx.AsyncClient | None = None) -> ClientResult:
    """Build a client from the saved keys, credential and settings.

    Credential changes (a new handshake, or the service rejecting the
    token) are written back to disk.
    """
    try:
        auth_config: AuthConfig = load_auth_config()
        settings = load_settings()
    except ConfigError as e:
        return ClientResult.fail(str(e))

    if not auth_config.has_app_keys:
        return ClientResult.fail(NO_KEYS_MESSAGE)

    assert auth_config.api_key is not None and auth_config.api_secret is not None
    client = create_client(
        auth_config.api_key,
        auth_config.api_secret,
        settings,
        credential=auth_config.credential,
        http_client=http_client,
    )
    client.slot.on_change(persist_credential)
    return ClientResult.ok(client, settings)


async def authorize_interactively(
    session: AuthSession,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> Credential:
    """Run the handshake on a terminal: print the URL, wait for Enter.

    Raises:
        AuthError: The handshake failed; the session is left FAILED.
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    session.restart()
    url = await session.start()
    print(f"auth_url: {url}", file=stdout)
    print("Press enter when authorised...", file=stdout, flush=True)
    line = await asyncio.to_thread(stdin.readline)
    if not line:
        raise AuthError("Authorization cancelled")
    return await session.exchange_token()


async def ensure_authorized(
    client: RtmClient,
    perms: Perms,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> None:
    """Make sure the client holds a credential granting ``perms``.

    Starts an interactive handshake when it does not.
    """
    if await client.check_token(perms):
        return
    print(
        "We don't have the correct permissions - trying to authenticate.",
        file=stdout or sys.stdout,
    )
    client.auth.perms = perms
    await authorize_interactively(client.auth, stdin=stdin, stdout=stdout)
