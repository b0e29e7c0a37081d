"""Authentication handshake and credential ownership.

The service uses a desktop-style flow:

1. ``rtm.auth.getFrob`` returns a short-lived frob.
2. The user visits a signed authorization URL embedding the frob and
   approves access out of band.
3. ``rtm.auth.getToken`` exchanges the frob for a permanent token.

``AuthSession`` walks that state machine. The resulting ``Credential`` is
stored in a ``CredentialSlot``, which every API call reads. Replacing the
credential bumps the slot's generation so calls that started with the old
value can tell they raced a re-authentication.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from .exceptions import (
    AuthError,
    AuthFailureReason,
    RtmClientError,
    ServiceError,
    TransportError,
    record_error,
)
from .models import Credential, Perms
from .parsing import parse_credential
from .signing import build_signed_url
from .transport import AUTH_URL, INVALID_FROB, LOGIN_FAILED, RtmTransport

logger = logging.getLogger(__name__)


# =============================================================================
# Credential Slot
# =============================================================================


class CredentialSlot:
    """Single owner of the current credential, with a generation counter."""

    def __init__(self, credential: Credential | None = None) -> None:
        self._credential = credential
        self._generation = 0
        self._listeners: list[Callable[[Credential | None], None]] = []

    @property
    def credential(self) -> Credential | None:
        return self._credential

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> tuple[Credential | None, int]:
        """Return the current credential together with its generation."""
        return self._credential, self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def replace(self, credential: Credential) -> None:
        """Install a new credential (after a completed handshake)."""
        self._credential = credential
        self._generation += 1
        logger.info(
            "Credential replaced for user %s (generation %d)",
            credential.user.username,
            self._generation,
        )
        self._notify()

    def clear(self) -> None:
        """Drop the credential, e.g. after the service reported it invalid."""
        if self._credential is None:
            return
        self._credential = None
        self._generation += 1
        logger.info("Credential cleared (generation %d)", self._generation)
        self._notify()

    def on_change(self, listener: Callable[[Credential | None], None]) -> None:
        """Register a callback invoked with the new credential on every change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener(self._credential)


# =============================================================================
# Auth Session
# =============================================================================


class AuthState(Enum):
    """Handshake progress."""

    UNAUTHENTICATED = "unauthenticated"
    FROB_REQUESTED = "frob_requested"
    AWAITING_USER_AUTHORIZATION = "awaiting_user_authorization"
    TOKEN_EXCHANGED = "token_exchanged"
    FAILED = "failed"


class AuthSession:
    """Drives the frob/token handshake.

    Example:
        session = AuthSession(transport, slot, perms=Perms.WRITE)
        url = await session.start()
        # ... user visits url and approves ...
        credential = await session.exchange_token()
    """

    def __init__(
        self,
        transport: RtmTransport,
        slot: CredentialSlot,
        *,
        perms: Perms = Perms.READ,
        auth_url: str = AUTH_URL,
    ) -> None:
        self.transport = transport
        self.slot = slot
        self.perms = perms
        self.auth_url = auth_url
        self._state = AuthState.UNAUTHENTICATED
        self._frob: str | None = None
        self._url: str | None = None
        self._failure: AuthError | None = None
        self._attempt = 0

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def failure(self) -> AuthError | None:
        """The error that moved the session to FAILED, if any."""
        return self._failure

    @property
    def is_pending(self) -> bool:
        """True while a handshake is in progress."""
        return self._state in (
            AuthState.FROB_REQUESTED,
            AuthState.AWAITING_USER_AUTHORIZATION,
        )

    def restart(self) -> None:
        """Return to UNAUTHENTICATED so a new handshake can begin."""
        logger.debug("Restarting auth session from %s", self._state.value)
        self._attempt += 1
        self._state = AuthState.UNAUTHENTICATED
        self._frob = None
        self._url = None
        self._failure = None

    async def start(self) -> str:
        """Request a frob and return the authorization URL."""
        await self.request_frob()
        return self.authorization_url()

    async def request_frob(self) -> None:
        """UNAUTHENTICATED -> FROB_REQUESTED."""
        self._expect(AuthState.UNAUTHENTICATED, "request_frob")
        try:
            rsp = await self._handshake_call("rtm.auth.getFrob")
        except TransportError as e:
            self._fail(AuthError("Could not reach the service to start authentication",
                                 reason=AuthFailureReason.TRANSPORT, cause=e))
        except ServiceError as e:
            self._fail(AuthError(f"Service refused to start authentication: {e.message}",
                                 reason=AuthFailureReason.SERVICE, cause=e))

        frob = rsp.get("frob")
        if not frob:
            self._fail(AuthError("Service returned no frob", reason=AuthFailureReason.SERVICE))
        self._frob = str(frob)
        self._state = AuthState.FROB_REQUESTED
        logger.debug("Obtained frob")

    def authorization_url(self) -> str:
        """FROB_REQUESTED -> AWAITING_USER_AUTHORIZATION.

        Pure string construction; the caller presents the URL to the user.
        """
        if self._state == AuthState.AWAITING_USER_AUTHORIZATION and self._url:
            return self._url
        self._expect(AuthState.FROB_REQUESTED, "authorization_url")
        assert self._frob is not None
        self._url = build_signed_url(
            self.auth_url,
            self.transport.api_secret,
            {
                "api_key": self.transport.api_key,
                "perms": self.perms.value,
                "frob": self._frob,
            },
        )
        self._state = AuthState.AWAITING_USER_AUTHORIZATION
        return self._url

    async def exchange_token(self) -> Credential:
        """AWAITING_USER_AUTHORIZATION -> TOKEN_EXCHANGED.

        Call only after the user confirmed they authorized access.

        Raises:
            AuthError: With reason FROB_REJECTED if the user denied access or
                the frob expired; the handshake must be restarted.
        """
        self._expect(AuthState.AWAITING_USER_AUTHORIZATION, "exchange_token")
        assert self._frob is not None
        try:
            rsp = await self._handshake_call("rtm.auth.getToken", {"frob": self._frob})
        except TransportError as e:
            self._fail(AuthError("Could not reach the service to complete authentication",
                                 reason=AuthFailureReason.TRANSPORT, cause=e))
        except ServiceError as e:
            if e.code == INVALID_FROB:
                self._fail(AuthError("Authorization was denied or has expired",
                                     reason=AuthFailureReason.FROB_REJECTED, cause=e))
            self._fail(AuthError(f"Service refused the token exchange: {e.message}",
                                 reason=AuthFailureReason.SERVICE, cause=e))

        try:
            credential = parse_credential(rsp)
        except ServiceError as e:
            self._fail(AuthError("Service returned an unusable token",
                                 reason=AuthFailureReason.SERVICE, cause=e))

        self._frob = None
        self._state = AuthState.TOKEN_EXCHANGED
        self.slot.replace(credential)
        return credential

    async def check_token(self, required: Perms = Perms.READ) -> bool:
        """Check the saved credential against the service.

        Returns:
            True if a credential exists, is valid, and grants ``required``.
            An invalid token is cleared from the slot.

        Raises:
            TransportError: The service could not be reached.
            ServiceError: The service failed for another reason.
        """
        credential = self.slot.credential
        if credential is None:
            return False
        try:
            rsp = await self.transport.call(
                "rtm.auth.checkToken", {"auth_token": credential.token}
            )
        except ServiceError as e:
            if e.code == LOGIN_FAILED:
                logger.info("Saved token rejected by service")
                self.slot.clear()
                return False
            raise
        granted = parse_credential(rsp, "rtm.auth.checkToken").perms
        return granted.allows(required)

    async def _handshake_call(
        self, method: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Transport call whose outcome is discarded if restart() ran meanwhile."""
        attempt = self._attempt
        try:
            rsp = await self.transport.call(method, params)
        except RtmClientError:
            self._check_attempt(attempt, method)
            raise
        self._check_attempt(attempt, method)
        return rsp

    def _check_attempt(self, attempt: int, method: str) -> None:
        if attempt != self._attempt:
            logger.info("Discarding %s result from a cancelled handshake", method)
            raise AuthError(
                "Authorization was cancelled",
                reason=AuthFailureReason.CANCELLED,
                context={"method": method},
            )

    def _expect(self, state: AuthState, operation: str) -> None:
        if self._state != state:
            raise AuthError(
                f"Cannot {operation} while {self._state.value}",
                reason=AuthFailureReason.INVALID_STATE,
                context={"expected": state.value},
            )

    def _fail(self, error: AuthError) -> None:
        # TOKEN_EXCHANGED is terminal; failures only come from in-progress states
        record_error(error)
        logger.warning("Authentication failed: %s", error)
        self._state = AuthState.FAILED
        self._frob = None
        self._url = None
        self._failure = error
        raise error
