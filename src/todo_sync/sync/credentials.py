"""Dropbox credential lifecycle.

``CredentialManager`` is the only owner of the access/refresh token
pair.  It runs the authorization-code flow with PKCE, refreshes the
short-lived access token silently, and logs the session out when a
refresh is rejected.  Everything else asks it for "a usable token" via
``get_token()`` or reports a rejected token via
``recover_from_auth_error()``.

Login round trip::

    url = manager.begin_login()          # verifier persisted, browser opened
    ... user approves, browser lands on redirect_uri?code=... ...
    result = await manager.complete_login_from_redirect(landing_url)

Tokens and the in-flight verifier live in the state document under the
``credential`` and ``pkce_verifier`` keys.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
import secrets
from collections.abc import Callable
from datetime import timedelta
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

import requests

from ..core.async_utils import run_sync
from ..core.client import DropboxClient
from ..core.timestamps import utc_now
from ..exceptions import DropboxApiError, NoCredentialError, RefreshFailedError
from ..store.state import StateStore
from .models import Credential, LoginOutcome, LoginResult

logger = logging.getLogger(__name__)

_PKCE_ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"
)
_QUERY_KEYS = {"code", "state", "error", "error_description"}
_FRAGMENT_KEYS = {
    "access_token",
    "token_type",
    "expires_in",
    "uid",
    "account_id",
    "scope",
    "state",
}


def generate_code_verifier(length: int = 64) -> str:
    """Random PKCE verifier from the RFC 7636 unreserved alphabet."""
    return "".join(secrets.choice(_PKCE_ALPHABET) for _ in range(length))


def code_challenge_for(verifier: str) -> str:
    """S256 challenge: unpadded base64url of the verifier's SHA-256."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def _strip_params(url: str, query_keys: set[str], fragment_keys: set[str]) -> str:
    parts = urlsplit(url)
    query = [
        (k, v)
        for k, vs in parse_qs(parts.query, keep_blank_values=True).items()
        for v in vs
        if k not in query_keys
    ]
    fragment = [
        (k, v)
        for k, vs in parse_qs(parts.fragment, keep_blank_values=True).items()
        for v in vs
        if k not in fragment_keys
    ]
    return urlunsplit(
        (
            parts.scheme,
            parts.netloc,
            parts.path,
            urlencode(query),
            urlencode(fragment),
        )
    )


class CredentialManager:
    """Own the Dropbox token pair.

    Args:
        client: Dropbox HTTP client used for the token endpoint.
        state: Persistent state document.
        open_url: Called with the authorization URL by ``begin_login``
            (for example ``webbrowser.open``).
    """

    def __init__(
        self,
        client: DropboxClient,
        state: StateStore,
        open_url: Callable[[str], object] | None = None,
    ) -> None:
        self._client = client
        self._state = state
        self._open_url = open_url
        self._lock = asyncio.Lock()
        self._logout_listeners: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Stored credential
    # ------------------------------------------------------------------

    @property
    def credential(self) -> Credential | None:
        raw = self._state.get("credential")
        if not raw:
            return None
        return Credential.model_validate(raw)

    def _store(self, credential: Credential) -> None:
        self._state.set("credential", credential.model_dump(mode="json"))

    @property
    def is_authenticated(self) -> bool:
        """Whether any token is stored.  Makes no network call."""
        cred = self.credential
        return bool(cred and (cred.access_token or cred.refresh_token))

    def add_logout_listener(self, listener: Callable[[], None]) -> None:
        self._logout_listeners.append(listener)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def begin_login(self) -> str:
        """Start the PKCE flow and return the authorization URL."""
        verifier = generate_code_verifier()
        self._state.set("pkce_verifier", verifier)
        url = self._client.authorize_url(code_challenge_for(verifier))
        logger.info("Starting Dropbox authorization")
        if self._open_url is not None:
            self._open_url(url)
        return url

    async def complete_login_from_redirect(self, redirect_url: str) -> LoginResult:
        """Consume the parameters Dropbox appended to the redirect URL.

        Handles an authorization ``code`` or an ``error`` in the query
        string, and a legacy ``access_token`` in the fragment.  The
        returned ``cleaned_url`` has whichever of them was present
        removed.
        """
        parts = urlsplit(redirect_url)
        query = parse_qs(parts.query)
        fragment = parse_qs(parts.fragment)
        cleaned = _strip_params(redirect_url, _QUERY_KEYS, _FRAGMENT_KEYS)

        if "error" in query:
            reason = (query.get("error_description") or query["error"])[0]
            logger.warning("Dropbox authorization failed: %s", reason)
            self._state.delete("pkce_verifier")
            return LoginResult(
                outcome=LoginOutcome.FAILED, message=reason, cleaned_url=cleaned
            )

        if "code" in query:
            return await self._exchange_code(query["code"][0], cleaned)

        if "access_token" in fragment:
            expires_in = fragment.get("expires_in", [None])[0]
            self._store(
                Credential(
                    access_token=fragment["access_token"][0],
                    expires_at=(
                        utc_now() + timedelta(seconds=int(expires_in))
                        if expires_in and expires_in.isdigit()
                        else None
                    ),
                )
            )
            logger.info("Stored access token from legacy redirect")
            return LoginResult(outcome=LoginOutcome.SUCCESS, cleaned_url=cleaned)

        return LoginResult(
            outcome=LoginOutcome.NOT_A_REDIRECT, cleaned_url=redirect_url
        )

    async def _exchange_code(self, code: str, cleaned: str) -> LoginResult:
        verifier = self._state.get("pkce_verifier")
        if not verifier:
            return LoginResult(
                outcome=LoginOutcome.FAILED,
                message="No login in progress (missing PKCE verifier)",
                cleaned_url=cleaned,
            )
        try:
            data = await run_sync(self._client.exchange_code, code, verifier)
        except (DropboxApiError, requests.RequestException) as exc:
            logger.error("Authorization code exchange failed: %s", exc)
            return LoginResult(
                outcome=LoginOutcome.FAILED, message=str(exc), cleaned_url=cleaned
            )
        self._store(self._credential_from(data))
        self._state.delete("pkce_verifier")
        logger.info("Connected to Dropbox")
        return LoginResult(outcome=LoginOutcome.SUCCESS, cleaned_url=cleaned)

    @staticmethod
    def _credential_from(
        data: dict, previous_refresh: str | None = None
    ) -> Credential:
        expires_in = data.get("expires_in")
        return Credential(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token") or previous_refresh,
            expires_at=(
                utc_now() + timedelta(seconds=int(expires_in))
                if expires_in is not None
                else None
            ),
        )

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def get_token(self) -> str:
        """Return a usable access token, refreshing first if needed.

        Raises:
            NoCredentialError: Nothing is stored.
            RefreshFailedError: The refresh was rejected; the session has
                been logged out.
        """
        async with self._lock:
            cred = self.credential
            if cred is None or not (cred.access_token or cred.refresh_token):
                raise NoCredentialError("Not connected to Dropbox")
            if cred.access_token and not cred.is_expired():
                return cred.access_token
            if not cred.refresh_token:
                # Legacy token past its expiry; let the server decide.
                return cred.access_token  # type: ignore[return-value]
            return await self._refresh(cred.refresh_token)

    async def _refresh(self, refresh_token: str) -> str:
        logger.info("Refreshing Dropbox access token")
        try:
            data = await run_sync(
                self._client.refresh_access_token, refresh_token
            )
        except (DropboxApiError, requests.RequestException) as exc:
            logger.warning("Token refresh failed, logging out: %s", exc)
            self.logout()
            raise RefreshFailedError(str(exc)) from exc
        cred = self._credential_from(data, previous_refresh=refresh_token)
        if not cred.access_token:
            self.logout()
            raise RefreshFailedError("Refresh response carried no access token")
        self._store(cred)
        return cred.access_token

    async def recover_from_auth_error(self) -> bool:
        """Handle a rejected access token exactly once.

        With a refresh token, refresh it; without one, log out.

        Returns:
            ``True`` if a fresh token is now stored and the caller may
            retry its request once.
        """
        cred = self.credential
        if cred is None or not cred.refresh_token:
            logger.warning("Access token rejected and no refresh token, logging out")
            self.logout()
            return False
        async with self._lock:
            try:
                await self._refresh(cred.refresh_token)
            except RefreshFailedError:
                return False
        return True

    def logout(self) -> None:
        """Forget tokens and any pending verifier.  Safe to call repeatedly."""
        had_session = self.is_authenticated
        self._state.delete("credential")
        self._state.delete("pkce_verifier")
        if had_session:
            logger.info("Disconnected from Dropbox")
        for listener in list(self._logout_listeners):
            listener()
