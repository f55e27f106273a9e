import json
import logging
import threading
from typing import Any
from urllib.parse import urlencode

import requests

from ..config import Config
from ..exceptions import DropboxApiError
from ..file_handler import decode_remote_text

logger = logging.getLogger(__name__)

API_URL = "https://api.dropboxapi.com/2"
CONTENT_URL = "https://content.dropboxapi.com/2"
TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"


class DropboxClient:
    """Blocking Dropbox HTTP API v2 client.

    The client holds no credential: every file call takes the bearer
    token to use, so token refresh stays the credential manager's job.
    Calls are meant to run in worker threads (see ``run_sync``), hence
    one ``requests.Session`` per thread.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = requests.Session()
        return self._thread_local.session

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @staticmethod
    def _raise_for_error(response: requests.Response) -> None:
        if response.status_code == 200:
            return
        summary = ""
        message = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            summary = body.get("error_summary") or ""
            error = body.get("error")
            if not summary and isinstance(error, dict):
                summary = error.get(".tag", "")
            elif not summary and isinstance(error, str):
                summary = error
                message = body.get("error_description")
        else:
            summary = response.text.strip()[:200]
        raise DropboxApiError(response.status_code, summary, message)

    def _rpc_request(
        self, token: str, route: str, payload: dict | None
    ) -> dict:
        """POST a JSON body to an RPC-style endpoint."""
        response = self._get_session().post(
            f"{API_URL}/{route}",
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            data=json.dumps(payload) if payload is not None else None,
            timeout=(10, 60),
        )
        self._raise_for_error(response)
        return response.json()

    def _content_request(
        self,
        token: str,
        route: str,
        arg: dict,
        data: bytes | None = None,
    ) -> requests.Response:
        """POST to a content endpoint with the argument in a header."""
        headers = {
            "Authorization": f"Bearer {token}",
            # ensure_ascii keeps the header latin-1 safe
            "Dropbox-API-Arg": json.dumps(arg),
        }
        if data is not None:
            headers["Content-Type"] = "application/octet-stream"
        response = self._get_session().post(
            f"{CONTENT_URL}/{route}",
            headers=headers,
            data=data,
            timeout=(10, 60),
        )
        self._raise_for_error(response)
        return response

    def _token_request(self, form: dict[str, str]) -> dict:
        form = {**form, "client_id": self.config.app_key}
        response = self._get_session().post(
            TOKEN_URL, data=form, timeout=(10, 30)
        )
        self._raise_for_error(response)
        return response.json()

    # ------------------------------------------------------------------
    # OAuth (PKCE)
    # ------------------------------------------------------------------

    def authorize_url(self, code_challenge: str) -> str:
        """
        Build the authorization URL for the PKCE code flow.
        """
        query = urlencode(
            {
                "client_id": self.config.app_key,
                "response_type": "code",
                "redirect_uri": self.config.redirect_uri,
                "code_challenge": code_challenge,
                "code_challenge_method": "S256",
                "token_access_type": "offline",
            }
        )
        return f"{AUTHORIZE_URL}?{query}"

    def exchange_code(self, code: str, code_verifier: str) -> dict:
        """
        Exchange an authorization code for an access and refresh token.
        """
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "redirect_uri": self.config.redirect_uri,
            }
        )

    def refresh_access_token(self, refresh_token: str) -> dict:
        """
        Obtain a new short-lived access token from a refresh token.
        """
        return self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def get_metadata(self, token: str, path: str) -> dict:
        return self._rpc_request(token, "files/get_metadata", {"path": path})

    def download(self, token: str, path: str) -> tuple[str, dict]:
        """
        Download a file. Returns the decoded text and its metadata.
        """
        response = self._content_request(
            token, "files/download", {"path": path}
        )
        raw_meta = response.headers.get("Dropbox-API-Result", "{}")
        return decode_remote_text(response.content), json.loads(raw_meta)

    def upload(self, token: str, path: str, content: str) -> dict:
        """
        Upload text, replacing whatever is stored at *path*.
        """
        return self._content_request(
            token,
            "files/upload",
            {
                "path": path,
                "mode": "overwrite",
                "autorename": False,
                "mute": True,
            },
            data=content.encode("utf-8"),
        ).json()

    def move(self, token: str, from_path: str, to_path: str) -> dict:
        return self._rpc_request(
            token,
            "files/move_v2",
            {"from_path": from_path, "to_path": to_path, "autorename": False},
        )

    def delete(self, token: str, path: str) -> dict:
        return self._rpc_request(token, "files/delete_v2", {"path": path})

    def list_folder(self, token: str, path: str = "") -> list[dict[str, Any]]:
        """
        List a folder, following ``has_more`` cursors to the end.
        """
        page = self._rpc_request(
            token, "files/list_folder", {"path": path, "recursive": False}
        )
        entries = list(page.get("entries", []))
        while page.get("has_more"):
            page = self._rpc_request(
                token,
                "files/list_folder/continue",
                {"cursor": page["cursor"]},
            )
            entries.extend(page.get("entries", []))
        logger.debug("Listed %d entries under '%s'", len(entries), path or "/")
        return entries
