"""Remote file gateway.

Path-parameterised wrapper around ``DropboxClient`` that never raises:
each operation returns a ``GatewayResult`` whose ``error_kind`` tells the
coordinator what went wrong.

Auth handling: when Dropbox rejects the token the gateway runs one
``recover_from_auth_error()`` cycle and reports ``auth_recovered=True``
if a new token was obtained.  Retrying is left to the caller so a
persistently bad token cannot loop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import requests

from ..core.async_utils import run_sync
from ..core.client import DropboxClient
from ..core.timestamps import parse_timestamp
from ..exceptions import CredentialError, DropboxApiError
from .credentials import CredentialManager
from .models import GatewayErrorKind, GatewayResult, RemoteMetadata

logger = logging.getLogger(__name__)


def _metadata_from(entry: dict) -> RemoteMetadata:
    if entry.get(".tag", "file") != "file":
        return RemoteMetadata(exists=False)
    return RemoteMetadata(
        exists=True,
        server_modified_at=parse_timestamp(entry.get("server_modified")),
    )


class RemoteFileGateway:
    """Typed-outcome access to files in the app's Dropbox folder.

    Args:
        client: Blocking Dropbox client.
        credentials: Token provider.
        is_online: Returns the current connectivity state; uploads fail
            fast with ``OFFLINE`` when it returns False.
    """

    def __init__(
        self,
        client: DropboxClient,
        credentials: CredentialManager,
        is_online: Callable[[], bool] = lambda: True,
    ) -> None:
        self._client = client
        self._credentials = credentials
        self._is_online = is_online

    async def _call(
        self, label: str, func: Callable[..., Any], *args: Any
    ) -> tuple[Any, GatewayResult | None]:
        """Run *func(token, *args)* in a worker thread.

        Returns:
            ``(value, None)`` on success or ``(None, failure)``.
        """
        try:
            token = await self._credentials.get_token()
        except CredentialError as exc:
            return None, GatewayResult(
                success=False, error_kind=GatewayErrorKind.AUTH, message=str(exc)
            )

        try:
            return await run_sync(func, token, *args), None
        except DropboxApiError as exc:
            if exc.is_invalid_token:
                logger.warning("%s: access token rejected", label)
                recovered = await self._credentials.recover_from_auth_error()
                return None, GatewayResult(
                    success=False,
                    error_kind=GatewayErrorKind.AUTH,
                    message=str(exc),
                    auth_recovered=recovered,
                )
            if exc.is_not_found:
                kind = GatewayErrorKind.NOT_FOUND
            elif exc.is_conflict:
                kind = GatewayErrorKind.CONFLICT
            else:
                kind = GatewayErrorKind.OTHER
                logger.error("%s failed: %s", label, exc)
            return None, GatewayResult(
                success=False, error_kind=kind, message=str(exc)
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("%s: network unreachable: %s", label, exc)
            return None, GatewayResult(
                success=False,
                error_kind=GatewayErrorKind.OFFLINE,
                message="Network unreachable",
            )
        except requests.RequestException as exc:
            logger.error("%s failed: %s", label, exc)
            return None, GatewayResult(
                success=False, error_kind=GatewayErrorKind.OTHER, message=str(exc)
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_metadata(self, path: str) -> GatewayResult:
        """Fetch metadata; a missing file is ``exists=False``, not an error."""
        entry, failure = await self._call(
            f"get_metadata({path})", self._client.get_metadata, path
        )
        if failure is not None:
            if failure.error_kind == GatewayErrorKind.NOT_FOUND:
                return GatewayResult(
                    success=True, metadata=RemoteMetadata(exists=False)
                )
            return failure
        return GatewayResult(success=True, metadata=_metadata_from(entry))

    async def download(self, path: str) -> GatewayResult:
        """Download text; a missing file yields ``content=None``."""
        value, failure = await self._call(
            f"download({path})", self._client.download, path
        )
        if failure is not None:
            if failure.error_kind == GatewayErrorKind.NOT_FOUND:
                return GatewayResult(success=True, content=None)
            return failure
        content, entry = value
        return GatewayResult(
            success=True, content=content, metadata=_metadata_from(entry)
        )

    async def upload(self, path: str, content: str) -> GatewayResult:
        """Overwrite *path* with *content*."""
        if not self._is_online():
            return GatewayResult(
                success=False,
                error_kind=GatewayErrorKind.OFFLINE,
                message="Application is offline",
            )
        entry, failure = await self._call(
            f"upload({path})", self._client.upload, path, content
        )
        if failure is not None:
            return failure
        logger.info("Uploaded %s (%d bytes)", path, len(content.encode("utf-8")))
        return GatewayResult(success=True, metadata=_metadata_from(entry))

    async def rename(self, old_path: str, new_path: str) -> GatewayResult:
        _, failure = await self._call(
            f"rename({old_path} -> {new_path})",
            self._client.move,
            old_path,
            new_path,
        )
        return failure or GatewayResult(success=True)

    async def delete(self, path: str) -> GatewayResult:
        _, failure = await self._call(
            f"delete({path})", self._client.delete, path
        )
        return failure or GatewayResult(success=True)

    async def list_files(self) -> GatewayResult:
        """List ``.txt`` files in the app folder root (lower-cased paths)."""
        entries, failure = await self._call(
            "list_folder", self._client.list_folder, ""
        )
        if failure is not None:
            return failure
        files = [
            e["path_lower"]
            for e in entries
            if e.get(".tag") == "file"
            and e.get("name", "").lower().endswith(".txt")
            and e.get("path_lower")
        ]
        return GatewayResult(success=True, files=files)
