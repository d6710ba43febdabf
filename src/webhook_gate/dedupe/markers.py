"""Dedupe marker stores.

A marker store is a shared append-only set keyed by event fingerprint. Two
backends are provided:

- :class:`LocalMarkerStore`: one file per key in a directory, created with
  ``O_CREAT | O_EXCL`` so that creation is atomic against concurrent
  processes on the same filesystem.
- :class:`HttpMarkerStore`: the shared marker service
  (:mod:`webhook_gate.marker_service`) over HTTP. Creation sends
  ``If-None-Match: *`` and the service performs an atomic insert.

Both implement the :class:`MarkerStore` protocol. ``create`` returns ``True``
when this call created the marker and ``False`` when it already existed;
every infrastructure failure is raised as
:exc:`~webhook_gate.errors.SubstrateUnavailableError`.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

import requests

from webhook_gate.errors import SubstrateUnavailableError

logger = logging.getLogger(__name__)

# Status codes the marker service uses for "someone else created it first".
_ALREADY_EXISTS = (409, 412)


class MarkerStore(Protocol):
    """Boundary of a dedupe marker substrate."""

    def exists(self, key: str) -> bool: ...

    def create(self, key: str, value: str) -> bool: ...


class LocalMarkerStore:
    """Marker files in a local directory.

    Args:
        directory: Directory that holds one file per key. Created on first
            write, parents included.
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        """Resolve the marker file path for ``key``."""
        return self.directory / key

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def create(self, key: str, value: str) -> bool:
        """Atomically create the marker file holding ``value``.

        Returns:
            True if this call created the file, False if it already existed.

        Raises:
            SubstrateUnavailableError: If the directory or file cannot be
                written for any other reason.
        """
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return False
        except OSError as exc:
            raise SubstrateUnavailableError("markers.local.create", f"{path}: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            # The file exists now, so the key counts as claimed even if the
            # timestamp body could not be written.
            logger.warning("markers: wrote empty marker %s: %s", path.name, exc)
        return True


class HttpMarkerStore:
    """Client for the shared marker service.

    Args:
        base_url: Service root, e.g. ``http://markers.internal:8780``.
        token: Optional bearer token sent with every request.
        timeout: Per-request timeout in seconds.
        session: Optional :class:`requests.Session` (tests inject one).
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def _request(self, operation: str, method: str, key: str, **kwargs) -> requests.Response:
        """Issue a request, mapping transport failures to SubstrateUnavailableError."""
        url = f"{self.base_url}/markers/{key}"
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as exc:
            raise SubstrateUnavailableError(
                operation, f"timed out after {self.timeout} seconds"
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise SubstrateUnavailableError(
                operation, f"cannot connect to {self.base_url}"
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise SubstrateUnavailableError(operation, str(exc)) from exc

    def exists(self, key: str) -> bool:
        response = self._request("markers.http.exists", "GET", key, headers=self._headers())
        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False
        raise SubstrateUnavailableError(
            "markers.http.exists", f"unexpected status {response.status_code}"
        )

    def create(self, key: str, value: str) -> bool:
        """Create the marker only if absent.

        Returns:
            True on 200/201, False on 409/412 (already exists).

        Raises:
            SubstrateUnavailableError: On transport errors or any other status
                (401/403 permission, 429 quota, 5xx).
        """
        response = self._request(
            "markers.http.create",
            "PUT",
            key,
            json={"value": value},
            headers=self._headers({"If-None-Match": "*"}),
        )
        if response.status_code in (200, 201):
            return True
        if response.status_code in _ALREADY_EXISTS:
            return False
        raise SubstrateUnavailableError(
            "markers.http.create", f"unexpected status {response.status_code}"
        )
