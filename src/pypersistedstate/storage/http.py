"""REST key-value storage over aiohttp."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from pypersistedstate.exceptions import PersistStorageError

_logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_S = 10.0


class HttpStorage:
    """Store snapshots in a plain HTTP key-value service.

    The service is addressed as ``{base_url}/{key}``:

    - ``GET`` returns the raw value (``200``) or ``404`` when missing
    - ``PUT`` stores the request body
    - ``DELETE`` removes the key (``404`` is tolerated)

    Usage::

        async with HttpStorage("https://kv.example.org/state") as storage:
            persisted = PersistedState(storage=storage)
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._external_session = session is not None
        self._http = session
        self._headers = dict(headers or {})
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self) -> HttpStorage:
        self._require_session()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this storage created it."""
        if not self._external_session and self._http is not None:
            await self._http.close()
        self._http = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession(timeout=self._timeout)
        return self._http

    def _url(self, key: str) -> str:
        return f"{self._base_url}/{quote(key, safe='')}"

    async def _request(self, method: str, key: str, *, data: str | None = None) -> tuple[int, str]:
        http = self._require_session()
        url = self._url(key)
        headers = dict(self._headers)
        if data is not None:
            headers.setdefault("content-type", "text/plain; charset=utf-8")

        _logger.debug("%s %s", method, url)
        try:
            async with http.request(method, url, data=data, headers=headers, timeout=self._timeout) as resp:
                return resp.status, await resp.text()
        except aiohttp.ClientError as exc:
            raise PersistStorageError(
                f"{method} {url} failed: {exc}",
                key=key,
            ) from exc
        except TimeoutError as exc:
            raise PersistStorageError(f"{method} {url} timed out", key=key) from exc

    @staticmethod
    def _raise_for_status(method: str, key: str, status: int, text: str) -> None:
        raise PersistStorageError(
            f"HTTP {status} for {method} of {key!r}: {text[:200]}",
            key=key,
            status_code=status,
        )

    async def get(self, key: str) -> str | None:
        status, text = await self._request("GET", key)
        if status == 404:
            return None
        if status != 200:
            self._raise_for_status("GET", key, status, text)
        return text

    async def set(self, key: str, value: str) -> None:
        status, text = await self._request("PUT", key, data=value)
        if status not in (200, 201, 204):
            self._raise_for_status("PUT", key, status, text)

    async def remove(self, key: str) -> None:
        status, text = await self._request("DELETE", key)
        if status not in (200, 202, 204, 404):
            self._raise_for_status("DELETE", key, status, text)
