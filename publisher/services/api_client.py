"""HTTP adapter for backend API operations."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ApiError, TransportError

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
CSRF_COOKIE = "csrf-token"
_SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


class CsrfTokenProvider:
    """
    Double-submit CSRF token source.

    The ``csrf-token`` cookie wins; otherwise the token endpoint is called,
    once, even when several requests ask at the same time.
    """

    def __init__(self, client: httpx.AsyncClient, endpoint: str = "/api/csrf-token"):
        self._client = client
        self._endpoint = endpoint
        self._token: Optional[str] = None
        self._lock = asyncio.Lock()

    def _from_cookie(self) -> Optional[str]:
        return self._client.cookies.get(CSRF_COOKIE)

    async def get(self) -> Optional[str]:
        cookie_token = self._from_cookie()
        if cookie_token:
            return cookie_token
        if self._token:
            return self._token

        async with self._lock:
            if self._token:
                return self._token
            try:
                response = await self._client.get(self._endpoint)
                response.raise_for_status()
                self._token = response.json().get("csrfToken")
            except (httpx.HTTPError, ValueError) as exc:
                # not authenticated yet; requests go out without the header
                logger.debug(f"[csrf] token fetch failed: {exc}")
                return None
        return self._from_cookie() or self._token

    def reset(self) -> None:
        self._token = None
        self._client.cookies.delete(CSRF_COOKIE)

    async def refresh(self) -> Optional[str]:
        self.reset()
        return await self.get()


class HTTPAPIClient:
    """
    HTTP client adapter for backend calls.

    Implements IAPIClient protocol. Non-2xx responses are raised as
    ``ApiError`` envelopes; 5xx and connection errors are retried unless
    the caller passes ``retry=False`` (non-idempotent or already retried
    by the caller). Signed storage URLs go through ``storage``, a separate
    client without the session cookie jar.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60,
        max_retries: int = 3,
        backoff: float = 0.5,
        cookies: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._backoff = backoff
        self._cookies = cookies
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._csrf: Optional[CsrfTokenProvider] = None
        self._storage: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            cookies=self._cookies,
            transport=self._transport,
        )
        self._csrf = CsrfTokenProvider(self._client)
        self._storage = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self

    async def __aexit__(self, *args):
        if self._storage:
            await self._storage.aclose()
            self._storage = None
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def raw(self) -> httpx.AsyncClient:
        """Underlying backend client, for multipart requests."""
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")
        return self._client

    @property
    def storage(self) -> httpx.AsyncClient:
        """Cookie-less client for third-party storage hosts (signed URLs)."""
        if not self._storage:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")
        return self._storage

    @property
    def csrf(self) -> CsrfTokenProvider:
        if not self._csrf:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")
        return self._csrf

    async def csrf_headers(self) -> Dict[str, str]:
        token = await self.csrf.get()
        return {CSRF_HEADER: token} if token else {}

    async def post(self, endpoint: str, json: Optional[Dict] = None, retry: bool = True) -> httpx.Response:
        return await self.request("POST", endpoint, json=json, retry=retry)

    async def put(self, endpoint: str, json: Optional[Dict] = None, retry: bool = True) -> httpx.Response:
        return await self.request("PUT", endpoint, json=json, retry=retry)

    async def get(self, endpoint: str) -> httpx.Response:
        return await self.request("GET", endpoint)

    async def request(self, method: str, endpoint: str, json: Any = None, retry: bool = True) -> httpx.Response:
        client = self.raw
        max_attempts = self._max_retries if retry else 1
        method = method.upper()
        csrf_retried = False
        last_exception: Optional[Exception] = None
        attempt = 0

        while attempt < max_attempts:
            headers = {}
            if method not in _SAFE_METHODS:
                headers = await self.csrf_headers()

            try:
                response = await client.request(method, endpoint, json=json, headers=headers)
            except httpx.TransportError as exc:
                last_exception = exc
                attempt += 1
                if attempt < max_attempts:
                    await asyncio.sleep(self._backoff * attempt)
                    continue
                raise TransportError(f"{method} {endpoint} failed: {exc}") from exc

            if response.status_code >= 500 and attempt < max_attempts - 1:
                attempt += 1
                await asyncio.sleep(self._backoff * attempt)
                continue

            if response.status_code >= 400:
                error = ApiError.from_response(response)
                if error.is_csrf_failure and not csrf_retried:
                    logger.info(f"[api] CSRF token rejected on {method} {endpoint}, refreshing")
                    csrf_retried = True
                    await self.csrf.refresh()
                    continue
                logger.debug(f"[api] {method} {endpoint} -> {response.status_code}: {error}")
                raise error

            return response

        if last_exception:
            raise TransportError(f"{method} {endpoint} failed: {last_exception}") from last_exception
        raise TransportError(f"Failed to {method} {endpoint} after {max_attempts} attempts")
