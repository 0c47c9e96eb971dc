"""HTTP transport: one physical request per ``send``."""

from __future__ import annotations

from typing import Optional, Protocol

import httpx

USER_AGENT = "fight-odds/0.1.0"


class Transport(Protocol):
    async def send(self, request: httpx.Request) -> httpx.Response:
        ...


class HttpxTransport:
    """
    httpx-backed transport.

    Non-2xx responses raise ``httpx.HTTPStatusError`` so the retry policy
    can classify them; timeouts surface as ``httpx.TimeoutException``.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(10.0, timeout_seconds))
        self._headers = {"User-Agent": USER_AGENT, "Accept": "application/json", **(headers or {})}
        self._client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=self._headers)
            self._owns_client = True

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def send(self, request: httpx.Request) -> httpx.Response:
        if self._client is None:
            await self.connect()
        assert self._client is not None

        for key, value in self._headers.items():
            request.headers.setdefault(key, value)
        request.extensions.setdefault("timeout", self._timeout.as_dict())

        response = await self._client.send(request)
        if response.is_error:
            await response.aread()
            response.raise_for_status()
        return response

    async def __aenter__(self) -> HttpxTransport:
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
