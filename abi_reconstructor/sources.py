"""Shared HTTP plumbing for signature databases and verified-ABI registries."""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from .consts import USER_AGENT
from .shared import SourceUnavailable

logger = logging.getLogger(__name__)


class HttpSource:
    """Base for lookup sources backed by a JSON HTTP API.

    An ``httpx.AsyncClient`` may be injected (it is then owned by the
    caller); otherwise one is created lazily and closed by ``aclose``.
    TLS certificates are always verified.
    """

    name = 'http'

    def __init__(self, base_url: str, timeout: float, client: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers={'User-Agent': USER_AGENT})
        return self._client

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None,
                       not_found_ok: bool = False) -> Any:
        """GET ``path`` and decode JSON.

        Returns None for a 404 when ``not_found_ok``. Any transport error,
        timeout, error status or undecodable body raises SourceUnavailable.
        """
        url = f'{self.base_url}{path}'
        try:
            response = await asyncio.wait_for(self.client.get(url, params=params), self.timeout)
        except asyncio.TimeoutError:
            raise SourceUnavailable(self.name, f'timeout after {self.timeout}s')
        except httpx.HTTPError as e:
            raise SourceUnavailable(self.name, e)

        if not_found_ok and response.status_code == 404:
            return None
        if response.status_code != 200:
            raise SourceUnavailable(self.name, f'HTTP {response.status_code}')
        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailable(self.name, f'malformed response: {e}')

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()
