"""Load author-published ABIs from verification registries."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from .consts import ETHERSCAN_API_KEY, SOURCE_URLS, VERIFIED_TIMEOUT
from .shared import SourceUnavailable, checksum
from .sources import HttpSource

logger = logging.getLogger(__name__)

Abi = List[Dict[str, Any]]


def checked_abi(source: str, abi: Any) -> Optional[Abi]:
    '''The ABI if it is a list of JSON objects, None when empty'''
    if abi is None:
        return None
    if not isinstance(abi, list):
        raise SourceUnavailable(source, 'malformed response: abi is not a list')
    for item in abi:
        if not isinstance(item, dict) or not isinstance(item.get('type', 'function'), str):
            raise SourceUnavailable(source, f'malformed ABI item: {item!r:.80}')
    return abi or None


class AbiLoader:
    name = 'abi-loader'
    timeout = VERIFIED_TIMEOUT

    async def fetch(self, address: str, chain_id: int) -> Optional[Abi]:
        """Published ABI for ``address`` or None when the registry has none."""
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class SourcifyLoader(HttpSource, AbiLoader):
    """Sourcify decentralized verification registry (v2 API)."""

    name = 'sourcify'

    def __init__(self, base_url: Optional[str] = None, timeout: float = VERIFIED_TIMEOUT,
                 client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(base_url or SOURCE_URLS.sourcify, timeout, client)

    async def fetch(self, address: str, chain_id: int) -> Optional[Abi]:
        data = await self.get_json(f'/v2/contract/{chain_id}/{checksum(address)}',
                                   params={'fields': 'abi'}, not_found_ok=True)
        if data is None:
            return None
        return checked_abi(self.name, data.get('abi') if isinstance(data, dict) else None)


class EtherscanLoader(HttpSource, AbiLoader):
    """Etherscan multichain (v2) ``getabi``. Without an API key nothing is requested."""

    name = 'etherscan'

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: float = VERIFIED_TIMEOUT, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(base_url or SOURCE_URLS.etherscan, timeout, client)
        self.api_key = ETHERSCAN_API_KEY if api_key is None else api_key

    async def fetch(self, address: str, chain_id: int) -> Optional[Abi]:
        if not self.api_key:
            logger.debug('No Etherscan API key configured, skipping')
            return None
        data = await self.get_json('/v2/api', params={
            'chainid': chain_id,
            'module': 'contract',
            'action': 'getabi',
            'address': checksum(address),
            'apikey': self.api_key,
        })
        # {"status":"1","message":"OK","result":"[...json abi...]"}
        if not isinstance(data, dict) or str(data.get('status')) != '1':
            return None
        result = data.get('result')
        if isinstance(result, str):
            try:
                result = json.loads(result)
            except ValueError as e:
                raise SourceUnavailable(self.name, f'malformed ABI: {e}')
        if not isinstance(result, list):
            return None
        return checked_abi(self.name, result)


class MultiAbiLoader:
    """Query every loader concurrently, prefer the first non-empty ABI in declared order."""

    def __init__(self, loaders: Optional[List[AbiLoader]] = None) -> None:
        self.loaders = list(loaders) if loaders is not None else [SourcifyLoader(), EtherscanLoader()]

    async def _fetch(self, loader: AbiLoader, address: str, chain_id: int) -> Optional[Abi]:
        try:
            return await asyncio.wait_for(loader.fetch(address, chain_id), loader.timeout)
        except asyncio.TimeoutError:
            logger.warning(f'{loader.name} timed out for {address} on chain {chain_id}')
        except SourceUnavailable as e:
            logger.warning(f'{e}')
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning(f'{loader.name} failed for {address} on chain {chain_id}: {e}')
        except Exception as e:
            logger.warning(f'{loader.name} failed for {address} on chain {chain_id}: {e!r}')
        return None

    async def load_verified(self, address: str, chain_id: int) -> Optional[Abi]:
        results = await asyncio.gather(*(self._fetch(l, address, chain_id) for l in self.loaders))
        for loader, abi in zip(self.loaders, results):
            if abi:
                logger.info(f'Verified ABI for {address} found on {loader.name}')
                return abi
        return None

    async def aclose(self) -> None:
        for loader in self.loaders:
            await loader.aclose()
