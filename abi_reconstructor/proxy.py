"""Detect delegation to an implementation contract.

Two signals are combined:

* storage slots where the common proxy standards keep the implementation
  pointer, probed concurrently and accepted in a fixed priority order;
* proxy management selectors (``upgradeTo(address)``, ``admin()``...) in
  the dispatcher, which alone never yield an address.

Read failures on one slot never stop the others. If nothing can be
confirmed the contract is treated as standalone.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from eth_abi import decode

from .abi import minimal_proxy_target
from .consts import (FACET_ADDRESSES_SELECTOR, IMPLEMENTATION_SELECTOR, IMPLEMENTATION_SLOTS,
                     PROXY_SELECTORS, RPC_TIMEOUT)
from .fields import ProxyInfo
from .reader import ChainReader
from .shared import address_from_word, checksum, is_valid_address, normalize_selector, to_bytes

logger = logging.getLogger(__name__)


def is_proxy_like(selectors: Iterable[str]) -> bool:
    return any(normalize_selector(s) in PROXY_SELECTORS for s in selectors)


class ProxyResolver:
    '''
    Every slot is probed, slot 0 last in priority. With `guard_slot0` the
    naive slot is only read when the selectors look proxy-like or the
    contract has no dispatcher.
    '''

    def __init__(self, reader: ChainReader, timeout: float = RPC_TIMEOUT, slots=None,
                 guard_slot0: bool = False) -> None:
        self.reader = reader
        self.timeout = timeout
        self.slots = list(slots) if slots is not None else IMPLEMENTATION_SLOTS
        self.guard_slot0 = guard_slot0

    async def _read(self, coro):
        return await asyncio.wait_for(coro, self.timeout)

    async def _has_code(self, address: str) -> bool:
        try:
            return bool(await self._read(self.reader.get_code(address)))
        except Exception as e:
            logger.warning(f'Could not read code of candidate {address}: {e}')
            return False

    async def _beacon_implementation(self, beacon: str) -> Optional[str]:
        try:
            word = await self._read(self.reader.call(beacon, to_bytes(IMPLEMENTATION_SELECTOR)))
        except Exception as e:
            logger.warning(f'Beacon {beacon} did not answer implementation(): {e}')
            return None
        return address_from_word(word)

    async def _probe_slot(self, address: str, slot) -> Optional[str]:
        try:
            word = await self._read(self.reader.get_storage_at(address, slot.slot))
        except Exception as e:
            logger.warning(f'Reading {slot.kind} slot of {address} failed: {e}')
            return None
        candidate = address_from_word(word)
        if candidate is None or not is_valid_address(candidate):
            return None
        if slot.beacon:
            logger.debug(f'{address} points to beacon {candidate}')
            candidate = await self._beacon_implementation(candidate)
            if candidate is None:
                return None
        if candidate.lower() == address.lower():
            return None
        if not await self._has_code(candidate):
            logger.debug(f'{slot.kind} slot of {address} holds {candidate} which has no code')
            return None
        return candidate

    async def detect(self, address: str, selectors: Iterable[str],
                     code: Optional[bytes] = None) -> Optional[ProxyInfo]:
        address = checksum(address)
        selectors = list(selectors)

        if code:
            target = minimal_proxy_target(code)
            if target and await self._has_code(target):
                logger.info(f'{address} is an EIP-1167 clone of {target}')
                return ProxyInfo(implementation_address=target, kind='eip1167')

        proxy_like = is_proxy_like(selectors)
        if proxy_like:
            logger.debug(f'{address} has proxy management selectors')

        slots = self.slots
        if self.guard_slot0 and selectors and not proxy_like:
            slots = [s for s in slots if not s.naive]
        found = await asyncio.gather(*(self._probe_slot(address, s) for s in slots))
        for slot, candidate in zip(slots, found):
            if candidate:
                logger.info(f'{address} delegates to {candidate} ({slot.kind})')
                return ProxyInfo(implementation_address=candidate, kind=slot.kind)

        if proxy_like:
            logger.info(f'{address} looks like a proxy but no implementation could be confirmed')
        return None

    async def detect_proxy(self, address: str, selectors: Iterable[str],
                           code: Optional[bytes] = None) -> Optional[str]:
        info = await self.detect(address, selectors, code)
        return info.implementation_address if info else None

    async def detect_facets(self, address: str, selectors: Iterable[str]) -> List[str]:
        '''Facet addresses of an EIP-2535 diamond, empty for anything else'''
        if FACET_ADDRESSES_SELECTOR not in {normalize_selector(s) for s in selectors}:
            return []
        try:
            raw = await self._read(self.reader.call(address, to_bytes(FACET_ADDRESSES_SELECTOR)))
            (facets,) = decode(['address[]'], raw)
        except Exception as e:
            logger.warning(f'facetAddresses() on {address} failed: {e}')
            return []
        result = []
        for facet in facets:
            facet = checksum(facet, allow_zero=True)
            if facet.lower() != address.lower() and facet not in result and int(facet, 16):
                result.append(facet)
        return result
