"""Reconstruct a contract interface from whatever sources are available.

For one address the pipeline runs strictly in this order:

1. verified lookup: an author-published ABI is used as-is;
2. bytecode fallback: selectors from the dispatcher, names and types from
   the signature databases, placeholders where nothing matched;
3. proxy check: implementation (and diamond facet) interfaces are
   assembled recursively on the same chain and merged over the proxy's own;
4. output backfill for bytecode-derived functions from a table of
   well-known fragments;
5. the result is cached and returned.
"""

import asyncio
import logging
from typing import List, Optional, Set

from .abi import extract_event_topics, skeleton_abi, to_code
from .cache import InMemoryResultCache, ResultCache
from .consts import FALLBACK_FRAGMENTS, MAX_PROXY_DEPTH, RPC_TIMEOUT, SOURCE_BYTECODE, SOURCE_VERIFIED
from .fields import (Entry, FunctionEntry, ProxyInfo, ReconstructionResult, dedupe_entries,
                     entries_from_abi, params_from_types)
from .proxy import ProxyResolver
from .reader import ChainReader
from .shared import NoContractAtAddress, checksum, normalize_type
from .signatures import SignatureResolver
from .verified import MultiAbiLoader

logger = logging.getLogger(__name__)


def fallback_fragment(entry: FunctionEntry):
    '''Well-known fragment with the same name and exactly the same input types'''
    if not entry.resolved:
        return None
    types = [p.canonical_type for p in entry.inputs]
    for fragment in FALLBACK_FRAGMENTS:
        if fragment.name == entry.name and [normalize_type(t) for t in fragment.inputs] == types:
            return fragment
    return None


def backfill_outputs(entries: List[Entry]) -> List[Entry]:
    '''Fill empty outputs from the fallback table, resolved outputs are never replaced'''
    filled = []
    for e in entries:
        fragment = fallback_fragment(e) if isinstance(e, FunctionEntry) and not e.outputs else None
        if fragment:
            e = FunctionEntry(selector=e.selector, name=e.name, inputs=e.inputs,
                              outputs=params_from_types(fragment.outputs, 'output'),
                              mutability=fragment.stateMutability)
        filled.append(e)
    return filled


def merge_entries(own: List[Entry], *delegates: List[Entry]) -> List[Entry]:
    '''
    Proxy entries first, then delegate entries. On a key collision the
    delegate entry wins since calls reach it through delegation.
    '''
    merged = list(own)
    for entries in delegates:
        merged.extend(entries)
    return dedupe_entries(merged)


class AbiAssembler:
    '''
    Single entry point of the reconstruction pipeline. One instance serves
    one logical client (reader + chain); its cache is the only shared state.
    '''

    def __init__(self, reader: ChainReader,
                 chain_id: Optional[int] = None,
                 signature_resolver: Optional[SignatureResolver] = None,
                 abi_loader: Optional[MultiAbiLoader] = None,
                 cache: Optional[ResultCache] = None,
                 proxy_resolver: Optional[ProxyResolver] = None,
                 follow_proxies: bool = True,
                 resolve_events: bool = True,
                 max_proxy_depth: int = MAX_PROXY_DEPTH,
                 rpc_timeout: float = RPC_TIMEOUT) -> None:
        self.reader = reader
        self.chain_id = chain_id
        self.signature_resolver = signature_resolver or SignatureResolver()
        self.abi_loader = abi_loader or MultiAbiLoader()
        self.cache = cache if cache is not None else InMemoryResultCache()
        self.proxy_resolver = proxy_resolver or ProxyResolver(reader, timeout=rpc_timeout)
        self.follow_proxies = follow_proxies
        self.resolve_events = resolve_events
        self.max_proxy_depth = max_proxy_depth
        self.rpc_timeout = rpc_timeout

    def set_chain_id(self, chain_id: int) -> None:
        '''Switch the logical client to another chain, dropping cached results'''
        chain_id = int(chain_id)
        if self.chain_id is not None and chain_id != self.chain_id:
            logger.info(f'Chain ID updated from {self.chain_id} to {chain_id}, clearing cache')
            self.cache.clear()
        self.chain_id = chain_id

    def update_reader(self, reader: ChainReader, chain_id: Optional[int] = None) -> None:
        self.reader = reader
        self.proxy_resolver.reader = reader
        if chain_id is not None:
            self.set_chain_id(chain_id)

    def clear_cache(self) -> None:
        self.cache.clear()
        self.signature_resolver.clear()

    async def _chain_id(self, address: str) -> int:
        try:
            return int(await asyncio.wait_for(self.reader.chain_id(), self.rpc_timeout))
        except asyncio.TimeoutError:
            raise NoContractAtAddress(address, reason='chain id request timed out')
        except Exception as e:
            raise NoContractAtAddress(address, reason=f'chain id unavailable: {e}')

    async def assemble(self, address: str, chain_id: Optional[int] = None) -> ReconstructionResult:
        '''
        Reconstruct the interface at `address`. Raises InvalidAddress before
        any network access and NoContractAtAddress when there is no code.
        Unresolved functions are part of a normal result.
        '''
        address = checksum(address)
        if chain_id is None:
            chain_id = self.chain_id if self.chain_id is not None else await self._chain_id(address)
        self.set_chain_id(chain_id)

        cached = self.cache.get(address, chain_id)
        if cached is not None:
            logger.info(f'Using cached result for {address} on chain {chain_id}')
            return cached

        result = await self._assemble(address, chain_id, depth=0, visited=set())
        self.cache.put(address, chain_id, result, verified=result.verified)
        return result

    async def _get_code(self, address: str, chain_id: int) -> bytes:
        try:
            code = await asyncio.wait_for(self.reader.get_code(address), self.rpc_timeout)
        except asyncio.TimeoutError:
            raise NoContractAtAddress(address, chain_id, reason='bytecode request timed out')
        except NoContractAtAddress:
            raise
        except Exception as e:
            raise NoContractAtAddress(address, chain_id, reason=f'bytecode unavailable: {e}')
        if not code or code in (b'0x', '0x'):
            raise NoContractAtAddress(address, chain_id)
        return to_code(code)

    async def _from_bytecode(self, address: str, chain_id: int, code: bytes) -> List[Entry]:
        skeleton = skeleton_abi(code)
        if not skeleton:
            logger.warning(f'No dispatcher recognised in bytecode of {address}, no interface recoverable')
        entries: List[Entry] = list(await self.signature_resolver.enrich(skeleton))
        if self.resolve_events:
            topics = extract_event_topics(code)
            if topics:
                entries.extend(await self.signature_resolver.resolve_events(topics))
        return entries

    async def _assemble_delegate(self, address: str, chain_id: int, depth: int,
                                 visited: Set[str]) -> Optional[ReconstructionResult]:
        if address.lower() in visited:
            logger.info(f'Proxy cycle through {address} ignored')
            return None
        try:
            return await self._assemble(address, chain_id, depth, visited)
        except NoContractAtAddress as e:
            logger.warning(f'Delegate {address} skipped: {e}')
            return None

    async def _assemble(self, address: str, chain_id: int, depth: int,
                        visited: Set[str]) -> ReconstructionResult:
        visited.add(address.lower())

        # 1. verified lookup
        code = None
        own = None
        abi = await self.abi_loader.load_verified(address, chain_id)
        if abi:
            try:
                own = entries_from_abi(abi)
                source_kind = SOURCE_VERIFIED
            except (AttributeError, TypeError, ValueError, KeyError) as e:
                logger.warning(f'Unusable verified ABI for {address}, falling back to bytecode: {e}')
        if own is None:
            # 2. bytecode fallback
            code = await self._get_code(address, chain_id)
            own = await self._from_bytecode(address, chain_id, code)
            source_kind = SOURCE_BYTECODE
        selectors = [e.selector for e in own if isinstance(e, FunctionEntry)]

        # 3. proxy check
        proxy_info = None
        delegates: List[ReconstructionResult] = []
        if self.follow_proxies and depth < self.max_proxy_depth:
            proxy_info = await self.proxy_resolver.detect(address, selectors, code)
            if proxy_info:
                impl = await self._assemble_delegate(proxy_info.implementation_address, chain_id,
                                                     depth + 1, visited)
                if impl:
                    delegates.append(impl)
            facets = await self.proxy_resolver.detect_facets(address, selectors)
            if facets:
                logger.info(f'{address} is a diamond with {len(facets)} facets')
                proxy_info = proxy_info or ProxyInfo(kind='diamond')
                proxy_info.facets = facets
                for facet in facets:
                    result = await self._assemble_delegate(facet, chain_id, depth + 1, visited)
                    if result:
                        delegates.append(result)

        # 4. output backfill, verified outputs are authoritative
        if source_kind == SOURCE_BYTECODE:
            own = backfill_outputs(own)

        return ReconstructionResult(address=address,
                                    chain_id=chain_id,
                                    entries=merge_entries(own, *(d.entries for d in delegates)),
                                    source_kind=source_kind,
                                    proxy_info=proxy_info,
                                    selectors=selectors)
