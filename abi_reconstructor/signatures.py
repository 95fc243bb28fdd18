"""Resolve 4-byte selectors and event topics to human readable signatures."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import httpx

from .consts import MAX_CONCURRENT_LOOKUPS, SIGNATURE_TIMEOUT, SOURCE_URLS
from .fields import EventEntry, FunctionEntry, Param, params_from_types
from .shared import (RE_IDENTIFIER, SourceUnavailable, canonical_signature, event_topic,
                     find_closing, function_selector, get_in, normalize_selector,
                     normalize_topic, split_types)
from .sources import HttpSource

logger = logging.getLogger(__name__)


@dataclass
class Signature:
    name: str
    inputs: List[str]
    outputs: Optional[List[str]] = None  # None when the text had no returns clause

    @property
    def text(self) -> str:
        return canonical_signature(self.name, self.inputs)

    @property
    def selector(self) -> str:
        return function_selector(self.text)

    @property
    def topic(self) -> str:
        return event_topic(self.text)


def parse_signature(text: str) -> Signature:
    '''
    Parse `name(types)` with an optional `returns(types)` or bare `(types)`
    output clause. Nested tuples and arrays are kept intact:

    >>> parse_signature('swap((address,uint256)[],bytes) returns (uint256)')
    Signature(name='swap', inputs=['(address,uint256)[]', 'bytes'], outputs=['uint256'])
    '''
    text = text.strip()
    start = text.find('(')
    if start <= 0:
        raise ValueError(f'Not a function signature: {text!r}')
    name = text[:start].strip()
    if not RE_IDENTIFIER.match(name):
        raise ValueError(f'Invalid function name in signature: {text!r}')
    end = find_closing(text, start)
    if end < 0:
        raise ValueError(f'Unbalanced parentheses in signature: {text!r}')
    inputs = split_types(text[start + 1:end])

    rest = text[end + 1:].strip()
    outputs = None
    if rest.startswith('returns'):
        rest = rest[len('returns'):].strip()
        if not rest.startswith('('):
            raise ValueError(f'Malformed returns clause: {text!r}')
    if rest:
        if not rest.startswith('('):
            raise ValueError(f'Unexpected trailing text in signature: {text!r}')
        out_end = find_closing(rest, 0)
        if out_end != len(rest) - 1:
            raise ValueError(f'Malformed output clause: {text!r}')
        outputs = split_types(rest[1:out_end])
    return Signature(name, inputs, outputs)


class SignatureSource:
    '''A database mapping selectors/topics to candidate signature strings'''

    name = 'signatures'
    timeout = SIGNATURE_TIMEOUT

    async def lookup(self, selector: str) -> List[str]:
        '''Candidate function signatures, best first'''
        raise NotImplementedError

    async def lookup_event(self, topic: str) -> List[str]:
        return []

    async def aclose(self) -> None:
        pass


class StaticSignatureSource(SignatureSource):
    '''In-memory table, useful offline and to pin known selectors'''

    name = 'static'

    def __init__(self, functions: Optional[Dict[str, List[str]]] = None,
                 events: Optional[Dict[str, List[str]]] = None):
        self.functions = {normalize_selector(k): list(v) for k, v in (functions or {}).items()}
        self.events = {normalize_topic(k): list(v) for k, v in (events or {}).items()}

    @classmethod
    def from_signatures(cls, signatures: Iterable[str], events: Iterable[str] = ()) -> 'StaticSignatureSource':
        functions: Dict[str, List[str]] = {}
        for s in signatures:
            functions.setdefault(parse_signature(s).selector, []).append(s)
        by_topic: Dict[str, List[str]] = {}
        for s in events:
            by_topic.setdefault(parse_signature(s).topic, []).append(s)
        return cls(functions, by_topic)

    async def lookup(self, selector: str) -> List[str]:
        return self.functions.get(normalize_selector(selector), [])

    async def lookup_event(self, topic: str) -> List[str]:
        return self.events.get(normalize_topic(topic), [])


class FourByteSource(HttpSource, SignatureSource):
    """4byte.directory. Results are ranked by submission id, newest first."""

    name = '4byte'

    def __init__(self, base_url: Optional[str] = None, timeout: float = SIGNATURE_TIMEOUT,
                 client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(base_url or SOURCE_URLS.fourbyte, timeout, client)

    async def _signatures(self, path: str, hex_signature: str) -> List[str]:
        data = await self.get_json(path, params={'hex_signature': hex_signature})
        results = data.get('results') if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise SourceUnavailable(self.name, 'malformed response: no results list')
        results = [r for r in results if isinstance(r, dict) and isinstance(r.get('text_signature'), str)]
        ranked = sorted(results, key=lambda r: r.get('id') if isinstance(r.get('id'), int) else 0, reverse=True)
        return [r['text_signature'] for r in ranked if r['text_signature']]

    async def lookup(self, selector: str) -> List[str]:
        return await self._signatures('/api/v1/signatures/', normalize_selector(selector))

    async def lookup_event(self, topic: str) -> List[str]:
        return await self._signatures('/api/v1/event-signatures/', normalize_topic(topic))


class OpenChainSource(HttpSource, SignatureSource):
    """OpenChain signature database, filtered results in listed order."""

    name = 'openchain'

    def __init__(self, base_url: Optional[str] = None, timeout: float = SIGNATURE_TIMEOUT,
                 client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(base_url or SOURCE_URLS.openchain, timeout, client)

    async def _signatures(self, kind: str, key: str) -> List[str]:
        data = await self.get_json('/signature-database/v1/lookup', params={kind: key, 'filter': 'true'})
        if not isinstance(data, dict) or not data.get('ok', False):
            raise SourceUnavailable(self.name, f'malformed response: {data!r:.200}')
        matches = get_in(data, 'result', kind, key) or []
        if not isinstance(matches, list):
            raise SourceUnavailable(self.name, f'malformed response: {matches!r:.200}')
        return [m['name'] for m in matches if isinstance(m, dict) and isinstance(m.get('name'), str)]

    async def lookup(self, selector: str) -> List[str]:
        return await self._signatures('function', normalize_selector(selector))

    async def lookup_event(self, topic: str) -> List[str]:
        return await self._signatures('event', normalize_topic(topic))


def default_sources() -> List[SignatureSource]:
    return [FourByteSource(), OpenChainSource()]


def apply_signature(entry: FunctionEntry, signature: Signature) -> FunctionEntry:
    '''
    New entry carrying the resolved name and types. An advertised returns
    clause marks the function as view.
    '''
    outputs = entry.outputs
    mutability = entry.mutability
    if signature.outputs is not None:
        outputs = params_from_types(signature.outputs, 'output')
        mutability = 'view'
    return FunctionEntry(selector=entry.selector,
                         name=signature.name,
                         inputs=params_from_types(signature.inputs, 'param'),
                         outputs=outputs,
                         mutability=mutability)


def event_from_signature(signature: Signature, topic: str) -> EventEntry:
    return EventEntry(name=signature.name,
                      inputs=[Param.from_type(f'param{i}', t) for i, t in enumerate(signature.inputs)],
                      topic=topic)


class SignatureResolver:
    '''
    Tries each source in order for a selector, each call bounded by the
    source timeout. Candidates whose recomputed selector (or topic) differs
    from the one looked up are discarded. Hits are memoised per resolver,
    misses only when no source timed out or failed.
    '''

    def __init__(self, sources: Optional[List[SignatureSource]] = None,
                 max_concurrency: int = MAX_CONCURRENT_LOOKUPS) -> None:
        self.sources = list(sources) if sources is not None else default_sources()
        self.max_concurrency = max_concurrency
        self._functions: Dict[str, Optional[Signature]] = {}
        self._events: Dict[str, Optional[Signature]] = {}

    async def _query(self, source: SignatureSource, method: str, key: str) -> Optional[List[str]]:
        '''Candidates from one source, None when the source did not answer'''
        try:
            return await asyncio.wait_for(getattr(source, method)(key), source.timeout)
        except asyncio.TimeoutError:
            logger.warning(f'{source.name} timed out looking up {key}')
        except SourceUnavailable as e:
            logger.warning(f'{e}')
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning(f'{source.name} failed looking up {key}: {e}')
        except Exception as e:
            logger.warning(f'{source.name} failed looking up {key}: {e!r}')
        return None

    def _pick(self, key: str, candidates: List[str], source: str, event: bool = False) -> Optional[Signature]:
        for text in candidates:
            if not isinstance(text, str):
                logger.debug(f'Skipping non-text candidate from {source}: {text!r:.80}')
                continue
            try:
                sig = parse_signature(text)
            except ValueError as e:
                logger.debug(f'Skipping unparsable signature from {source}: {e}')
                continue
            computed = sig.topic if event else sig.selector
            if computed != key:
                logger.warning(f'Rejected {text!r} from {source}: hashes to {computed}, expected {key}')
                continue
            return sig
        return None

    async def _resolve(self, key: str, memo: Dict[str, Optional[Signature]], method: str,
                       event: bool) -> Optional[Signature]:
        if key in memo:
            return memo[key]
        sig = None
        answered = True
        for source in self.sources:
            candidates = await self._query(source, method, key)
            if candidates is None:
                answered = False
                continue
            sig = self._pick(key, candidates, source.name, event)
            if sig:
                logger.debug(f'{key} resolved to {sig.text} by {source.name}')
                break
        # a miss is only final when every source gave an answer
        if sig or answered:
            memo[key] = sig
        return sig

    def clear(self) -> None:
        '''Forget memoised lookups'''
        self._functions.clear()
        self._events.clear()

    async def resolve(self, selector: str) -> Optional[Signature]:
        return await self._resolve(normalize_selector(selector), self._functions, 'lookup', False)

    async def resolve_event(self, topic: str) -> Optional[Signature]:
        return await self._resolve(normalize_topic(topic), self._events, 'lookup_event', True)

    async def _gather(self, coros):
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(coro):
            async with semaphore:
                return await coro

        return await asyncio.gather(*(bounded(c) for c in coros))

    async def resolve_many(self, selectors: Iterable[str]) -> Dict[str, Optional[Signature]]:
        selectors = [normalize_selector(s) for s in selectors]
        found = await self._gather([self.resolve(s) for s in selectors])
        return dict(zip(selectors, found))

    async def enrich(self, entries: List[FunctionEntry]) -> List[FunctionEntry]:
        '''Resolve unresolved entries, keeping placeholders where nothing matched'''
        pending = [e.selector for e in entries if not e.resolved]
        found = await self.resolve_many(pending)
        enriched = []
        for e in entries:
            sig = found.get(e.selector)
            enriched.append(apply_signature(e, sig) if sig else e)
        unresolved = sum(1 for e in enriched if not e.resolved)
        if unresolved:
            logger.info(f'{unresolved} of {len(enriched)} selectors left unresolved')
        return enriched

    async def resolve_events(self, topics: Iterable[str]) -> List[EventEntry]:
        '''Event entries for the topics some source knows, unknown topics are dropped'''
        topics = [normalize_topic(t) for t in topics]
        found = await self._gather([self.resolve_event(t) for t in topics])
        return [event_from_signature(sig, t) for t, sig in zip(topics, found) if sig]

    async def aclose(self) -> None:
        for source in self.sources:
            await source.aclose()
