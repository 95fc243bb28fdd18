from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union
from .shared import (canonical_signature, event_topic, function_selector, normalize_selector,
                     normalize_topic, normalize_type, placeholder_name, split_types, find_closing)
from .consts import DEFAULT_MUTABILITY, SOURCE_VERIFIED

KIND_FUNCTION = 'function'
KIND_EVENT = 'event'
KIND_ERROR = 'error'
KIND_OTHER = 'other'


@dataclass
class Param:
    name: str
    type:  str
    components: Optional[List['Param']] = None  # for tuple types
    indexed: Optional[bool] = None              # for event inputs
    internal_type: Optional[str] = None

    @property
    def canonical_type(self) -> str:
        if self.components is not None and self.type.startswith('tuple'):
            inner = ','.join(c.canonical_type for c in self.components)
            return f'({inner}){self.type[len("tuple"):]}'
        return normalize_type(self.type)

    @classmethod
    def from_type(cls, name: str, type_str: str, indexed: Optional[bool] = None) -> 'Param':
        '''
        Build a param from a signature type such as `(address,uint256)[]`,
        spelling tuples the JSON-ABI way (`tuple[]` plus components)
        '''
        t = normalize_type(type_str)
        if t.startswith('('):
            end = find_closing(t, 0)
            if end < 0:
                raise ValueError(f'Unbalanced tuple type: {type_str}')
            components = [cls.from_type('', c) for c in split_types(t[1:end])]
            return cls(name, 'tuple' + t[end + 1:], components=components, indexed=indexed)
        return cls(name, t, indexed=indexed)

    @classmethod
    def from_abi(cls, item: Dict[str, Any]) -> 'Param':
        components = item.get('components')
        return cls(name=item.get('name') or '',
                   type=item.get('type', ''),
                   components=[cls.from_abi(c) for c in components] if components is not None else None,
                   indexed=item.get('indexed'),
                   internal_type=item.get('internalType'))

    def to_abi(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {'name': self.name, 'type': self.type}
        if self.internal_type:
            d['internalType'] = self.internal_type
        if self.components is not None:
            d['components'] = [c.to_abi() for c in self.components]
        if self.indexed is not None:
            d['indexed'] = self.indexed
        return d


def params_from_types(types: List[str], prefix: str) -> List[Param]:
    return [Param.from_type(f'{prefix}{i}', t) for i, t in enumerate(types)]


@dataclass
class FunctionEntry:
    selector: str
    name: str = ''
    inputs:  List[Param] = field(default_factory=list)
    outputs: List[Param] = field(default_factory=list)
    mutability: str = DEFAULT_MUTABILITY

    kind = KIND_FUNCTION

    def __post_init__(self):
        self.selector = normalize_selector(self.selector)
        if not self.name:
            self.name = placeholder_name(self.selector)

    @property
    def resolved(self) -> bool:
        return self.name != placeholder_name(self.selector)

    @property
    def signature(self) -> str:
        return canonical_signature(self.name, [p.canonical_type for p in self.inputs])

    @property
    def key(self) -> Tuple[str, str]:
        return (KIND_FUNCTION, self.selector)

    def to_abi(self) -> Dict[str, Any]:
        return {
            'type': 'function',
            'name': self.name,
            'selector': self.selector,
            'inputs': [p.to_abi() for p in self.inputs],
            'outputs': [p.to_abi() for p in self.outputs],
            'stateMutability': self.mutability,
        }


@dataclass
class EventEntry:
    name: str
    inputs: List[Param] = field(default_factory=list)
    anonymous: bool = False
    topic: str = ''

    kind = KIND_EVENT

    def __post_init__(self):
        self.topic = normalize_topic(self.topic) if self.topic else event_topic(self.signature)

    @property
    def signature(self) -> str:
        return canonical_signature(self.name, [p.canonical_type for p in self.inputs])

    @property
    def key(self) -> Tuple[str, str]:
        return (KIND_EVENT, self.topic)

    def to_abi(self) -> Dict[str, Any]:
        return {
            'type': 'event',
            'name': self.name,
            'inputs': [p.to_abi() for p in self.inputs],
            'anonymous': self.anonymous,
        }


@dataclass
class ErrorEntry:
    name: str
    inputs: List[Param] = field(default_factory=list)

    kind = KIND_ERROR

    @property
    def signature(self) -> str:
        return canonical_signature(self.name, [p.canonical_type for p in self.inputs])

    @property
    def selector(self) -> str:
        return function_selector(self.signature)

    @property
    def key(self) -> Tuple[str, str]:
        return (KIND_ERROR, self.selector)

    def to_abi(self) -> Dict[str, Any]:
        return {'type': 'error', 'name': self.name, 'inputs': [p.to_abi() for p in self.inputs]}


@dataclass
class OtherEntry:
    '''constructor, fallback and receive items'''
    type: str
    inputs: List[Param] = field(default_factory=list)
    mutability: str = DEFAULT_MUTABILITY

    kind = KIND_OTHER

    @property
    def key(self) -> Tuple[str, str]:
        return (KIND_OTHER, self.type)

    def to_abi(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {'type': self.type, 'stateMutability': self.mutability}
        if self.type == 'constructor':
            d['inputs'] = [p.to_abi() for p in self.inputs]
        return d


Entry = Union[FunctionEntry, EventEntry, ErrorEntry, OtherEntry]


def _mutability_of(item: Dict[str, Any]) -> str:
    if item.get('stateMutability'):
        return item['stateMutability']
    # pre-0.5 ABIs only carry constant/payable flags
    if item.get('constant'):
        return 'view'
    if item.get('payable'):
        return 'payable'
    return DEFAULT_MUTABILITY


def entry_from_abi_item(item: Dict[str, Any]) -> Optional[Entry]:
    '''Convert one JSON-ABI item, returns None for items that carry no name'''
    kind = item.get('type', 'function')
    inputs = [Param.from_abi(p) for p in item.get('inputs') or []]
    if kind == 'function':
        if not item.get('name'):
            return None
        sig = canonical_signature(item['name'], [p.canonical_type for p in inputs])
        return FunctionEntry(selector=item.get('selector') or function_selector(sig),
                             name=item['name'],
                             inputs=inputs,
                             outputs=[Param.from_abi(p) for p in item.get('outputs') or []],
                             mutability=_mutability_of(item))
    if kind == 'event':
        if not item.get('name'):
            return None
        return EventEntry(name=item['name'], inputs=inputs, anonymous=bool(item.get('anonymous')))
    if kind == 'error':
        if not item.get('name'):
            return None
        return ErrorEntry(name=item['name'], inputs=inputs)
    return OtherEntry(type=kind, inputs=inputs, mutability=_mutability_of(item))


def entries_from_abi(abi: List[Dict[str, Any]]) -> List[Entry]:
    return dedupe_entries([e for e in map(entry_from_abi_item, abi) if e is not None])


def dedupe_entries(entries: List[Entry]) -> List[Entry]:
    '''Keeps the last entry for each (kind, selector/topic) key, in first-seen position'''
    by_key: Dict[Tuple[str, str], Entry] = {}
    for e in entries:
        by_key[e.key] = e
    return list(by_key.values())


@dataclass
class ProxyInfo:
    implementation_address: Optional[str] = None
    kind: str = ''
    facets: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'implementationAddress': self.implementation_address,
                'kind': self.kind,
                'facets': list(self.facets)}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'ProxyInfo':
        return cls(d.get('implementationAddress'), d.get('kind', ''), list(d.get('facets') or []))


@dataclass
class ReconstructionResult:
    address: str
    chain_id: int
    entries: List[Entry]
    source_kind: str
    proxy_info: Optional[ProxyInfo] = None
    selectors: List[str] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return self.source_kind == SOURCE_VERIFIED

    @property
    def functions(self) -> List[FunctionEntry]:
        return [e for e in self.entries if isinstance(e, FunctionEntry)]

    @property
    def events(self) -> List[EventEntry]:
        return [e for e in self.entries if isinstance(e, EventEntry)]

    @property
    def unresolved(self) -> List[FunctionEntry]:
        return [f for f in self.functions if not f.resolved]

    def function_by_selector(self, selector: str) -> Optional[FunctionEntry]:
        selector = normalize_selector(selector)
        for f in self.functions:
            if f.selector == selector:
                return f
        return None

    def to_abi(self) -> List[Dict[str, Any]]:
        return [e.to_abi() for e in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'chainId': self.chain_id,
            'sourceKind': self.source_kind,
            'proxyInfo': self.proxy_info.to_dict() if self.proxy_info else None,
            'selectors': list(self.selectors),
            'abi': self.to_abi(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'ReconstructionResult':
        return cls(address=d['address'],
                   chain_id=int(d['chainId']),
                   entries=entries_from_abi(d.get('abi') or []),
                   source_kind=d['sourceKind'],
                   proxy_info=ProxyInfo.from_dict(d['proxyInfo']) if d.get('proxyInfo') else None,
                   selectors=list(d.get('selectors') or []))


@dataclass
class CacheRecord:
    address: str  # lowercased
    chain_id: int
    result: ReconstructionResult
    timestamp: float
    verified: bool

    def is_fresh(self, now: float, max_age: float) -> bool:
        return self.verified or now - self.timestamp <= max_age

    def to_dict(self) -> Dict[str, Any]:
        return {'address': self.address, 'chainId': self.chain_id, 'timestamp': self.timestamp,
                'verified': self.verified, 'result': self.result.to_dict()}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'CacheRecord':
        return cls(d['address'], int(d['chainId']), ReconstructionResult.from_dict(d['result']),
                   float(d['timestamp']), bool(d['verified']))
