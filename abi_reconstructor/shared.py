import re
from typing import Any, List, Optional, Tuple, Union
from Crypto.Hash import keccak
from eth_utils import is_address, to_checksum_address

ZERO_ADDRESS = '0x' + '00' * 20

RE_IDENTIFIER = re.compile(r'^[A-Za-z_$][A-Za-z0-9_$]*$')
RE_SELECTOR = re.compile(r'^(0x)?[0-9a-fA-F]{8}$')
RE_TOPIC = re.compile(r'^(0x)?[0-9a-fA-F]{64}$')

# Shorthand types solc accepts but which are never part of a canonical signature
RE_UINT_ALIAS = re.compile(r'\buint\b(?!\d)')
RE_INT_ALIAS = re.compile(r'\bint\b(?!\d)')
RE_BYTE_ALIAS = re.compile(r'\bbyte\b')
RE_TUPLE_KEYWORD = re.compile(r'\btuple\s*\(')

BRACKETS = {'(': ')', '[': ']'}


class AbiReconstructionError(ValueError):
    pass


class InvalidAddress(AbiReconstructionError):
    def __init__(self, address: Any):
        super().__init__(f'Invalid contract address: {address!r}')
        self.address = address


class NoContractAtAddress(AbiReconstructionError):
    def __init__(self, address: str, chain_id: Optional[int] = None, reason: Optional[str] = None):
        msg = f'No contract found at address {address}'
        if chain_id is not None:
            msg += f' on chain {chain_id}'
        if reason:
            msg += f': {reason}'
        super().__init__(msg)
        self.address = address
        self.chain_id = chain_id


class SourceUnavailable(AbiReconstructionError):
    '''Raised by a single lookup source. Never leaves the pipeline.'''
    def __init__(self, source: str, reason: Any = None):
        super().__init__(f'{source} unavailable: {reason}')
        self.source = source
        self.reason = reason


class AmbiguousFunctionSelection(AbiReconstructionError):
    def __init__(self, name: str, candidates: List[str]):
        super().__init__(f'Multiple functions named "{name}" found ({", ".join(candidates)}). '
                         'Please provide signature or selector to specify which one.')
        self.name = name
        self.candidates = candidates


class FunctionNotFound(AbiReconstructionError):
    pass


class ReadOnlyFunction(AbiReconstructionError):
    pass


def keccak256(s: Union[str, bytes]) -> str:
    k = keccak.new(digest_bits=256)
    k.update(s.encode() if isinstance(s, str) else s)
    return k.hexdigest()


def get_by_index(lst: Union[List, Tuple], idx: int):
    '''Get by index from a list, returns None if the index is out of range '''
    if len(lst) > idx:
        return lst[idx]
    return None


def get_in(d, key: Any, *nkeys) -> Any:
    '''Get in nested datastructure by keys. Only dictionary, tuple and
    list are supported'''
    try:
        nd = d.get(key)
    except Exception:
        if type(key) is int:
            nd = get_by_index(d, key)
        else:
            return None
    if len(nkeys) > 0 and nd:
        return get_in(nd, *nkeys)
    return nd


def strip_0x(s: str) -> str:
    return s[2:] if s[:2] in ('0x', '0X') else s


def to_bytes(data: Union[str, bytes, bytearray, None]) -> bytes:
    '''
    Convert hex strings (with or without 0x) and bytes-like values
    (including HexBytes) to plain bytes
    '''
    if data is None:
        return b''
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    hex_str = strip_0x(data.strip())
    if len(hex_str) % 2:
        hex_str = '0' + hex_str
    return bytes.fromhex(hex_str)


def normalize_selector(selector: str) -> str:
    '''Selectors are always `0x` + 8 lowercase hex chars'''
    if not isinstance(selector, str) or not RE_SELECTOR.match(selector):
        raise ValueError(f'Invalid function selector: {selector!r}')
    return '0x' + strip_0x(selector).lower()


def normalize_topic(topic: str) -> str:
    if not isinstance(topic, str) or not RE_TOPIC.match(topic):
        raise ValueError(f'Invalid event topic: {topic!r}')
    return '0x' + strip_0x(topic).lower()


def placeholder_name(selector: str) -> str:
    return f'func_{strip_0x(normalize_selector(selector))}'


def is_valid_address(address: Any) -> bool:
    return isinstance(address, str) and is_address(address)


def checksum(address: Any, allow_zero: bool = False) -> str:
    '''
    Returns the checksummed form of `address`, raises InvalidAddress on
    malformed input. The zero address is rejected unless `allow_zero`.
    '''
    if not is_valid_address(address):
        raise InvalidAddress(address)
    if not allow_zero and address.lower() == ZERO_ADDRESS:
        raise InvalidAddress(address)
    return to_checksum_address(address)


def address_from_word(word: Union[str, bytes, None]) -> Optional[str]:
    '''
    Take the low 20 bytes of a 32-byte storage word or return value.
    Returns None for empty or zero words.
    '''
    raw = to_bytes(word)
    if not raw or not any(raw):
        return None
    raw = raw.rjust(32, b'\x00')[-20:]
    if not any(raw):
        return None
    return to_checksum_address('0x' + raw.hex())


def normalize_type(t: str) -> str:
    '''
    Canonical form of an ABI type string, e.g.
    `tuple(uint,address)[]` -> `(uint256,address)[]`
    '''
    t = re.sub(r'\s+', '', t)
    t = RE_TUPLE_KEYWORD.sub('(', t)
    t = RE_UINT_ALIAS.sub('uint256', t)
    t = RE_INT_ALIAS.sub('int256', t)
    return RE_BYTE_ALIAS.sub('bytes1', t)


def find_closing(s: str, start: int) -> int:
    '''
    Index of the bracket closing the one opened at `start`, -1 when
    the brackets are unbalanced
    '''
    stack = []
    for i in range(start, len(s)):
        c = s[i]
        if c in BRACKETS:
            stack.append(BRACKETS[c])
        elif c in (')', ']'):
            if not stack or stack.pop() != c:
                return -1
            if not stack:
                return i
    return -1


def split_types(params: str) -> List[str]:
    '''
    Split a parameter list on top-level commas only:
    `(uint256,address)[],bytes` -> ['(uint256,address)[]', 'bytes']
    '''
    params = params.strip()
    if not params:
        return []
    types = []
    depth = 0
    current = ''
    for c in params:
        if c in '([':
            depth += 1
        elif c in ')]':
            depth -= 1
            if depth < 0:
                raise ValueError(f'Unbalanced brackets in parameter list: {params}')
        if c == ',' and depth == 0:
            types.append(current.strip())
            current = ''
        else:
            current += c
    if depth != 0:
        raise ValueError(f'Unbalanced brackets in parameter list: {params}')
    types.append(current.strip())
    if any(not t for t in types):
        raise ValueError(f'Empty type in parameter list: {params}')
    return types


def canonical_signature(name: str, types: List[str]) -> str:
    return f"{name}({','.join(normalize_type(t) for t in types)})"


def function_selector(signature: str) -> str:
    return '0x' + keccak256(signature)[:8]


def event_topic(signature: str) -> str:
    return '0x' + keccak256(signature)
