# Guess the external interface from deployed (runtime) bytecode.
#
# Function selectors follow the dispatcher pattern PUSH4 [4-byte selector] EQ ... JUMPI
# emitted by solc. Example from https://ethervm.io/decompile/0x5a98fcbea516cf06857215779fd812ca3bef1b32:
#
# label_000D:
# 	000D    63  PUSH4 0xffffffff
# 	0012    7C  PUSH29 0x0100000000000000000000000000000000000000000000000000000000
# 	0030    60  PUSH1 0x00
# 	0032    35  CALLDATALOAD
# 	0033    04  DIV
# 	0034    16  AND
# 	0035    63  PUSH4 0x06fdde03
# 	003A    81  DUP2
# 	003B    14  EQ
# 	003C    61  PUSH2 0x0225
# 	003F    57  *JUMPI
#
# label_0040:
# 	0040    80  DUP1
# 	0041    63  PUSH4 0x095ea7b3
# 	0046    14  EQ
# 	0047    61  PUSH2 0x02af
# 	004A    57  *JUMPI
#
# The jump target of each comparison is the function's entry block. solc guards
# non-payable functions with CALLVALUE DUP1 ISZERO PUSH2 JUMPI at the start of that
# block, or once before the dispatcher when no function is payable:
#
# label_0225:
# 	0225    5B  JUMPDEST
# 	0226    34  CALLVALUE
# 	0227    80  DUP1
# 	0228    15  ISZERO
# 	0229    61  PUSH2 0x0231
# 	022C    57  *JUMPI

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Union
from eth_utils import to_checksum_address

from . import opcodes
from .fields import FunctionEntry
from .consts import MINIMAL_PROXY_PREFIX, MINIMAL_PROXY_SUFFIX
from .shared import NoContractAtAddress, to_bytes

MASK_SELECTOR = 'ffffffff'

# How far (in bytes) a comparison and its JUMPI may sit from the pushed selector
WINDOW_SIZE = 20

# Number of instructions inspected at the top of a function entry block
ENTRY_BLOCK_SCAN = 8

Bytecode = Union[bytes, bytearray, str]


@dataclass
class DispatchTable:
    selectors: List[str] = field(default_factory=list)   # '0x' prefixed, first-seen order
    targets: Dict[str, int] = field(default_factory=dict)
    global_callvalue_guard: bool = False


def to_code(bytecode: Optional[Bytecode]) -> bytes:
    '''Normalise bytecode input, empty code means there is no contract'''
    try:
        code = to_bytes(bytecode)
    except ValueError as e:
        raise NoContractAtAddress('<bytecode>', reason=f'malformed bytecode: {e}')
    if not code:
        raise NoContractAtAddress('<bytecode>', reason='empty bytecode')
    return code


def scan_dispatcher(code: bytes, window_size: int = WINDOW_SIZE) -> DispatchTable:
    table = DispatchTable()
    seen: Set[str] = set()
    length = len(code)
    i = 0
    seen_calldataload = False
    prev_name = None
    window_start, confidence, candidate, target = (None, 0, '', None)

    while i < length:
        op = code[i]
        name = opcodes.byte_to_name.get(op)
        pc = i
        i += 1

        # ignore unknown opcode
        if not name:
            prev_name = None
            continue

        if name.startswith('PUSH') and name != 'PUSH0':
            datasize = int(name[4:])
            data = code[i: i + datasize]
            # selectors with a leading zero byte are pushed with PUSH3
            if datasize in (3, 4) and seen_calldataload:
                candidate = data.rjust(4, b'\x00').hex()
                window_start = pc
                confidence = 1
                target = None
            elif window_start is not None and datasize in (1, 2, 3):
                target = int.from_bytes(data, 'big') if data else None
            i += datasize
        elif name == 'CALLDATALOAD':
            seen_calldataload = True
        elif name == 'CALLVALUE' and not seen_calldataload and not table.selectors:
            table.global_callvalue_guard = True
        elif name == 'EQ' and window_start is not None:
            confidence += 1
        elif name == 'JUMPI' and window_start is not None:
            if confidence > 1 and candidate != MASK_SELECTOR:
                selector = '0x' + candidate
                if selector not in seen:
                    seen.add(selector)
                    table.selectors.append(selector)
                    if target is not None and prev_name and prev_name.startswith('PUSH'):
                        table.targets[selector] = target
            window_start, confidence, candidate, target = (None, 0, '', None)

        if window_start is not None and i - window_start > window_size:
            window_start, confidence, candidate, target = (None, 0, '', None)
        prev_name = name

    return table


def _entry_has_callvalue_guard(code: bytes, target: int) -> Optional[bool]:
    '''
    True/False when the entry block at `target` could be inspected,
    None when `target` is not a JUMPDEST
    '''
    if target >= len(code) or code[target] != opcodes.name_to_byte['JUMPDEST']:
        return None
    for n, (_pc, name, _value) in enumerate(opcodes.disassemble(code[target + 1:])):
        if name == 'CALLVALUE':
            return True
        if n >= ENTRY_BLOCK_SCAN or name in opcodes.HALTING or name in ('JUMPI', 'JUMPDEST'):
            break
    return False


def guess_mutability(code: bytes, table: DispatchTable, selector: str) -> str:
    if table.global_callvalue_guard:
        return 'nonpayable'
    target = table.targets.get(selector)
    if target is None:
        return 'nonpayable'
    guarded = _entry_has_callvalue_guard(code, target)
    if guarded is False:
        return 'payable'
    return 'nonpayable'


def extract_selectors(bytecode: Bytecode) -> List[str]:
    '''
    Selectors the contract dispatches on, `0x` prefixed and in the order
    they appear in the dispatcher. An unrecognised dispatcher gives an
    empty list, empty bytecode raises NoContractAtAddress.
    '''
    return scan_dispatcher(to_code(bytecode)).selectors


def skeleton_abi(bytecode: Bytecode) -> List[FunctionEntry]:
    '''One unresolved function entry per selector, with a guessed mutability'''
    code = to_code(bytecode)
    table = scan_dispatcher(code)
    return [FunctionEntry(selector=s, mutability=guess_mutability(code, table, s))
            for s in table.selectors]


def abi_from_binary(binary: str, window_size=WINDOW_SIZE) -> Set[str]:
    '''Selector hex strings (without 0x) found in a hex encoded binary'''
    if not binary or binary in ('0x', '0X'):
        return set()
    table = scan_dispatcher(to_code(binary), window_size)
    return {s[2:] for s in table.selectors}


def extract_event_topics(bytecode: Bytecode) -> List[str]:
    '''
    Event topic hashes: the last PUSH32 of a basic block that is
    consumed by a LOG1..LOG4 of the same block
    '''
    code = to_code(bytecode)
    topics: List[str] = []
    last_push32 = None
    for _pc, name, value in opcodes.disassemble(code):
        if name == 'JUMPDEST':
            last_push32 = None
        elif name == 'PUSH32':
            last_push32 = value
        elif name in ('LOG1', 'LOG2', 'LOG3', 'LOG4') and last_push32:
            topic = '0x' + last_push32.hex()
            if topic not in topics and last_push32.rjust(32, b'\x00') != b'\xff' * 32:
                topics.append(topic)
            last_push32 = None
    return topics


def minimal_proxy_target(bytecode: Bytecode) -> Optional[str]:
    '''Delegation target of an EIP-1167 clone, None for any other code'''
    try:
        code = to_code(bytecode)
    except NoContractAtAddress:
        return None
    prefix, suffix = MINIMAL_PROXY_PREFIX, MINIMAL_PROXY_SUFFIX
    if len(code) != len(prefix) + 20 + len(suffix):
        return None
    if not (code.startswith(prefix) and code.endswith(suffix)):
        return None
    return to_checksum_address('0x' + code[len(prefix): len(prefix) + 20].hex())
