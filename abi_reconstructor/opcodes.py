from typing import Iterator, Tuple, Union

byte_to_name = {
    0x00: 'STOP',
    0x01: 'ADD',
    0x02: 'MUL',
    0x03: 'SUB',
    0x04: 'DIV',
    0x05: 'SDIV',
    0x06: 'MOD',
    0x07: 'SMOD',
    0x08: 'ADDMOD',
    0x09: 'MULMOD',
    0x0a: 'EXP',
    0x0b: 'SIGNEXTEND',
    0x10: 'LT',
    0x11: 'GT',
    0x12: 'SLT',
    0x13: 'SGT',
    0x14: 'EQ',
    0x15: 'ISZERO',
    0x16: 'AND',
    0x17: 'OR',
    0x18: 'XOR',
    0x19: 'NOT',
    0x1a: 'BYTE',
    0x1b: 'SHL',
    0x1c: 'SHR',
    0x1d: 'SAR',
    0x20: 'SHA3',
    0x30: 'ADDRESS',
    0x31: 'BALANCE',
    0x32: 'ORIGIN',
    0x33: 'CALLER',
    0x34: 'CALLVALUE',
    0x35: 'CALLDATALOAD',
    0x36: 'CALLDATASIZE',
    0x37: 'CALLDATACOPY',
    0x38: 'CODESIZE',
    0x39: 'CODECOPY',
    0x3a: 'GASPRICE',
    0x3b: 'EXTCODESIZE',
    0x3c: 'EXTCODECOPY',
    0x3d: 'RETURNDATASIZE',
    0x3e: 'RETURNDATACOPY',
    0x3f: 'EXTCODEHASH',
    0x40: 'BLOCKHASH',
    0x41: 'COINBASE',
    0x42: 'TIMESTAMP',
    0x43: 'NUMBER',
    0x44: 'PREVRANDAO',
    0x45: 'GASLIMIT',
    0x46: 'CHAINID',
    0x47: 'SELFBALANCE',
    0x48: 'BASEFEE',
    0x49: 'BLOBHASH',
    0x4a: 'BLOBBASEFEE',
    0x50: 'POP',
    0x51: 'MLOAD',
    0x52: 'MSTORE',
    0x53: 'MSTORE8',
    0x54: 'SLOAD',
    0x55: 'SSTORE',
    0x56: 'JUMP',
    0x57: 'JUMPI',
    0x58: 'PC',
    0x59: 'MSIZE',
    0x5a: 'GAS',
    0x5b: 'JUMPDEST',
    0x5c: 'TLOAD',
    0x5d: 'TSTORE',
    0x5e: 'MCOPY',
    0x5f: 'PUSH0',
    0xf0: 'CREATE',
    0xf1: 'CALL',
    0xf2: 'CALLCODE',
    0xf3: 'RETURN',
    0xf4: 'DELEGATECALL',
    0xf5: 'CREATE2',
    0xfa: 'STATICCALL',
    0xfd: 'REVERT',
    0xfe: 'INVALID',
    0xff: 'SELFDESTRUCT',
}

for _i in range(32):
    byte_to_name[0x60 + _i] = f'PUSH{_i + 1}'
for _i in range(16):
    byte_to_name[0x80 + _i] = f'DUP{_i + 1}'
    byte_to_name[0x90 + _i] = f'SWAP{_i + 1}'
for _i in range(5):
    byte_to_name[0xa0 + _i] = f'LOG{_i}'

name_to_byte = {v: k for k, v in byte_to_name.items()}

# Opcodes after which execution never falls through to the next instruction
HALTING = frozenset(('STOP', 'JUMP', 'RETURN', 'REVERT', 'INVALID', 'SELFDESTRUCT'))


def push_size(opcode: int) -> int:
    '''Number of immediate bytes following a PUSHn opcode, 0 otherwise'''
    if 0x60 <= opcode <= 0x7f:
        return opcode - 0x5f
    return 0


def disassemble(code: Union[bytes, str]) -> Iterator[Tuple[int, str, bytes]]:
    '''
    Yields (pc, opcode name, push data) for each instruction. Unknown
    opcodes are reported as `UNKNOWN_0x..`.
    '''
    if isinstance(code, str):
        code = bytes.fromhex(code[2:] if code.startswith('0x') else code)
    pc = 0
    while pc < len(code):
        op = code[pc]
        size = push_size(op)
        name = byte_to_name.get(op, f'UNKNOWN_{op:#04x}')
        yield pc, name, code[pc + 1: pc + 1 + size]
        pc += 1 + size


def decode_and_print(data: str):
    for pc, name, value in disassemble(data.strip()):
        if value:
            print(f'{pc:06x}  {name} 0x{value.hex()}')
        else:
            print(f'{pc:06x}  {name}')
