"""Read/write helpers on top of a reconstructed interface."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from eth_abi import decode, encode

from .fields import FunctionEntry, ReconstructionResult
from .reader import ChainReader
from .shared import (AmbiguousFunctionSelection, FunctionNotFound, ReadOnlyFunction,
                     canonical_signature, normalize_selector, to_bytes)
from .signatures import parse_signature

logger = logging.getLogger(__name__)


def find_function(result: ReconstructionResult, name: Optional[str] = None,
                  signature: Optional[str] = None, selector: Optional[str] = None,
                  args: Optional[Sequence[Any]] = None) -> FunctionEntry:
    '''
    Selector beats signature beats name. Overloads sharing a name are
    narrowed by argument count; if that still leaves several the selection
    is ambiguous.
    '''
    functions = result.functions
    if selector:
        selector = normalize_selector(selector)
        found = [f for f in functions if f.selector == selector]
    elif signature:
        sig = parse_signature(signature)
        text = canonical_signature(sig.name, sig.inputs)
        found = [f for f in functions if f.signature == text]
    elif name:
        found = [f for f in functions if f.name == name]
        if len(found) > 1:
            argc = len(args or [])
            by_args = [f for f in found if len(f.inputs) == argc]
            if len(by_args) != 1:
                raise AmbiguousFunctionSelection(name, [f.signature for f in found])
            found = by_args
    else:
        raise ValueError('One of name, signature or selector is required')

    if not found:
        raise FunctionNotFound(f'Function {selector or signature or name} not found in contract ABI')
    return found[0]


def encode_call(func: FunctionEntry, args: Optional[Sequence[Any]] = None) -> bytes:
    args = list(args or [])
    types = [p.canonical_type for p in func.inputs]
    if len(args) != len(types):
        raise ValueError(f'{func.signature} takes {len(types)} arguments, {len(args)} given')
    return to_bytes(func.selector) + encode(types, args)


def serialize_value(value: Any) -> Any:
    '''JSON friendly form of decoded values: bytes as hex, tuples as lists'''
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    return value


async def read_contract(reader: ChainReader, result: ReconstructionResult, name: Optional[str] = None,
                        args: Optional[Sequence[Any]] = None, signature: Optional[str] = None,
                        selector: Optional[str] = None) -> Any:
    '''
    Call a function and decode its return value. A single output is
    unwrapped. With unknown outputs the raw return data is given as hex.
    '''
    func = find_function(result, name=name, signature=signature, selector=selector, args=args)
    raw = await reader.call(result.address, encode_call(func, args))
    if not func.outputs:
        logger.debug(f'{func.signature} has no known outputs, returning raw data')
        return serialize_value(raw)
    decoded = decode([p.canonical_type for p in func.outputs], raw)
    if len(decoded) == 1:
        return decoded[0]
    return list(decoded)


def prepare_write(result: ReconstructionResult, name: Optional[str] = None,
                  args: Optional[Sequence[Any]] = None, signature: Optional[str] = None,
                  selector: Optional[str] = None) -> Dict[str, Any]:
    '''Transaction fields for a state changing call, nothing is sent'''
    func = find_function(result, name=name, signature=signature, selector=selector, args=args)
    if func.mutability in ('view', 'pure'):
        raise ReadOnlyFunction(f'Function {func.signature} is read-only and cannot be written to')
    return {
        'address': result.address,
        'abi': [func.to_abi()],
        'function_name': func.name,
        'args': list(args or []),
        'data': '0x' + encode_call(func, args).hex(),
        'payable': func.mutability == 'payable',
    }


def list_functions(result: ReconstructionResult) -> List[Dict[str, Any]]:
    return [{
        'name': f.name,
        'signature': f.signature,
        'selector': f.selector,
        'inputs': [{'name': p.name, 'type': p.canonical_type} for p in f.inputs],
        'outputs': [{'name': p.name or f'output{i}', 'type': p.canonical_type} for i, p in enumerate(f.outputs)],
        'stateMutability': f.mutability,
    } for f in result.functions]


def list_events(result: ReconstructionResult) -> List[str]:
    return [e.name for e in result.events]


def has_function(result: ReconstructionResult, name: str) -> bool:
    return any(f.name == name for f in result.functions)
