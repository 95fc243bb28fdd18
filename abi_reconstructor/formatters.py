import json
import re
from pprint import pformat
from .fields import ReconstructionResult


def format_json(result: ReconstructionResult, indent: int = 2) -> str:
    return json.dumps(result.to_abi(), indent=indent)


def constant_name(address: str) -> str:
    '''`0xAbCd...` -> `CONTRACT_ABCDEF_ABI`, always a valid identifier'''
    short = re.sub(r'[^0-9a-zA-Z]', '', address[2:8] if address.startswith('0x') else address[:6])
    return f'CONTRACT_{short.upper()}_ABI'


def format_python(result: ReconstructionResult) -> str:
    name = constant_name(result.address)
    lines = [
        f'# ABI for contract at {result.address} (chain {result.chain_id}, {result.source_kind})',
    ]
    if result.proxy_info and result.proxy_info.implementation_address:
        lines.append(f'# Proxy for implementation {result.proxy_info.implementation_address}')
    lines += [
        f'{name} = {pformat(result.to_abi(), indent=1, width=100, sort_dicts=False)}',
        '',
        '# Example with web3.py:',
        '# from web3 import Web3',
        '# w3 = Web3(Web3.HTTPProvider(RPC_URL))',
        f"# contract = w3.eth.contract(address='{result.address}', abi={name})",
        '',
    ]
    return '\n'.join(lines)


FORMATTERS = {
    'json': format_json,
    'python': format_python,
}
