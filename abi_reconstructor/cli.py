#!/usr/bin/env python3
import argparse
import asyncio
import logging
import sys
from . import opcodes
from .abi import extract_selectors
from .assembler import AbiAssembler
from .cache import JsonFileResultCache
from .formatters import FORMATTERS
from .reader import Web3Reader
from .shared import AbiReconstructionError
from .verified import EtherscanLoader, MultiAbiLoader, SourcifyLoader
from .consts import DEFAULT_RPC_URL


async def reconstruct(args) -> str:
    reader = Web3Reader(args.rpc)
    loader = MultiAbiLoader([SourcifyLoader(), EtherscanLoader(api_key=args.etherscan_key)])
    cache = JsonFileResultCache(args.cache) if args.cache else None
    assembler = AbiAssembler(reader, chain_id=args.chain_id, abi_loader=loader, cache=cache,
                             follow_proxies=not args.no_proxies)
    try:
        result = await assembler.assemble(args.address)
    finally:
        await assembler.signature_resolver.aclose()
        await loader.aclose()
        await reader.aclose()
    return FORMATTERS[args.format](result)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Reconstruct contract ABIs from verified sources or bytecode.')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='More logging (-vv for debug)')
    subparsers = parser.add_subparsers(dest='command', help='Subcommands')

    abi_parser = subparsers.add_parser('abi', help='Reconstruct the ABI of a deployed contract')
    abi_parser.add_argument('address', type=str, help='Contract address')
    abi_parser.add_argument('--rpc', type=str, default=DEFAULT_RPC_URL, help='JSON-RPC endpoint')
    abi_parser.add_argument('--chain-id', type=int, default=None, help='Chain id, queried from the RPC when omitted')
    abi_parser.add_argument('--format', choices=sorted(FORMATTERS), default='json')
    abi_parser.add_argument('--cache', type=str, default=None, help='JSON file used as result cache')
    abi_parser.add_argument('--etherscan-key', type=str, default=None, help='Etherscan API key')
    abi_parser.add_argument('--no-proxies', action='store_true', help='Do not follow proxy implementations')

    selectors_parser = subparsers.add_parser('selectors', help='List dispatcher selectors of runtime bytecode')
    selectors_parser.add_argument('data', type=str, help='Runtime bytecode as hex')

    decode_parser = subparsers.add_parser('decode_binary', aliases=['dp'], help='Decode binary data')
    decode_parser.add_argument('data', type=str, help='Binary data to decode')

    args = parser.parse_args(argv)
    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    try:
        if args.command == 'abi':
            print(asyncio.run(reconstruct(args)))
        elif args.command == 'selectors':
            for selector in extract_selectors(args.data):
                print(selector)
        elif args.command in ['decode_binary', 'dp']:
            opcodes.decode_and_print(args.data)
        else:
            parser.print_help()
            return 1
    except AbiReconstructionError as e:
        print(f'error: {e}', file=sys.stderr)
        return 2
    return 0

if __name__ == "__main__":
    sys.exit(main())
