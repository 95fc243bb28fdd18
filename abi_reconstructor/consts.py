import os
import addict
from .shared import function_selector

# --- environment overrides -------------------------------------------------

DEFAULT_RPC_URL = os.getenv('ABI_RECON_RPC_URL', 'http://localhost:8545')
RPC_TIMEOUT = float(os.getenv('ABI_RECON_RPC_TIMEOUT', '10'))

# Per-call bounds for external lookups, a timed out call counts as "not found"
SIGNATURE_TIMEOUT = float(os.getenv('ABI_RECON_SIGNATURE_TIMEOUT', '3'))
VERIFIED_TIMEOUT = float(os.getenv('ABI_RECON_VERIFIED_TIMEOUT', '8'))

ETHERSCAN_API_KEY = os.getenv('ETHERSCAN_API_KEY', '')

# Unverified cache records older than this are assembled again
CACHE_MAX_AGE = float(os.getenv('ABI_RECON_CACHE_MAX_AGE', str(7 * 24 * 3600)))

MAX_PROXY_DEPTH = int(os.getenv('ABI_RECON_MAX_PROXY_DEPTH', '2'))

# Parallel selector lookups per resolver
MAX_CONCURRENT_LOOKUPS = int(os.getenv('ABI_RECON_MAX_CONCURRENT_LOOKUPS', '8'))

SOURCE_URLS = addict.Dict({
    'fourbyte':  os.getenv('ABI_RECON_FOURBYTE_URL', 'https://www.4byte.directory'),
    'openchain': os.getenv('ABI_RECON_OPENCHAIN_URL', 'https://api.openchain.xyz'),
    'sourcify':  os.getenv('ABI_RECON_SOURCIFY_URL', 'https://sourcify.dev/server'),
    'etherscan': os.getenv('ABI_RECON_ETHERSCAN_URL', 'https://api.etherscan.io'),
})

USER_AGENT = 'abi-reconstructor/0.1'

# --- result provenance -----------------------------------------------------

SOURCE_VERIFIED = 'verified'
SOURCE_BYTECODE = 'bytecode-analysis'

MUTABILITIES = ('pure', 'view', 'nonpayable', 'payable')
DEFAULT_MUTABILITY = 'nonpayable'

# --- proxy detection -------------------------------------------------------

# Checked in this order, the first slot holding a code-bearing address wins
IMPLEMENTATION_SLOTS = [
    addict.Dict(kind='eip1967', beacon=False,
                slot='0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc'),
    addict.Dict(kind='eip1967-beacon', beacon=True,
                slot='0xa3f0ad74e5423aebfd80d3ef4346578335a9a72aeaee59ff6cb3582b35133d50'),
    # keccak256("org.zeppelinos.proxy.implementation")
    addict.Dict(kind='zeppelinos', beacon=False,
                slot='0x7050c9e0f4ca769c69bd3a8ef740bc37934f8e2c036e5a723fd8ee048ed3f8c3'),
    # keccak256("PROXIABLE"), EIP-1822 UUPS
    addict.Dict(kind='eip1822', beacon=False,
                slot='0xc5f16f0fcc639fa48a6947836d9850f504798523bf8c9a3a87d5876cf622bcf7'),
    # only probed for proxy-like contracts, see ProxyResolver
    addict.Dict(kind='slot0', beacon=False, naive=True,
                slot='0x' + '00' * 32),
]

PROXY_MANAGEMENT_SIGNATURES = [
    'implementation()',
    'getImplementation()',
    'upgradeTo(address)',
    'upgradeToAndCall(address,bytes)',
    'changeAdmin(address)',
    'admin()',
    'proxiableUUID()',
    'masterCopy()',
    'facets()',
    'facetAddresses()',
    'diamondCut((address,uint8,bytes4[])[],address,bytes)',
]
PROXY_SELECTORS = frozenset(function_selector(s) for s in PROXY_MANAGEMENT_SIGNATURES)

IMPLEMENTATION_SELECTOR = function_selector('implementation()')
FACET_ADDRESSES_SELECTOR = function_selector('facetAddresses()')

# EIP-1167 minimal proxy runtime code around the 20-byte target
MINIMAL_PROXY_PREFIX = bytes.fromhex('363d3d373d3d3d363d73')
MINIMAL_PROXY_SUFFIX = bytes.fromhex('5af43d82803e903d91602b57fd5bf3')

# --- output backfill -------------------------------------------------------

def _fragment(name, inputs, outputs, mutability):
    return addict.Dict(name=name, inputs=inputs, outputs=outputs, stateMutability=mutability)

# Well-known interface fragments used to fill missing outputs. Matched by
# name and exact input types.
FALLBACK_FRAGMENTS = [
    _fragment('name',         [],                                  ['string'],  'view'),
    _fragment('symbol',       [],                                  ['string'],  'view'),
    _fragment('decimals',     [],                                  ['uint8'],   'view'),
    _fragment('totalSupply',  [],                                  ['uint256'], 'view'),
    _fragment('balanceOf',    ['address'],                         ['uint256'], 'view'),
    _fragment('allowance',    ['address', 'address'],              ['uint256'], 'view'),
    _fragment('approve',      ['address', 'uint256'],              ['bool'],    'nonpayable'),
    _fragment('transfer',     ['address', 'uint256'],              ['bool'],    'nonpayable'),
    _fragment('transferFrom', ['address', 'address', 'uint256'],   ['bool'],    'nonpayable'),
]
