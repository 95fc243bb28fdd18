from .assembler import AbiAssembler, backfill_outputs, merge_entries
from .abi import extract_selectors, skeleton_abi, abi_from_binary, extract_event_topics
from .cache import InMemoryResultCache, JsonFileResultCache, ResultCache
from .fields import (FunctionEntry, EventEntry, ErrorEntry, OtherEntry, Param, ProxyInfo,
                     ReconstructionResult, CacheRecord)
from .proxy import ProxyResolver
from .reader import ChainReader, Web3Reader
from .shared import (AbiReconstructionError, InvalidAddress, NoContractAtAddress, SourceUnavailable,
                     AmbiguousFunctionSelection, FunctionNotFound, ReadOnlyFunction)
from .signatures import (SignatureResolver, SignatureSource, FourByteSource, OpenChainSource,
                         StaticSignatureSource, parse_signature)
from .verified import MultiAbiLoader, SourcifyLoader, EtherscanLoader

__version__ = '0.1.0'
