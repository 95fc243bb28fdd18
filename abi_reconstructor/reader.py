"""Minimal chain read capability the pipeline depends on."""

from typing import Optional, Union

from web3 import AsyncWeb3

from .consts import DEFAULT_RPC_URL, RPC_TIMEOUT
from .shared import checksum, to_bytes

Slot = Union[int, str]


def slot_to_int(slot: Slot) -> int:
    return slot if isinstance(slot, int) else int(slot, 16)


class ChainReader:
    '''
    Every parameter is required and non-null. Chain specific quirks
    belong in the implementation, not in the pipeline.
    '''

    async def get_code(self, address: str) -> bytes:
        raise NotImplementedError

    async def get_storage_at(self, address: str, slot: Slot) -> bytes:
        raise NotImplementedError

    async def call(self, address: str, data: bytes) -> bytes:
        raise NotImplementedError

    async def chain_id(self) -> int:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class Web3Reader(ChainReader):
    '''ChainReader over a web3 async HTTP provider, all reads at `latest`'''

    def __init__(self, rpc_url: Optional[str] = None, timeout: float = RPC_TIMEOUT,
                 w3: Optional[AsyncWeb3] = None, block_identifier: str = 'latest'):
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url or DEFAULT_RPC_URL,
                                                              request_kwargs={'timeout': timeout}))
        self.block_identifier = block_identifier

    async def get_code(self, address: str) -> bytes:
        code = await self.w3.eth.get_code(checksum(address, allow_zero=True),
                                          block_identifier=self.block_identifier)
        return to_bytes(code)

    async def get_storage_at(self, address: str, slot: Slot) -> bytes:
        word = await self.w3.eth.get_storage_at(checksum(address, allow_zero=True), slot_to_int(slot),
                                                block_identifier=self.block_identifier)
        return to_bytes(word).rjust(32, b'\x00')

    async def call(self, address: str, data: bytes) -> bytes:
        result = await self.w3.eth.call({'to': checksum(address, allow_zero=True), 'data': data},
                                        block_identifier=self.block_identifier)
        return to_bytes(result)

    async def chain_id(self) -> int:
        return int(await self.w3.eth.chain_id)

    async def aclose(self) -> None:
        # web3 >= 7 providers hold an aiohttp session
        disconnect = getattr(self.w3.provider, 'disconnect', None)
        if disconnect is not None:
            await disconnect()
