import unittest
from types import SimpleNamespace

from abi_reconstructor.reader import Web3Reader, slot_to_int
from tests.fakes import EIP1967_SLOT, IMPL


class FakeEth:
    def __init__(self):
        self.calls = []

    async def get_code(self, address, block_identifier=None):
        self.calls.append(('get_code', address, block_identifier))
        return bytes.fromhex('6080')

    async def get_storage_at(self, address, slot, block_identifier=None):
        self.calls.append(('get_storage_at', address, slot, block_identifier))
        return b'\x01'

    async def call(self, tx, block_identifier=None):
        self.calls.append(('call', tx['to'], tx['data'], block_identifier))
        return '0x' + '00' * 31 + '2a'


class AwaitableChainId:
    def __await__(self):
        yield from []
        return 137


class TestWeb3Reader(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.eth = FakeEth()
        self.eth.chain_id = AwaitableChainId()
        self.reader = Web3Reader(w3=SimpleNamespace(eth=self.eth, provider=SimpleNamespace()))

    async def test_reads_at_latest(self):
        self.assertEqual(await self.reader.get_code(IMPL), b'\x60\x80')
        word = await self.reader.get_storage_at(IMPL, EIP1967_SLOT)
        self.assertEqual(word, b'\x00' * 31 + b'\x01')
        self.assertEqual(await self.reader.call(IMPL, b'\x5c\x60\xda\x1b'), b'\x00' * 31 + b'\x2a')
        self.assertEqual(await self.reader.chain_id(), 137)
        self.assertTrue(all(c[-1] == 'latest' for c in self.eth.calls))
        self.assertEqual(self.eth.calls[1][2], slot_to_int(EIP1967_SLOT))

    async def test_aclose_without_disconnect(self):
        await self.reader.aclose()

    def test_slot_to_int(self):
        self.assertEqual(slot_to_int(0), 0)
        self.assertEqual(slot_to_int('0x10'), 16)
