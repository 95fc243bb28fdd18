import unittest

from eth_abi import encode

from abi_reconstructor.consts import SOURCE_BYTECODE
from abi_reconstructor.contract import (encode_call, find_function, has_function, list_events, list_functions,
                                        prepare_write, read_contract)
from abi_reconstructor.fields import EventEntry, FunctionEntry, Param, ReconstructionResult
from abi_reconstructor.shared import AmbiguousFunctionSelection, FunctionNotFound, ReadOnlyFunction
from tests.fakes import OTHER, PROXY, TRANSFER_TOPIC, FakeReader


def token_result():
    entries = [
        FunctionEntry('0xa9059cbb', name='transfer',
                      inputs=[Param('param0', 'address'), Param('param1', 'uint256')],
                      outputs=[Param('output0', 'bool')]),
        FunctionEntry('0x70a08231', name='balanceOf', inputs=[Param('param0', 'address')],
                      outputs=[Param('output0', 'uint256')], mutability='view'),
        FunctionEntry('0xd0e30db0', name='deposit', mutability='payable'),
        FunctionEntry('0x2e1a7d4d', name='withdraw', inputs=[Param('param0', 'uint256')]),
        FunctionEntry('0x00f714ce', name='withdraw',
                      inputs=[Param('param0', 'uint256'), Param('param1', 'address')]),
        FunctionEntry('0xdd62ed3e'),
        EventEntry('Transfer', [Param('from', 'address', indexed=True), Param('to', 'address', indexed=True),
                                Param('value', 'uint256')]),
    ]
    return ReconstructionResult(PROXY, 1, entries, SOURCE_BYTECODE)


class TestFindFunction(unittest.TestCase):
    def setUp(self):
        self.result = token_result()

    def test_by_name(self):
        self.assertEqual(find_function(self.result, name='transfer').selector, '0xa9059cbb')

    def test_by_selector_and_signature(self):
        self.assertEqual(find_function(self.result, selector='2E1A7D4D').name, 'withdraw')
        func = find_function(self.result, signature='withdraw(uint256,address)')
        self.assertEqual(func.selector, '0x00f714ce')

    def test_overloads_narrowed_by_args(self):
        self.assertEqual(find_function(self.result, name='withdraw', args=[1]).selector, '0x2e1a7d4d')
        self.assertEqual(find_function(self.result, name='withdraw', args=[1, OTHER]).selector, '0x00f714ce')

    def test_ambiguous(self):
        with self.assertRaises(AmbiguousFunctionSelection) as cm:
            find_function(self.result, name='withdraw')
        self.assertEqual(cm.exception.candidates, ['withdraw(uint256)', 'withdraw(uint256,address)'])

    def test_not_found(self):
        with self.assertRaises(FunctionNotFound):
            find_function(self.result, name='mint')
        with self.assertRaises(ValueError):
            find_function(self.result)

    def test_placeholder_reachable_by_selector(self):
        self.assertEqual(find_function(self.result, selector='0xdd62ed3e').name, 'func_dd62ed3e')


class TestWrite(unittest.TestCase):
    def test_prepare_write(self):
        tx = prepare_write(token_result(), name='transfer', args=[OTHER, 5])
        self.assertEqual(tx['address'], PROXY)
        self.assertEqual(tx['function_name'], 'transfer')
        self.assertFalse(tx['payable'])
        self.assertEqual(tx['data'], '0xa9059cbb' + encode(['address', 'uint256'], [OTHER, 5]).hex())
        self.assertEqual(tx['abi'][0]['name'], 'transfer')

    def test_payable(self):
        self.assertTrue(prepare_write(token_result(), name='deposit')['payable'])

    def test_read_only_rejected(self):
        with self.assertRaises(ReadOnlyFunction):
            prepare_write(token_result(), name='balanceOf', args=[OTHER])

    def test_wrong_argument_count(self):
        with self.assertRaises(ValueError):
            encode_call(find_function(token_result(), name='transfer'), [OTHER])


class TestRead(unittest.IsolatedAsyncioTestCase):
    async def test_decoded_output(self):
        result = token_result()
        data = encode_call(find_function(result, name='balanceOf'), [OTHER])
        reader = FakeReader(calls={(PROXY, data.hex()): encode(['uint256'], [1234])})
        self.assertEqual(await read_contract(reader, result, 'balanceOf', [OTHER]), 1234)

    async def test_unknown_outputs_returned_raw(self):
        result = token_result()
        raw = encode(['uint256'], [7])
        reader = FakeReader(calls={(PROXY, 'dd62ed3e'): raw})
        self.assertEqual(await read_contract(reader, result, selector='0xdd62ed3e'), '0x' + raw.hex())


class TestListing(unittest.TestCase):
    def test_list_functions(self):
        listed = {f['selector']: f for f in list_functions(token_result())}
        self.assertEqual(listed['0xa9059cbb']['signature'], 'transfer(address,uint256)')
        self.assertEqual(listed['0x70a08231']['outputs'], [{'name': 'output0', 'type': 'uint256'}])
        self.assertEqual(listed['0xdd62ed3e']['inputs'], [])

    def test_events_and_membership(self):
        result = token_result()
        self.assertEqual(list_events(result), ['Transfer'])
        self.assertEqual(result.events[0].topic, '0x' + TRANSFER_TOPIC)
        self.assertTrue(has_function(result, 'deposit'))
        self.assertFalse(has_function(result, 'mint'))
