import unittest
from abi_reconstructor.abi import (abi_from_binary, extract_event_topics, extract_selectors,
                                   minimal_proxy_target, scan_dispatcher, skeleton_abi)
from abi_reconstructor.shared import NoContractAtAddress
from tests.fakes import (ERC20_SELECTORS, IMPL, TRANSFER_TOPIC, assemble_code, dispatcher_bytecode,
                         minimal_proxy_bytecode)


class TestExtractSelectors(unittest.TestCase):
    def test_dispatcher_order(self):
        selectors = list(ERC20_SELECTORS.values())
        code = dispatcher_bytecode(selectors)
        self.assertEqual(extract_selectors(code), ['0x' + s for s in selectors])

    def test_hex_string_input(self):
        code = dispatcher_bytecode(['a9059cbb'])
        self.assertEqual(extract_selectors('0x' + code.hex()), ['0xa9059cbb'])
        self.assertEqual(extract_selectors(code.hex()), ['0xa9059cbb'])

    def test_leading_zero_selector_pushed_with_push3(self):
        code = dispatcher_bytecode(['0012ab34', 'a9059cbb'])
        self.assertEqual(extract_selectors(code), ['0x0012ab34', '0xa9059cbb'])

    def test_mask_is_not_a_selector(self):
        code = dispatcher_bytecode(['ffffffff', '70a08231'])
        self.assertEqual(extract_selectors(code), ['0x70a08231'])

    def test_binary_search_pivots_are_ignored(self):
        code = dispatcher_bytecode(['a9059cbb', '70a08231'], pivots=['313ce567'])
        self.assertEqual(extract_selectors(code), ['0xa9059cbb', '0x70a08231'])

    def test_duplicates_reported_once(self):
        code = dispatcher_bytecode(['a9059cbb', 'a9059cbb', '70a08231'])
        self.assertEqual(extract_selectors(code), ['0xa9059cbb', '0x70a08231'])

    def test_comparison_before_calldataload_ignored(self):
        code = assemble_code(['6080604052', '63a9059cbb', '14', ('push_label', 'x'), '57',
                              ('label', 'x'), '5f35', '00'])
        self.assertEqual(extract_selectors(code), [])

    def test_no_dispatcher(self):
        self.assertEqual(extract_selectors('6080604052600080fd'), [])

    def test_empty_bytecode_raises(self):
        for code in (b'', '', '0x', None):
            with self.assertRaises(NoContractAtAddress):
                extract_selectors(code)

    def test_malformed_bytecode_raises(self):
        with self.assertRaises(NoContractAtAddress):
            extract_selectors('0xzz')

    def test_abi_from_binary(self):
        code = dispatcher_bytecode(list(ERC20_SELECTORS.values()))
        self.assertEqual(abi_from_binary(code.hex()), set(ERC20_SELECTORS.values()))
        self.assertEqual(abi_from_binary('0x'), set())


class TestMutability(unittest.TestCase):
    def test_per_function_guards(self):
        code = dispatcher_bytecode(['a9059cbb', 'd0e30db0'], payable=['d0e30db0'])
        table = scan_dispatcher(code)
        self.assertFalse(table.global_callvalue_guard)
        self.assertEqual(set(table.targets), {'0xa9059cbb', '0xd0e30db0'})

        skeleton = {e.selector: e.mutability for e in skeleton_abi(code)}
        self.assertEqual(skeleton, {'0xa9059cbb': 'nonpayable', '0xd0e30db0': 'payable'})

    def test_global_guard(self):
        code = dispatcher_bytecode(['a9059cbb', '70a08231'], global_guard=True)
        self.assertTrue(scan_dispatcher(code).global_callvalue_guard)
        self.assertTrue(all(e.mutability == 'nonpayable' for e in skeleton_abi(code)))

    def test_skeleton_entries_are_placeholders(self):
        entries = skeleton_abi(dispatcher_bytecode(['dd62ed3e']))
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].name, 'func_dd62ed3e')
        self.assertFalse(entries[0].resolved)
        self.assertEqual(entries[0].inputs, [])


class TestEventTopics(unittest.TestCase):
    def test_topic_before_log(self):
        code = dispatcher_bytecode(['a9059cbb'], events=[TRANSFER_TOPIC])
        self.assertEqual(extract_event_topics(code), ['0x' + TRANSFER_TOPIC])

    def test_push32_without_log_ignored(self):
        code = assemble_code(['6080604052', '7f' + TRANSFER_TOPIC, '50', '00'])
        self.assertEqual(extract_event_topics(code), [])

    def test_topic_does_not_cross_basic_blocks(self):
        code = assemble_code(['7f' + TRANSFER_TOPIC, '50', ('label', 'b'), '5f5f', 'a1', '00'])
        self.assertEqual(extract_event_topics(code), [])


class TestMinimalProxy(unittest.TestCase):
    def test_clone_target(self):
        target = minimal_proxy_target(minimal_proxy_bytecode(IMPL))
        self.assertEqual(target.lower(), IMPL)

    def test_other_code(self):
        self.assertIsNone(minimal_proxy_target(dispatcher_bytecode(['a9059cbb'])))
        self.assertIsNone(minimal_proxy_target(b''))
