import unittest

import httpx

from abi_reconstructor.fields import FunctionEntry
from abi_reconstructor.shared import SourceUnavailable
from abi_reconstructor.signatures import (FourByteSource, OpenChainSource, Signature, SignatureResolver,
                                          StaticSignatureSource, apply_signature, parse_signature)
from tests.fakes import TRANSFER_TOPIC, FakeSignatureSource


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestParseSignature(unittest.TestCase):
    def test_plain(self):
        self.assertEqual(parse_signature('transfer(address,uint256)'),
                         Signature('transfer', ['address', 'uint256'], None))

    def test_no_arguments(self):
        sig = parse_signature('totalSupply()')
        self.assertEqual(sig.inputs, [])
        self.assertEqual(sig.selector, '0x18160ddd')

    def test_returns_clause(self):
        sig = parse_signature('balanceOf(address) returns (uint256)')
        self.assertEqual(sig.outputs, ['uint256'])
        self.assertEqual(parse_signature('balanceOf(address)(uint256)').outputs, ['uint256'])
        self.assertEqual(parse_signature('ping() returns ()').outputs, [])

    def test_nested_tuples_and_whitespace(self):
        sig = parse_signature('  swap( (address, uint256)[] , bytes ) ')
        self.assertEqual(sig.inputs, ['(address, uint256)[]', 'bytes'])
        self.assertEqual(sig.text, 'swap((address,uint256)[],bytes)')

    def test_garbage(self):
        for text in ('', 'transfer', '(address)', 'transfer(address', '1abc()', 'f(uint256) junk',
                     'f() returns uint256'):
            with self.assertRaises(ValueError):
                parse_signature(text)

    def test_apply_signature(self):
        entry = FunctionEntry('0x70a08231', mutability='payable')
        resolved = apply_signature(entry, parse_signature('balanceOf(address) returns (uint256)'))
        self.assertEqual(resolved.name, 'balanceOf')
        self.assertEqual(resolved.mutability, 'view')
        self.assertEqual([(p.name, p.type) for p in resolved.inputs], [('param0', 'address')])
        self.assertEqual([(p.name, p.type) for p in resolved.outputs], [('output0', 'uint256')])

        plain = apply_signature(entry, parse_signature('balanceOf(address)'))
        self.assertEqual(plain.mutability, 'payable')
        self.assertEqual(plain.outputs, [])


class TestFourByte(unittest.IsolatedAsyncioTestCase):
    async def test_ranked_newest_first(self):
        def handler(request):
            self.assertEqual(request.url.path, '/api/v1/signatures/')
            self.assertEqual(request.url.params['hex_signature'], '0xa9059cbb')
            return httpx.Response(200, json={'results': [
                {'id': 10, 'text_signature': 'transfer(address,uint256)'},
                {'id': 300, 'text_signature': 'many_msg_babbage(bytes1)'},
            ]})

        async with FourByteSource(base_url='https://4byte.test', client=mock_client(handler)) as source:
            found = await source.lookup('0xA9059CBB')
        self.assertEqual(found, ['many_msg_babbage(bytes1)', 'transfer(address,uint256)'])

    async def test_event_endpoint(self):
        def handler(request):
            self.assertEqual(request.url.path, '/api/v1/event-signatures/')
            return httpx.Response(200, json={'results': [
                {'id': 1, 'text_signature': 'Transfer(address,address,uint256)'}]})

        source = FourByteSource(base_url='https://4byte.test', client=mock_client(handler))
        self.assertEqual(await source.lookup_event('0x' + TRANSFER_TOPIC), ['Transfer(address,address,uint256)'])

    async def test_skips_malformed_results(self):
        def handler(request):
            return httpx.Response(200, json={'results': [
                'oops',
                {'id': 'x', 'text_signature': 7},
                {'id': 2, 'text_signature': 'transfer(address,uint256)'},
                None,
            ]})

        source = FourByteSource(base_url='https://4byte.test', client=mock_client(handler))
        self.assertEqual(await source.lookup('0xa9059cbb'), ['transfer(address,uint256)'])

    async def test_http_error(self):
        source = FourByteSource(base_url='https://4byte.test',
                                client=mock_client(lambda request: httpx.Response(502)))
        with self.assertRaises(SourceUnavailable):
            await source.lookup('0xa9059cbb')

    async def test_malformed_body(self):
        source = FourByteSource(base_url='https://4byte.test',
                                client=mock_client(lambda request: httpx.Response(200, text='<html>')))
        with self.assertRaises(SourceUnavailable):
            await source.lookup('0xa9059cbb')

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError('connection refused', request=request)

        source = FourByteSource(base_url='https://4byte.test', client=mock_client(handler))
        with self.assertRaises(SourceUnavailable):
            await source.lookup('0xa9059cbb')


class TestOpenChain(unittest.IsolatedAsyncioTestCase):
    async def test_function_lookup(self):
        def handler(request):
            self.assertEqual(request.url.path, '/signature-database/v1/lookup')
            self.assertEqual(request.url.params['function'], '0xa9059cbb')
            self.assertEqual(request.url.params['filter'], 'true')
            return httpx.Response(200, json={
                'ok': True,
                'result': {'event': {}, 'function': {
                    '0xa9059cbb': [{'name': 'transfer(address,uint256)', 'filtered': False}]}},
            })

        source = OpenChainSource(base_url='https://openchain.test', client=mock_client(handler))
        self.assertEqual(await source.lookup('a9059cbb'), ['transfer(address,uint256)'])

    async def test_unknown_selector(self):
        def handler(request):
            return httpx.Response(200, json={'ok': True, 'result': {'event': {}, 'function': {'0x12345678': None}}})

        source = OpenChainSource(base_url='https://openchain.test', client=mock_client(handler))
        self.assertEqual(await source.lookup('0x12345678'), [])

    async def test_result_not_a_list(self):
        def handler(request):
            return httpx.Response(200, json={'ok': True, 'result': {'function': {'0xa9059cbb': 'oops'}}})

        source = OpenChainSource(base_url='https://openchain.test', client=mock_client(handler))
        with self.assertRaises(SourceUnavailable):
            await source.lookup('0xa9059cbb')

    async def test_not_ok(self):
        def handler(request):
            return httpx.Response(200, json={'ok': False, 'error': 'invalid hash'})

        source = OpenChainSource(base_url='https://openchain.test', client=mock_client(handler))
        with self.assertRaises(SourceUnavailable):
            await source.lookup('0xa9059cbb')


class TestSignatureResolver(unittest.IsolatedAsyncioTestCase):
    async def test_rejects_mismatching_candidates(self):
        source = StaticSignatureSource({'0xa9059cbb': ['bogus(uint256)', 'transfer(address,uint256)']})
        sig = await SignatureResolver([source]).resolve('0xa9059cbb')
        self.assertEqual(sig.text, 'transfer(address,uint256)')

    async def test_only_mismatching_candidates(self):
        source = StaticSignatureSource({'0xa9059cbb': ['bogus(uint256)']})
        self.assertIsNone(await SignatureResolver([source]).resolve('0xa9059cbb'))

    async def test_falls_through_sources(self):
        failing = FakeSignatureSource(failing=['0xa9059cbb'], name='first')
        empty = FakeSignatureSource(name='second')
        good = FakeSignatureSource({'0xa9059cbb': ['transfer(address,uint256)']}, name='third')
        sig = await SignatureResolver([failing, empty, good]).resolve('0xa9059cbb')
        self.assertEqual(sig.name, 'transfer')
        self.assertEqual(len(failing.calls) + len(empty.calls) + len(good.calls), 3)

    async def test_stops_at_first_match(self):
        first = FakeSignatureSource({'0xa9059cbb': ['transfer(address,uint256)']})
        second = FakeSignatureSource({'0xa9059cbb': ['transfer(address,uint256)']})
        await SignatureResolver([first, second]).resolve('0xa9059cbb')
        self.assertEqual(second.calls, [])

    async def test_slow_source_is_a_miss(self):
        slow = FakeSignatureSource({'0xa9059cbb': ['transfer(address,uint256)']}, slow=['0xa9059cbb'])
        self.assertIsNone(await SignatureResolver([slow]).resolve('0xa9059cbb'))

    async def test_unexpected_source_error_is_a_miss(self):
        class BrokenSource(FakeSignatureSource):
            async def lookup(self, selector):
                raise RuntimeError('unexpected')

        good = FakeSignatureSource({'0xa9059cbb': ['transfer(address,uint256)']})
        self.assertIsNone(await SignatureResolver([BrokenSource()]).resolve('0xa9059cbb'))
        self.assertEqual((await SignatureResolver([BrokenSource(), good]).resolve('0xa9059cbb')).name, 'transfer')

    async def test_malformed_fourbyte_response_is_a_miss(self):
        client = mock_client(lambda request: httpx.Response(200, json={'results': ['oops']}))
        resolver = SignatureResolver([FourByteSource(base_url='https://4byte.test', client=client)])
        self.assertIsNone(await resolver.resolve('0xa9059cbb'))
        self.assertEqual(await resolver.resolve_events(['0x' + TRANSFER_TOPIC]), [])

    async def test_failed_lookup_not_memoised(self):
        source = FakeSignatureSource({'0xa9059cbb': ['transfer(address,uint256)']}, slow=['0xa9059cbb'])
        resolver = SignatureResolver([source])
        self.assertIsNone(await resolver.resolve('0xa9059cbb'))

        source.slow.clear()
        self.assertEqual((await resolver.resolve('0xa9059cbb')).name, 'transfer')
        await resolver.resolve('0xa9059cbb')
        self.assertEqual(source.calls, ['0xa9059cbb', '0xa9059cbb'])

    async def test_clear(self):
        source = FakeSignatureSource({'0xa9059cbb': ['transfer(address,uint256)']})
        resolver = SignatureResolver([source])
        await resolver.resolve('0xa9059cbb')
        resolver.clear()
        await resolver.resolve('0xa9059cbb')
        self.assertEqual(len(source.calls), 2)

    async def test_memoised(self):
        source = FakeSignatureSource({'0xa9059cbb': ['transfer(address,uint256)']})
        resolver = SignatureResolver([source])
        await resolver.resolve('0xa9059cbb')
        await resolver.resolve('A9059CBB')
        await resolver.resolve('0x12345678')
        await resolver.resolve('0x12345678')
        self.assertEqual(source.calls, ['0xa9059cbb', '0x12345678'])

    async def test_enrich_keeps_placeholders(self):
        source = FakeSignatureSource({'0xa9059cbb': ['transfer(address,uint256)']})
        entries = [FunctionEntry('0xa9059cbb'), FunctionEntry('0xdd62ed3e')]
        enriched = await SignatureResolver([source]).enrich(entries)
        self.assertEqual([e.name for e in enriched], ['transfer', 'func_dd62ed3e'])
        self.assertEqual([e.selector for e in enriched], ['0xa9059cbb', '0xdd62ed3e'])

    async def test_resolve_events_drops_unknown(self):
        source = FakeSignatureSource(events={TRANSFER_TOPIC: ['Transfer(address,address,uint256)']})
        events = await SignatureResolver([source]).resolve_events(['0x' + TRANSFER_TOPIC, '0x' + '11' * 32])
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].name, 'Transfer')
        self.assertEqual(events[0].topic, '0x' + TRANSFER_TOPIC)

    async def test_static_from_signatures(self):
        source = StaticSignatureSource.from_signatures(['approve(address,uint256)'],
                                                       events=['Transfer(address,address,uint256)'])
        self.assertEqual(await source.lookup('0x095ea7b3'), ['approve(address,uint256)'])
        self.assertEqual(await source.lookup_event(TRANSFER_TOPIC), ['Transfer(address,address,uint256)'])

