import asyncio
import unittest

from debt_negotiator.conversation import ConversationStore, Message
from debt_negotiator.errors import StreamInterruptedError, UpstreamUnavailableError
from debt_negotiator.relay import CompletionRelay
from tests.fakes import ScriptedProvider


def _seeded_store() -> ConversationStore:
    store = ConversationStore()
    store.seed("2400")
    store.append(Message("user", "I just lost my job"))
    return store


def _relay(provider, store, **kwargs) -> CompletionRelay:
    return CompletionRelay(
        provider=provider,
        store=store,
        model="m",
        max_tokens=100,
        temperature=0.5,
        **kwargs,
    )


async def _drain(relay: CompletionRelay, store: ConversationStore) -> list[str]:
    received = []
    async for fragment in relay.send(store.messages):
        received.append(fragment)
    return received


class CompletionRelayTests(unittest.TestCase):
    def test_text_is_concatenation_in_emission_order(self) -> None:
        fragments = ["I ", "understand.", " Would $800/month work?"]
        store = _seeded_store()
        relay = _relay(ScriptedProvider(fragments), store)

        received = asyncio.run(_drain(relay, store))

        self.assertEqual(fragments, received)
        self.assertEqual("".join(fragments), relay.text)
        self.assertTrue(relay.completed)

    def test_assistant_message_appended_once_after_exhaustion(self) -> None:
        store = _seeded_store()
        relay = _relay(ScriptedProvider(["a", "b", "c"]), store)
        counts_during_stream: list[int] = []

        async def scenario() -> None:
            async for _ in relay.send(store.messages):
                counts_during_stream.append(store.message_count)

        asyncio.run(scenario())

        self.assertEqual([2, 2, 2], counts_during_stream)
        self.assertEqual(3, store.message_count)
        self.assertEqual(Message("assistant", "abc"), store.messages[-1])

    def test_empty_reply_is_unavailable_and_appends_nothing(self) -> None:
        store = _seeded_store()
        relay = _relay(ScriptedProvider([]), store)

        with self.assertRaises(UpstreamUnavailableError):
            asyncio.run(_drain(relay, store))

        self.assertFalse(relay.completed)
        self.assertEqual(2, store.message_count)

    def test_history_is_forwarded_to_provider(self) -> None:
        store = _seeded_store()
        provider = ScriptedProvider(["ok"])
        asyncio.run(_drain(_relay(provider, store), store))
        self.assertEqual(["system", "user"], [m["role"] for m in provider.calls[0]])
        self.assertEqual("I just lost my job", provider.calls[0][1]["content"])

    def test_send_is_single_use(self) -> None:
        store = _seeded_store()
        relay = _relay(ScriptedProvider(["x"]), store)
        asyncio.run(_drain(relay, store))
        with self.assertRaises(RuntimeError):
            asyncio.run(_drain(relay, store))

    def test_failure_before_first_fragment_appends_nothing(self) -> None:
        store = _seeded_store()
        relay = _relay(ScriptedProvider(["x"], fail_before=True), store)
        with self.assertRaises(UpstreamUnavailableError):
            asyncio.run(_drain(relay, store))
        self.assertEqual(2, store.message_count)
        self.assertFalse(relay.completed)

    def test_interruption_before_first_fragment_counts_as_unavailable(self) -> None:
        store = _seeded_store()
        relay = _relay(ScriptedProvider(["x", "y"], fail_at=0), store)
        with self.assertRaises(UpstreamUnavailableError):
            asyncio.run(_drain(relay, store))
        self.assertEqual(2, store.message_count)

    def test_mid_stream_failure_discards_partial_by_default(self) -> None:
        store = _seeded_store()
        relay = _relay(ScriptedProvider(["I ", "under", "stand"], fail_at=2), store)
        with self.assertRaises(StreamInterruptedError) as ctx:
            asyncio.run(_drain(relay, store))
        self.assertEqual("I under", ctx.exception.partial_text)
        self.assertEqual(2, store.message_count)
        self.assertFalse(relay.kept_partial)

    def test_mid_stream_failure_keeps_partial_when_lenient(self) -> None:
        store = _seeded_store()
        relay = _relay(ScriptedProvider(["I ", "under", "stand"], fail_at=2), store, partial_reply_policy="keep")
        with self.assertRaises(StreamInterruptedError):
            asyncio.run(_drain(relay, store))
        self.assertEqual(3, store.message_count)
        self.assertEqual(Message("assistant", "I under"), store.messages[-1])
        self.assertTrue(relay.kept_partial)

    def test_idle_timeout_mid_stream_is_an_interruption(self) -> None:
        store = _seeded_store()
        provider = ScriptedProvider(["partial"], hang=True)
        relay = _relay(provider, store, idle_timeout_s=0.05)
        with self.assertRaises(StreamInterruptedError):
            asyncio.run(_drain(relay, store))
        self.assertEqual(2, store.message_count)
        self.assertTrue(provider.closed)

    def test_idle_timeout_before_first_fragment_is_unavailable(self) -> None:
        store = _seeded_store()
        relay = _relay(ScriptedProvider([], hang=True), store, idle_timeout_s=0.05)
        with self.assertRaises(UpstreamUnavailableError):
            asyncio.run(_drain(relay, store))

    def test_consumer_stopping_early_closes_upstream_and_appends_nothing(self) -> None:
        store = _seeded_store()
        provider = ScriptedProvider(["a", "b", "c"])
        relay = _relay(provider, store)

        async def scenario() -> None:
            fragments = relay.send(store.messages)
            self.assertEqual("a", await anext(fragments))
            await fragments.aclose()

        asyncio.run(scenario())

        self.assertTrue(provider.closed)
        self.assertEqual(1, provider.yielded)
        self.assertEqual(2, store.message_count)
        self.assertFalse(relay.completed)

    def test_cancellation_mid_stream_appends_nothing(self) -> None:
        store = _seeded_store()
        provider = ScriptedProvider(["a"], hang=True)
        relay = _relay(provider, store)

        async def scenario() -> None:
            task = asyncio.create_task(_drain(relay, store))
            await asyncio.sleep(0.01)
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        self.assertTrue(provider.closed)
        self.assertEqual(2, store.message_count)


if __name__ == "__main__":
    unittest.main()
