import asyncio
import unittest

from debt_negotiator.chat_view import ChatView
from debt_negotiator.conversation import SessionRegistry
from debt_negotiator.turn_engine import COMPLETE, ERROR, FRAGMENT, TurnEngine, TurnEvent
from tests.fakes import ScriptedProvider

_FALLBACK = "Sorry, please try again."
_LINK = "https://collectwise.com/payments?termLength=6&totalDebtAmount=2400&termPaymentAmount=400"


def _engine(provider, *, partial_reply_policy: str = "discard") -> TurnEngine:
    return TurnEngine(
        provider=provider,
        model="gpt-4",
        max_tokens=100,
        temperature=0.5,
        partial_reply_policy=partial_reply_policy,
        idle_timeout_s=5.0,
        fallback_message=_FALLBACK,
    )


async def _collect(engine: TurnEngine, session, text: str) -> list[TurnEvent]:
    return [event async for event in engine.run(session, text)]


class TurnEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self._session = SessionRegistry().create("s1", debt_amount="2400")

    def test_negotiation_turn_streams_and_records_reply(self) -> None:
        engine = _engine(ScriptedProvider(["I ", "understand.", " Would $800/month work?"]))
        view = ChatView()
        self.assertTrue(view.submit("I just lost my job"))
        partials: list[str] = []

        async def scenario() -> None:
            async for event in engine.run(self._session, "I just lost my job"):
                view.apply(event)
                if event.type == FRAGMENT:
                    partials.append(view.answer)
                    self.assertTrue(view.typing)
                    self.assertFalse(view.input_enabled)

        asyncio.run(scenario())

        self.assertEqual(["I ", "I understand.", "I understand. Would $800/month work?"], partials)
        messages = self._session.store.messages
        self.assertEqual(["system", "user", "assistant"], [m.role for m in messages])
        self.assertEqual("I understand. Would $800/month work?", messages[-1].content)
        self.assertIsNone(view.payment_link)
        self.assertIsNone(self._session.payment_link)
        self.assertTrue(view.input_enabled)
        self.assertEqual("I understand. Would $800/month work?", view.lines[-1].content)

    def test_final_turn_surfaces_payment_link(self) -> None:
        engine = _engine(ScriptedProvider(["Great! Here's your payment link: ", _LINK]))
        events = asyncio.run(_collect(engine, self._session, "That works!"))

        terminal = events[-1]
        self.assertEqual(COMPLETE, terminal.type)
        self.assertEqual(_LINK, terminal.payment_link)
        self.assertEqual(1, sum(1 for e in events if e.payment_link))
        self.assertEqual(_LINK, self._session.payment_link)

        view = ChatView()
        view.submit("That works!")
        for event in events:
            view.apply(event)
        self.assertEqual(_LINK, view.payment_link)
        self.assertFalse(view.input_enabled)

    def test_link_with_mismatched_total_is_still_surfaced(self) -> None:
        link = "https://collectwise.com/payments?termLength=2&totalDebtAmount=10&termPaymentAmount=5"
        engine = _engine(ScriptedProvider([f"Deal: {link}"]))
        events = asyncio.run(_collect(engine, self._session, "ok"))
        self.assertEqual(link, events[-1].payment_link)

    def test_upstream_failure_emits_single_fallback_and_keeps_session_usable(self) -> None:
        events = asyncio.run(_collect(_engine(ScriptedProvider([], fail_before=True)), self._session, "hello"))

        self.assertEqual([TurnEvent.error(_FALLBACK)], events)
        self.assertEqual(["system", "user"], [m.role for m in self._session.store.messages])

        events = asyncio.run(_collect(_engine(ScriptedProvider(["Hi again"])), self._session, "hello?"))
        self.assertEqual(COMPLETE, events[-1].type)
        self.assertEqual("assistant", self._session.store.messages[-1].role)

    def test_interrupted_stream_discard_policy(self) -> None:
        engine = _engine(ScriptedProvider(["Would ", "$800", "?"], fail_at=2))
        events = asyncio.run(_collect(engine, self._session, "hi"))

        self.assertEqual([FRAGMENT, FRAGMENT, ERROR], [e.type for e in events])
        self.assertIsNone(events[-1].partial_text)
        self.assertEqual(2, self._session.store.message_count)

    def test_interrupted_stream_keep_policy(self) -> None:
        engine = _engine(ScriptedProvider(["Would ", "$800", "?"], fail_at=2), partial_reply_policy="keep")
        events = asyncio.run(_collect(engine, self._session, "hi"))

        self.assertEqual(ERROR, events[-1].type)
        self.assertEqual("Would $800", events[-1].partial_text)
        self.assertEqual("Would $800", self._session.store.messages[-1].content)

        view = ChatView()
        view.submit("hi")
        for event in events:
            view.apply(event)
        self.assertEqual("Would $800", view.lines[-1].content)
        self.assertEqual(_FALLBACK, view.error)
        self.assertTrue(view.input_enabled)


class TurnEventTests(unittest.TestCase):
    def test_to_dict_shapes(self) -> None:
        self.assertEqual({"type": "fragment", "text": "x"}, TurnEvent.fragment("x").to_dict())
        self.assertEqual(
            {"type": "complete", "text": "done", "payment_link": None},
            TurnEvent.complete("done", None).to_dict(),
        )
        self.assertEqual(
            {"type": "error", "text": "oops", "partial_text": "par"},
            TurnEvent.error("oops", partial_text="par").to_dict(),
        )


if __name__ == "__main__":
    unittest.main()
