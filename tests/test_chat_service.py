import unittest
from collections.abc import AsyncIterator, Sequence

import httpx

from gateway_api.errors import ProviderError, UnsupportedProviderError
from gateway_api.infra.runtime import ProviderCredentials
from gateway_api.model_registry import Provider
from gateway_api.orchestration.policies import PromptLengthPolicy
from gateway_api.orchestration.router import ModelRouter
from gateway_api.providers.openai_provider import OpenAIChatProvider
from gateway_api.schemas import ChatMessage, ChatRequest
from gateway_api.services.chat_service import ChatEvent, ChatService, TurnState
from gateway_api.storage.memory import InMemoryChatStore


class StubAdapter:
    def __init__(
        self,
        provider: Provider,
        fragments: Sequence[str],
        error: Exception | None = None,
    ) -> None:
        self.provider = provider
        self._fragments = list(fragments)
        self._error = error
        self.calls = 0
        self.closed = False

    async def stream(
        self, model: str, messages: Sequence[ChatMessage], temperature: float
    ) -> AsyncIterator[str]:
        self.calls += 1
        try:
            for fragment in self._fragments:
                yield fragment
            if self._error is not None:
                raise self._error
        finally:
            self.closed = True


def build_request(**overrides: object) -> ChatRequest:
    payload: dict[str, object] = {
        "model": "openai:gpt-4o-mini",
        "messages": [{"role": "user", "content": "2+2?"}],
        "chatId": "chat-1",
    }
    payload.update(overrides)
    return ChatRequest.model_validate(payload)


async def collect(events: AsyncIterator[ChatEvent]) -> list[ChatEvent]:
    return [event async for event in events]


class ChatServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = InMemoryChatStore()

    def build_service(self, adapter: StubAdapter, **kwargs: bool) -> ChatService:
        router = ModelRouter(adapters={adapter.provider: adapter}, policy=PromptLengthPolicy())
        return ChatService(router=router, store=self.store, **kwargs)

    async def test_completed_turn_persists_messages_then_usage_before_done(self) -> None:
        adapter = StubAdapter(Provider.OPENAI, ["2+2", " is ", "4"])
        service = self.build_service(adapter)

        turn = await service.start_turn(build_request(), user_id="user-1")
        self.assertIs(turn.state, TurnState.USER_PERSISTED)

        events = await collect(turn.events())

        self.assertEqual([e.kind for e in events], ["fragment", "fragment", "fragment", "done"])
        self.assertEqual("".join(e.content for e in events if e.kind == "fragment"), "2+2 is 4")
        self.assertIs(turn.state, TurnState.COMPLETE)

        messages = await self.store.list_messages("chat-1")
        self.assertEqual([(m.role, m.content) for m in messages], [("user", "2+2?"), ("assistant", "2+2 is 4")])
        usage = await self.store.list_usage("user-1")
        self.assertEqual(len(usage), 1)
        record = usage[0]
        self.assertEqual(record.operation_type, "chat")
        self.assertEqual(record.model, "openai:gpt-4o-mini")
        self.assertEqual(record.input_tokens, 1)
        self.assertEqual(record.output_tokens, 2)
        self.assertEqual(record.total_tokens, 3)
        self.assertLess(messages[0].id, messages[1].id)
        self.assertLess(messages[1].id, record.id)

    async def test_user_message_is_persisted_before_streaming_starts(self) -> None:
        adapter = StubAdapter(Provider.OPENAI, ["ok"])
        service = self.build_service(adapter)

        await service.start_turn(build_request(), user_id="user-1")

        self.assertEqual(adapter.calls, 0)
        self.assertEqual(len(await self.store.list_messages("chat-1")), 1)

    async def test_only_last_user_message_is_persisted(self) -> None:
        adapter = StubAdapter(Provider.OPENAI, ["ok"])
        service = self.build_service(adapter)
        request = build_request(
            messages=[
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "first"},
                {"role": "assistant", "content": "reply"},
                {"role": "user", "content": "second"},
            ]
        )

        await service.start_turn(request, user_id="user-1")

        messages = await self.store.list_messages("chat-1")
        self.assertEqual([(m.role, m.content) for m in messages], [("user", "second")])

    async def test_provider_failure_keeps_user_message_only(self) -> None:
        adapter = StubAdapter(
            Provider.OPENAI,
            ["partial"],
            error=ProviderError("openai", "OpenAI request failed with status 500", 500),
        )
        service = self.build_service(adapter)

        turn = await service.start_turn(build_request(), user_id="user-1")
        events = await collect(turn.events())

        self.assertEqual([e.kind for e in events], ["fragment", "error"])
        self.assertIn("status 500", events[-1].content)
        self.assertIs(turn.state, TurnState.FAILED)
        messages = await self.store.list_messages("chat-1")
        self.assertEqual([m.role for m in messages], ["user"])
        self.assertEqual(await self.store.list_usage("user-1"), [])

    async def test_truncated_provider_stream_is_not_persisted_as_reply(self) -> None:
        body = b'data: {"choices": [{"delta": {"content": "The answer is"}}]}\n\n'
        adapter = OpenAIChatProvider(
            lambda provider: ProviderCredentials(api_key="key", base_url="https://openai.test/v1"),
            lambda: httpx.AsyncClient(
                transport=httpx.MockTransport(lambda request: httpx.Response(200, content=body))
            ),
        )
        router = ModelRouter(adapters={Provider.OPENAI: adapter}, policy=PromptLengthPolicy())
        service = ChatService(router=router, store=self.store)

        turn = await service.start_turn(build_request(), user_id="user-1")
        events = await collect(turn.events())

        self.assertEqual(
            [(e.kind, e.content) for e in events],
            [("fragment", "The answer is"), ("error", "OpenAI stream ended before completion")],
        )
        self.assertIs(turn.state, TurnState.FAILED)
        messages = await self.store.list_messages("chat-1")
        self.assertEqual([m.role for m in messages], ["user"])
        self.assertEqual(await self.store.list_usage("user-1"), [])

    async def test_unexpected_failure_is_reported_as_error_event(self) -> None:
        adapter = StubAdapter(Provider.OPENAI, [], error=KeyError("boom"))
        service = self.build_service(adapter)

        turn = await service.start_turn(build_request(), user_id="user-1")
        events = await collect(turn.events())

        self.assertEqual(events, [ChatEvent.error("Chat turn failed")])
        self.assertEqual(await self.store.list_usage("user-1"), [])

    async def test_unknown_provider_writes_nothing(self) -> None:
        adapter = StubAdapter(Provider.OPENAI, ["ok"])
        service = self.build_service(adapter)
        request = build_request().model_copy(update={"model": "made-up:foo"})

        with self.assertRaises(UnsupportedProviderError):
            await service.start_turn(request, user_id="user-1")

        self.assertEqual(adapter.calls, 0)
        self.assertEqual(await self.store.list_messages("chat-1"), [])
        self.assertEqual(await self.store.list_usage("user-1"), [])

    async def test_without_chat_id_only_usage_is_recorded(self) -> None:
        adapter = StubAdapter(Provider.OPENAI, ["4"])
        service = self.build_service(adapter)

        turn = await service.start_turn(build_request(chatId=None), user_id="user-1")
        events = await collect(turn.events())

        self.assertEqual(events[-1], ChatEvent.done())
        self.assertEqual(await self.store.list_messages("chat-1"), [])
        self.assertEqual(len(await self.store.list_usage("user-1")), 1)

    async def test_client_disconnect_discards_partial_reply_and_closes_upstream(self) -> None:
        adapter = StubAdapter(Provider.OPENAI, ["one", "two", "three"])
        service = self.build_service(adapter)

        turn = await service.start_turn(build_request(), user_id="user-1")
        events = turn.events()
        first = await anext(events)
        await events.aclose()

        self.assertEqual(first, ChatEvent.fragment("one"))
        self.assertTrue(adapter.closed)
        self.assertIs(turn.state, TurnState.CANCELLED)
        messages = await self.store.list_messages("chat-1")
        self.assertEqual([m.role for m in messages], ["user"])
        self.assertEqual(await self.store.list_usage("user-1"), [])

    async def test_client_disconnect_can_persist_partial_reply_when_enabled(self) -> None:
        adapter = StubAdapter(Provider.OPENAI, ["one", "two", "three"])
        service = self.build_service(adapter, persist_partial_on_disconnect=True)

        turn = await service.start_turn(build_request(), user_id="user-1")
        events = turn.events()
        await anext(events)
        await anext(events)
        await events.aclose()

        messages = await self.store.list_messages("chat-1")
        self.assertEqual([(m.role, m.content) for m in messages], [("user", "2+2?"), ("assistant", "onetwo")])
        self.assertEqual(await self.store.list_usage("user-1"), [])

    async def test_router_meta_provider_resolves_before_dispatch(self) -> None:
        adapter = StubAdapter(Provider.OPENAI, ["4"])
        service = self.build_service(adapter)

        turn = await service.start_turn(build_request(model="router:auto"), user_id="user-1")
        await collect(turn.events())

        usage = await self.store.list_usage("user-1")
        self.assertEqual(usage[0].model, "openai:gpt-4o-mini")


if __name__ == "__main__":
    unittest.main()
