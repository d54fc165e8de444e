"""Application service orchestrating one streamed chat turn."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

from gateway_api.errors import BadRequestError, ProviderError
from gateway_api.message_mappers import conversation_text, last_user_message
from gateway_api.orchestration.router import ModelRouter, ResolvedModel
from gateway_api.schemas import ChatRequest
from gateway_api.storage.base import ChatStore

from .usage import estimate_tokens

logger = logging.getLogger(__name__)

CHAT_OPERATION = "chat"


class TurnState(StrEnum):
    RECEIVED = "received"
    USER_PERSISTED = "user_persisted"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ChatEvent:
    kind: Literal["fragment", "done", "error"]
    content: str = ""

    @classmethod
    def fragment(cls, content: str) -> "ChatEvent":
        return cls(kind="fragment", content=content)

    @classmethod
    def done(cls) -> "ChatEvent":
        return cls(kind="done")

    @classmethod
    def error(cls, message: str) -> "ChatEvent":
        return cls(kind="error", content=message)


class ChatTurn:
    """One request's journey from the persisted user message to the usage record."""

    def __init__(
        self,
        request: ChatRequest,
        user_id: str,
        target: ResolvedModel,
        store: ChatStore,
        persist_partial_on_disconnect: bool,
    ) -> None:
        self.request = request
        self.user_id = user_id
        self.target = target
        self.state = TurnState.RECEIVED
        self._store = store
        self._persist_partial_on_disconnect = persist_partial_on_disconnect

    async def persist_user_message(self) -> None:
        chat_id = self.request.chat_id
        latest = last_user_message(self.request.messages)
        if chat_id is not None and latest is not None:
            await self._store.add_message(chat_id, "user", latest.content)
        self.state = TurnState.USER_PERSISTED

    async def events(self) -> AsyncIterator[ChatEvent]:
        """Relay fragments as they arrive, then persist and emit the terminal event.

        The ``done`` event is only produced after the assistant message and the
        usage record are written; any failure yields a single ``error`` event and
        leaves the assistant side of the turn unwritten.
        """
        self.state = TurnState.STREAMING
        accumulated: list[str] = []
        start = time.time()
        try:
            fragments = self.target.adapter.stream(
                self.target.model, self.request.messages, self.request.temperature
            )
            async with aclosing(fragments):
                async for fragment in fragments:
                    accumulated.append(fragment)
                    yield ChatEvent.fragment(fragment)

            output_text = "".join(accumulated)
            await self._persist_assistant_message(output_text)
            await self._record_usage(output_text)
        except ProviderError as exc:
            self.state = TurnState.FAILED
            logger.warning(
                "Chat turn failed upstream",
                extra={
                    "provider": exc.provider,
                    "status_code": exc.status_code,
                    "model": str(self.target.identifier),
                },
            )
            yield ChatEvent.error(str(exc))
            return
        except (GeneratorExit, asyncio.CancelledError):
            self.state = TurnState.CANCELLED
            logger.info(
                "Chat turn cancelled by client",
                extra={"model": str(self.target.identifier), "fragment_count": len(accumulated)},
            )
            if self._persist_partial_on_disconnect and accumulated:
                await self._persist_assistant_message("".join(accumulated))
            raise
        except Exception:
            self.state = TurnState.FAILED
            logger.exception("Chat turn failed", extra={"model": str(self.target.identifier)})
            yield ChatEvent.error("Chat turn failed")
            return

        self.state = TurnState.COMPLETE
        logger.info(
            "Chat turn completed",
            extra={
                "model": str(self.target.identifier),
                "fragment_count": len(accumulated),
                "response_length": len(output_text),
                "duration_ms": int((time.time() - start) * 1000),
            },
        )
        yield ChatEvent.done()

    async def _persist_assistant_message(self, text: str) -> None:
        if self.request.chat_id is not None:
            await self._store.add_message(self.request.chat_id, "assistant", text)

    async def _record_usage(self, output_text: str) -> None:
        await self._store.record_usage(
            user_id=self.user_id,
            model=str(self.target.identifier),
            operation_type=CHAT_OPERATION,
            input_tokens=estimate_tokens(conversation_text(self.request.messages)),
            output_tokens=estimate_tokens(output_text),
        )


class ChatService:
    def __init__(
        self,
        router: ModelRouter,
        store: ChatStore,
        persist_partial_on_disconnect: bool = False,
    ) -> None:
        self._router = router
        self._store = store
        self._persist_partial_on_disconnect = persist_partial_on_disconnect

    async def start_turn(self, request: ChatRequest, user_id: str) -> ChatTurn:
        """Validate and route the request, then persist the user's message.

        Validation and routing failures raise before anything is written.
        """
        if not request.messages:
            raise BadRequestError("messages must be a non-empty list")

        logger.info(
            "Chat request received",
            extra={"message_count": len(request.messages), "model": request.model},
        )
        target = self._router.resolve(request.model, request.messages)
        turn = ChatTurn(
            request=request,
            user_id=user_id,
            target=target,
            store=self._store,
            persist_partial_on_disconnect=self._persist_partial_on_disconnect,
        )
        await turn.persist_user_message()
        return turn
