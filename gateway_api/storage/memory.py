"""In-process implementation of the chat store."""

import copy
import itertools
from collections import defaultdict
from datetime import UTC, datetime

from gateway_api.constants import Role
from gateway_api.schemas import MessageContent

from .base import ChatStore, PersistedMessage, UsageRecord


class InMemoryChatStore(ChatStore):
    """Keeps messages and usage in dictionaries for the lifetime of the process.

    Ids come from one counter shared by messages and usage records, so they
    reflect global creation order.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._messages: dict[str, list[PersistedMessage]] = defaultdict(list)
        self._usage: list[UsageRecord] = []

    async def add_message(
        self, chat_id: str, role: Role, content: MessageContent
    ) -> PersistedMessage:
        message = PersistedMessage(
            id=next(self._ids),
            chat_id=chat_id,
            role=role,
            content=copy.deepcopy(content),
            created_at=datetime.now(UTC),
        )
        self._messages[chat_id].append(message)
        return message

    async def list_messages(self, chat_id: str) -> list[PersistedMessage]:
        return list(self._messages.get(chat_id, []))

    async def record_usage(
        self,
        user_id: str,
        model: str,
        operation_type: str,
        input_tokens: int,
        output_tokens: int,
    ) -> UsageRecord:
        record = UsageRecord(
            id=next(self._ids),
            user_id=user_id,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            operation_type=operation_type,
            created_at=datetime.now(UTC),
        )
        self._usage.append(record)
        return record

    async def list_usage(
        self, user_id: str, since: datetime | None = None
    ) -> list[UsageRecord]:
        return [
            record
            for record in self._usage
            if record.user_id == user_id and (since is None or record.created_at >= since)
        ]
