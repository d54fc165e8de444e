"""Persistence interfaces the gateway needs from its storage collaborator."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from gateway_api.constants import Role
from gateway_api.schemas import MessageContent


@dataclass(frozen=True)
class PersistedMessage:
    id: int
    chat_id: str
    role: Role
    content: MessageContent
    created_at: datetime


@dataclass(frozen=True)
class UsageRecord:
    id: int
    user_id: str
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    operation_type: str
    created_at: datetime


class ChatStore(Protocol):
    """Insert-only store for chat messages and the usage ledger."""

    async def add_message(
        self, chat_id: str, role: Role, content: MessageContent
    ) -> PersistedMessage: ...

    async def list_messages(self, chat_id: str) -> list[PersistedMessage]: ...

    async def record_usage(
        self,
        user_id: str,
        model: str,
        operation_type: str,
        input_tokens: int,
        output_tokens: int,
    ) -> UsageRecord: ...

    async def list_usage(
        self, user_id: str, since: datetime | None = None
    ) -> list[UsageRecord]: ...
