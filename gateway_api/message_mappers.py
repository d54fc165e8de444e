"""Conversion helpers between API messages and provider-specific formats."""

from collections.abc import Sequence
from typing import Any

from .schemas import ChatMessage


def message_text(message: ChatMessage) -> str:
    """Flatten a message's content to plain text, dropping non-text parts."""
    if isinstance(message.content, str):
        return message.content
    return "".join(
        part.get("text", "")
        for part in message.content
        if isinstance(part.get("text"), str)
    )


def last_user_message(messages: Sequence[ChatMessage]) -> ChatMessage | None:
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None


def conversation_text(messages: Sequence[ChatMessage]) -> str:
    return "\n".join(message_text(message) for message in messages)


def build_openai_messages(messages: Sequence[ChatMessage]) -> list[dict[str, Any]]:
    """OpenAI-compatible APIs take the conversation verbatim."""
    return [{"role": message.role, "content": message.content} for message in messages]


def build_anthropic_messages(
    messages: Sequence[ChatMessage],
) -> tuple[str | None, list[dict[str, Any]]]:
    """Split system turns out of the conversation for the Messages API."""
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            system_parts.append(message_text(message))
            continue
        converted.append({"role": message.role, "content": message.content})

    system_prompt = "\n\n".join(part for part in system_parts if part) or None
    return system_prompt, converted


def build_gemini_contents(messages: Sequence[ChatMessage]) -> list[dict[str, Any]]:
    """Gemini only receives the latest user turn, flattened to text."""
    latest = last_user_message(messages)
    text = message_text(latest) if latest is not None else ""
    return [{"role": "user", "parts": [{"text": text}]}]
