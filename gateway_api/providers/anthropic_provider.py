"""Anthropic Messages API adapter."""

from collections.abc import Sequence
from typing import Any

from gateway_api.constants import ANTHROPIC_MAX_TOKENS, ANTHROPIC_VERSION
from gateway_api.infra.runtime import ProviderCredentials
from gateway_api.message_mappers import build_anthropic_messages
from gateway_api.model_registry import Provider
from gateway_api.schemas import ChatMessage
from gateway_api.streaming.decoders import AnthropicStreamDecoder, StreamDecoder

from .base import HttpStreamingAdapter, ProviderRequest


class AnthropicChatProvider(HttpStreamingAdapter):
    provider = Provider.ANTHROPIC

    def build_request(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        temperature: float,
        credentials: ProviderCredentials,
    ) -> ProviderRequest:
        system_prompt, converted = build_anthropic_messages(messages)
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "temperature": temperature,
            "messages": converted,
            "stream": True,
        }
        if system_prompt:
            payload["system"] = system_prompt

        return ProviderRequest(
            url=f"{credentials.base_url}/messages",
            headers={
                "content-type": "application/json",
                "x-api-key": credentials.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            payload=payload,
        )

    def create_decoder(self) -> StreamDecoder:
        return AnthropicStreamDecoder()
