"""OpenAI-compatible chat completion adapters (OpenAI and xAI)."""

from collections.abc import Sequence

from gateway_api.infra.runtime import ProviderCredentials
from gateway_api.message_mappers import build_openai_messages
from gateway_api.model_registry import Provider
from gateway_api.schemas import ChatMessage
from gateway_api.streaming.decoders import OpenAIStreamDecoder, StreamDecoder

from .base import HttpStreamingAdapter, ProviderRequest


class OpenAIChatProvider(HttpStreamingAdapter):
    provider = Provider.OPENAI

    def build_request(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        temperature: float,
        credentials: ProviderCredentials,
    ) -> ProviderRequest:
        return ProviderRequest(
            url=f"{credentials.base_url}/chat/completions",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {credentials.api_key}",
            },
            payload={
                "model": model,
                "messages": build_openai_messages(messages),
                "temperature": temperature,
                "stream": True,
            },
        )

    def create_decoder(self) -> StreamDecoder:
        return OpenAIStreamDecoder()


class XAIChatProvider(OpenAIChatProvider):
    """Grok speaks the Chat Completions wire format at its own endpoint."""

    provider = Provider.XAI
