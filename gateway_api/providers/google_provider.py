"""Gemini streamGenerateContent adapter."""

from collections.abc import Sequence

from gateway_api.infra.runtime import ProviderCredentials
from gateway_api.message_mappers import build_gemini_contents
from gateway_api.model_registry import Provider
from gateway_api.schemas import ChatMessage
from gateway_api.streaming.decoders import GeminiStreamDecoder, StreamDecoder

from .base import HttpStreamingAdapter, ProviderRequest


class GoogleChatProvider(HttpStreamingAdapter):
    provider = Provider.GOOGLE

    def build_request(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        temperature: float,
        credentials: ProviderCredentials,
    ) -> ProviderRequest:
        return ProviderRequest(
            url=f"{credentials.base_url}/models/{model}:streamGenerateContent?alt=sse",
            headers={
                "content-type": "application/json",
                "x-goog-api-key": credentials.api_key,
            },
            payload={
                "contents": build_gemini_contents(messages),
                "generationConfig": {"temperature": temperature},
            },
        )

    def create_decoder(self) -> StreamDecoder:
        return GeminiStreamDecoder()
