"""Cohere v2 chat adapter (non-streamed body, re-chunked locally)."""

from collections.abc import Sequence

from gateway_api.infra.runtime import ProviderCredentials
from gateway_api.message_mappers import build_openai_messages
from gateway_api.model_registry import Provider
from gateway_api.schemas import ChatMessage
from gateway_api.streaming.decoders import CohereBodyDecoder, StreamDecoder

from .base import HttpStreamingAdapter, ProviderRequest


class CohereChatProvider(HttpStreamingAdapter):
    provider = Provider.COHERE

    def build_request(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        temperature: float,
        credentials: ProviderCredentials,
    ) -> ProviderRequest:
        return ProviderRequest(
            url=f"{credentials.base_url}/chat",
            headers={
                "content-type": "application/json",
                "Authorization": f"Bearer {credentials.api_key}",
            },
            payload={
                "model": model,
                "messages": build_openai_messages(messages),
                "temperature": temperature,
                "stream": False,
            },
        )

    def create_decoder(self) -> StreamDecoder:
        return CohereBodyDecoder()
