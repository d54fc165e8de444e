"""Provider interfaces and the shared HTTP streaming adapter."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol

import httpx

from gateway_api.constants import PROVIDER_CONNECT_TIMEOUT_SECONDS, PROVIDER_READ_TIMEOUT_SECONDS
from gateway_api.errors import ProviderError, StreamError
from gateway_api.infra.runtime import ProviderCredentials, get_provider_credentials
from gateway_api.model_registry import PROVIDER_SETTINGS, Provider
from gateway_api.schemas import ChatMessage
from gateway_api.streaming.decoders import StreamDecoder

logger = logging.getLogger(__name__)

CredentialsGetter = Callable[[Provider], ProviderCredentials]
ClientFactory = Callable[[], httpx.AsyncClient]


class ProviderAdapter(Protocol):
    provider: Provider

    def stream(
        self, model: str, messages: Sequence[ChatMessage], temperature: float
    ) -> AsyncIterator[str]:
        """Stream the assistant reply as ordered text fragments."""
        ...


@dataclass(frozen=True)
class ProviderRequest:
    url: str
    headers: dict[str, str]
    payload: dict[str, Any]


def default_client_factory() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            PROVIDER_READ_TIMEOUT_SECONDS, connect=PROVIDER_CONNECT_TIMEOUT_SECONDS
        )
    )


class HttpStreamingAdapter(ABC):
    """Adapter that POSTs one request and decodes the response body as it arrives.

    A fresh HTTP client is built per call and credentials are read per call on a
    worker thread, so instances carry no mutable state and can serve concurrent
    requests.
    """

    provider: ClassVar[Provider]

    def __init__(
        self,
        get_credentials: CredentialsGetter = get_provider_credentials,
        client_factory: ClientFactory = default_client_factory,
    ) -> None:
        self._get_credentials = get_credentials
        self._client_factory = client_factory

    @property
    def label(self) -> str:
        return PROVIDER_SETTINGS[self.provider].label

    @abstractmethod
    def build_request(
        self,
        model: str,
        messages: Sequence[ChatMessage],
        temperature: float,
        credentials: ProviderCredentials,
    ) -> ProviderRequest: ...

    @abstractmethod
    def create_decoder(self) -> StreamDecoder: ...

    async def stream(
        self, model: str, messages: Sequence[ChatMessage], temperature: float
    ) -> AsyncIterator[str]:
        credentials = await asyncio.to_thread(self._get_credentials, self.provider)
        request = self.build_request(model, messages, temperature, credentials)
        decoder = self.create_decoder()

        start = time.time()
        fragment_count = 0
        try:
            async with self._client_factory() as client:
                async with client.stream(
                    "POST", request.url, headers=request.headers, json=request.payload
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        logger.warning(
                            "Provider request rejected",
                            extra={
                                "provider": self.provider.value,
                                "model": model,
                                "status_code": response.status_code,
                                "response_excerpt": response.text[:500],
                            },
                        )
                        raise ProviderError(
                            self.provider.value,
                            f"{self.label} request failed with status {response.status_code}",
                            status_code=response.status_code,
                        )

                    async for chunk in response.aiter_bytes():
                        decoded = decoder.feed(chunk)
                        for fragment in decoded.fragments:
                            fragment_count += 1
                            yield fragment
                        if decoded.done:
                            break
                    else:
                        tail = decoder.flush()
                        if not decoder.complete:
                            logger.warning(
                                "Provider stream ended before completion",
                                extra={
                                    "provider": self.provider.value,
                                    "model": model,
                                    "fragment_count": fragment_count,
                                },
                            )
                            raise ProviderError(
                                self.provider.value,
                                f"{self.label} stream ended before completion",
                            )
                        for fragment in tail.fragments:
                            fragment_count += 1
                            yield fragment
        except httpx.HTTPError as exc:
            raise ProviderError(self.provider.value, f"{self.label} request failed: {exc}") from exc
        except StreamError as exc:
            raise ProviderError(
                self.provider.value, f"{self.label} stream failed: {exc}"
            ) from exc

        logger.info(
            "Provider stream completed",
            extra={
                "provider": self.provider.value,
                "model": model,
                "fragment_count": fragment_count,
                "duration_ms": int((time.time() - start) * 1000),
            },
        )
