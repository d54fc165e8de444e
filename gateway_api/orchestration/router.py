"""Model identifier resolution and provider dispatch."""

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass

from gateway_api.errors import UnsupportedProviderError
from gateway_api.model_registry import ModelIdentifier, Provider
from gateway_api.providers.base import ProviderAdapter
from gateway_api.schemas import ChatMessage

from .base import RoutingPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedModel:
    identifier: ModelIdentifier
    adapter: ProviderAdapter

    @property
    def provider(self) -> Provider:
        return self.identifier.provider

    @property
    def model(self) -> str:
        return self.identifier.model


class ModelRouter:
    def __init__(self, adapters: Mapping[Provider, ProviderAdapter], policy: RoutingPolicy) -> None:
        self._adapters = adapters
        self._policy = policy

    def resolve(self, identifier: str, messages: Sequence[ChatMessage]) -> ResolvedModel:
        """Map ``provider:model`` to an adapter, applying the routing policy for ``router``.

        Raises before any network call when the provider is unknown.
        """
        parsed = ModelIdentifier.parse(identifier)
        if parsed.provider is Provider.ROUTER:
            parsed = ModelIdentifier.parse(self._policy.choose(messages))
            if parsed.provider is Provider.ROUTER:
                raise RuntimeError("Routing policy must resolve to a concrete provider")

        adapter = self._adapters.get(parsed.provider)
        if adapter is None:
            raise UnsupportedProviderError(f"Unsupported provider: {parsed.provider.value}")

        logger.info(
            "Model resolved",
            extra={"requested_model": identifier, "resolved_model": str(parsed)},
        )
        return ResolvedModel(identifier=parsed, adapter=adapter)

    def dispatch(
        self, identifier: str, messages: Sequence[ChatMessage], temperature: float
    ) -> AsyncIterator[str]:
        target = self.resolve(identifier, messages)
        return target.adapter.stream(target.model, messages, temperature)
