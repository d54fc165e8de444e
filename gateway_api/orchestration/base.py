"""Orchestration interfaces for model routing."""

from collections.abc import Sequence
from typing import Protocol

from gateway_api.schemas import ChatMessage


class RoutingPolicy(Protocol):
    def choose(self, messages: Sequence[ChatMessage]) -> str:
        """Return the concrete ``provider:model`` identifier to use for this conversation."""
        ...
