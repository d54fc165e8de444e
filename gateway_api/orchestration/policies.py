"""Routing policies for the ``router`` meta-provider."""

import logging
from collections.abc import Sequence

from gateway_api.constants import (
    ROUTER_DEFAULT_MODEL,
    ROUTER_LONG_CONTEXT_MODEL,
    ROUTER_LONG_PROMPT_THRESHOLD,
)
from gateway_api.message_mappers import last_user_message, message_text
from gateway_api.schemas import ChatMessage

from .base import RoutingPolicy

logger = logging.getLogger(__name__)


class PromptLengthPolicy(RoutingPolicy):
    """Send long latest prompts to a long-context model, everything else to a fast default."""

    def __init__(
        self,
        threshold: int = ROUTER_LONG_PROMPT_THRESHOLD,
        long_context_model: str = ROUTER_LONG_CONTEXT_MODEL,
        default_model: str = ROUTER_DEFAULT_MODEL,
    ) -> None:
        self._threshold = threshold
        self._long_context_model = long_context_model
        self._default_model = default_model

    def choose(self, messages: Sequence[ChatMessage]) -> str:
        latest = last_user_message(messages)
        prompt_length = len(message_text(latest)) if latest is not None else 0
        chosen = (
            self._long_context_model if prompt_length > self._threshold else self._default_model
        )
        logger.info(
            "Router policy selected model",
            extra={"prompt_length": prompt_length, "model": chosen},
        )
        return chosen
