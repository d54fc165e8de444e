"""Provider registry and model identifier parsing."""

from dataclasses import dataclass
from enum import StrEnum

from .errors import BadRequestError, UnsupportedProviderError


class Provider(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    XAI = "xai"
    COHERE = "cohere"
    ROUTER = "router"


@dataclass(frozen=True)
class ModelIdentifier:
    """A parsed ``provider:model-name`` identifier."""

    provider: Provider
    model: str

    @classmethod
    def parse(cls, value: str) -> "ModelIdentifier":
        provider_name, separator, model = value.partition(":")
        if not separator or not provider_name or not model:
            raise BadRequestError(
                f"Invalid model identifier: {value!r}. Expected the form provider:model"
            )
        try:
            provider = Provider(provider_name)
        except ValueError:
            raise UnsupportedProviderError(f"Unsupported provider: {provider_name}") from None
        return cls(provider=provider, model=model)

    def __str__(self) -> str:
        return f"{self.provider.value}:{self.model}"


@dataclass(frozen=True)
class ProviderSettings:
    label: str
    api_key_env: str
    base_url_env: str
    default_base_url: str

    @property
    def api_key_parameter_env(self) -> str:
        return f"{self.api_key_env}_PARAMETER"


PROVIDER_SETTINGS: dict[Provider, ProviderSettings] = {
    Provider.OPENAI: ProviderSettings(
        label="OpenAI",
        api_key_env="OPENAI_API_KEY",
        base_url_env="OPENAI_BASE_URL",
        default_base_url="https://api.openai.com/v1",
    ),
    Provider.ANTHROPIC: ProviderSettings(
        label="Anthropic",
        api_key_env="ANTHROPIC_API_KEY",
        base_url_env="ANTHROPIC_BASE_URL",
        default_base_url="https://api.anthropic.com/v1",
    ),
    Provider.GOOGLE: ProviderSettings(
        label="Gemini",
        api_key_env="GOOGLE_API_KEY",
        base_url_env="GOOGLE_BASE_URL",
        default_base_url="https://generativelanguage.googleapis.com/v1beta",
    ),
    Provider.XAI: ProviderSettings(
        label="xAI",
        api_key_env="XAI_API_KEY",
        base_url_env="XAI_BASE_URL",
        default_base_url="https://api.x.ai/v1",
    ),
    Provider.COHERE: ProviderSettings(
        label="Cohere",
        api_key_env="COHERE_API_KEY",
        base_url_env="COHERE_BASE_URL",
        default_base_url="https://api.cohere.com/v2",
    ),
}


@dataclass(frozen=True)
class ModelInfo:
    provider: Provider
    label: str
    supports_history: bool = True
    streams_natively: bool = True


MODEL_CATALOG: dict[str, ModelInfo] = {
    # --- OpenAI ---
    "openai:gpt-4o": ModelInfo(provider=Provider.OPENAI, label="GPT-4o"),
    "openai:gpt-4o-mini": ModelInfo(provider=Provider.OPENAI, label="GPT-4o mini"),
    # --- Anthropic ---
    "anthropic:claude-3-7-sonnet": ModelInfo(
        provider=Provider.ANTHROPIC, label="Claude 3.7 Sonnet"
    ),
    "anthropic:claude-3-5-sonnet": ModelInfo(
        provider=Provider.ANTHROPIC, label="Claude 3.5 Sonnet"
    ),
    # --- Google (single flattened user turn) ---
    "google:gemini-2.5-pro": ModelInfo(
        provider=Provider.GOOGLE, label="Gemini 2.5 Pro", supports_history=False
    ),
    "google:gemini-2.5-flash": ModelInfo(
        provider=Provider.GOOGLE, label="Gemini 2.5 Flash", supports_history=False
    ),
    # --- xAI ---
    "xai:grok-2": ModelInfo(provider=Provider.XAI, label="Grok 2"),
    # --- Cohere (single JSON body, re-chunked) ---
    "cohere:command-r-plus": ModelInfo(
        provider=Provider.COHERE, label="Command R+", streams_natively=False
    ),
    # --- Meta-provider ---
    "router:auto": ModelInfo(provider=Provider.ROUTER, label="Auto (prompt-length router)"),
}
