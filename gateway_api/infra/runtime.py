"""Runtime infrastructure helpers for credentials, tracing, and process settings."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from langsmith.run_trees import get_cached_client

from gateway_api.constants import (
    AWS_REGION,
    LANGSMITH_API_KEY_ENV,
    LANGSMITH_API_KEY_PARAMETER_ENV,
    LANGSMITH_PROJECT,
)
from gateway_api.errors import MissingCredentialError
from gateway_api.model_registry import PROVIDER_SETTINGS, Provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderCredentials:
    api_key: str
    base_url: str


def _get_secure_parameter(ssm_client: Any, parameter_name: str) -> str:
    result = ssm_client.get_parameter(Name=parameter_name, WithDecryption=True)
    value = result["Parameter"].get("Value")
    if not value:
        raise RuntimeError(f"SSM parameter {parameter_name} has no value")
    return value


@lru_cache(maxsize=32)
def read_secure_parameter(parameter_name: str) -> str:
    ssm_client = boto3.client("ssm", region_name=os.environ.get("AWS_REGION", AWS_REGION))
    return _get_secure_parameter(ssm_client, parameter_name)


def get_provider_credentials(provider: Provider) -> ProviderCredentials:
    """Resolve a provider's key and endpoint from the environment at call time.

    The key comes from ``<PROVIDER>_API_KEY`` or, when that is unset, from the
    SSM parameter named by ``<PROVIDER>_API_KEY_PARAMETER``.
    """
    settings = PROVIDER_SETTINGS[provider]
    api_key = os.environ.get(settings.api_key_env)
    if not api_key:
        parameter_name = os.environ.get(settings.api_key_parameter_env)
        if parameter_name:
            try:
                api_key = read_secure_parameter(parameter_name)
            except (BotoCoreError, ClientError, RuntimeError) as exc:
                raise MissingCredentialError(
                    provider.value, f"{settings.label} API key could not be read from SSM"
                ) from exc
    if not api_key:
        raise MissingCredentialError(provider.value, f"{settings.api_key_env} is not configured")

    base_url = os.environ.get(settings.base_url_env) or settings.default_base_url
    return ProviderCredentials(api_key=api_key, base_url=base_url.rstrip("/"))


def configured_providers() -> dict[str, bool]:
    """Report which providers have a credential source, without fetching secrets."""
    return {
        provider.value: bool(
            os.environ.get(settings.api_key_env)
            or os.environ.get(settings.api_key_parameter_env)
        )
        for provider, settings in PROVIDER_SETTINGS.items()
    }


def env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric setting", extra={"setting": name})
        return default


def _get_langsmith_api_key() -> str | None:
    api_key = os.environ.get(LANGSMITH_API_KEY_ENV)
    if api_key:
        return api_key
    parameter_name = os.environ.get(LANGSMITH_API_KEY_PARAMETER_ENV)
    if not parameter_name:
        return None
    try:
        return read_secure_parameter(parameter_name)
    except (BotoCoreError, ClientError, RuntimeError):
        logger.warning(
            "Optional SSM parameter is unavailable; disabling dependent feature",
            extra={"parameter_name": parameter_name},
            exc_info=True,
        )
        return None


def _configure_langsmith(langsmith_api_key: str | None) -> None:
    if not langsmith_api_key:
        os.environ.pop("LANGSMITH_TRACING", None)
        logger.info("LangSmith tracing disabled because API key is unavailable")
        return

    os.environ["LANGSMITH_TRACING"] = "true"
    os.environ["LANGSMITH_API_KEY"] = langsmith_api_key
    os.environ.setdefault("LANGSMITH_PROJECT", LANGSMITH_PROJECT)


@lru_cache(maxsize=1)
def ensure_langsmith_configured() -> None:
    """Configure LangSmith environment variables (called once via lru_cache)."""
    _configure_langsmith(_get_langsmith_api_key())


def flush_langsmith_traces() -> None:
    if os.environ.get("LANGSMITH_TRACING", "").lower() != "true":
        return
    if not os.environ.get("LANGSMITH_API_KEY"):
        return
    try:
        get_cached_client().flush()
    except Exception:
        logger.warning("Failed to flush LangSmith traces", exc_info=True)
