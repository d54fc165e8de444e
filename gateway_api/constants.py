"""Shared constants and literal types for the AI gateway."""

from typing import Literal

AWS_REGION = "ap-northeast-1"
LANGSMITH_PROJECT = "ai-gateway"
LANGSMITH_API_KEY_ENV = "LANGSMITH_API_KEY"
LANGSMITH_API_KEY_PARAMETER_ENV = "LANGSMITH_API_KEY_PARAMETER"
ANONYMOUS_USER_ID = "anonymous"

DEFAULT_MODEL = "openai:gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7
ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_MAX_TOKENS = 4096
COHERE_FRAGMENT_SIZE = 120
PROVIDER_CONNECT_TIMEOUT_SECONDS = 10.0
PROVIDER_READ_TIMEOUT_SECONDS = 120.0

ROUTER_LONG_PROMPT_THRESHOLD = 1200
ROUTER_LONG_CONTEXT_MODEL = "anthropic:claude-3-5-sonnet"
ROUTER_DEFAULT_MODEL = "openai:gpt-4o-mini"

PERSIST_PARTIAL_ON_DISCONNECT_ENV = "PERSIST_PARTIAL_ON_DISCONNECT"
CHARS_PER_TOKEN = 4
USAGE_COST_PER_TOKEN = 0.000001

SANDBOX_TIMEOUT_ENV = "SANDBOX_TIMEOUT_SECONDS"
SANDBOX_TIMEOUT_SECONDS = 10.0
SANDBOX_SCRATCH_PREFIX = "code-runner-"
MAX_CODE_LENGTH = 100_000

SEARCH_ENDPOINT = "https://html.duckduckgo.com/html/"
SEARCH_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
SEARCH_TIMEOUT_SECONDS = 15.0
DEFAULT_SEARCH_RESULTS = 10
MAX_SEARCH_RESULTS = 25

SSE_DONE_SENTINEL = "[DONE]"

Role = Literal["system", "user", "assistant"]
OperationType = Literal["chat"]
