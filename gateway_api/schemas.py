"""Pydantic schemas for the gateway API."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_MODEL,
    DEFAULT_SEARCH_RESULTS,
    DEFAULT_TEMPERATURE,
    MAX_CODE_LENGTH,
    MAX_SEARCH_RESULTS,
    Role,
)
from .model_registry import ModelIdentifier

MessageContent = str | list[dict[str, Any]]


class ChatMessage(BaseModel):
    role: Role
    content: MessageContent


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(min_length=1)
    model: str = DEFAULT_MODEL
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0, le=2)
    chat_id: str | None = Field(default=None, alias="chatId")

    @field_validator("model")
    @classmethod
    def validate_model(cls, model: str) -> str:
        ModelIdentifier.parse(model)
        return model

    @field_validator("chat_id", mode="before")
    @classmethod
    def coerce_chat_id(cls, chat_id: Any) -> Any:
        if isinstance(chat_id, int) and not isinstance(chat_id, bool):
            return str(chat_id)
        return chat_id


class CodeRunRequest(BaseModel):
    language: str = Field(min_length=1)
    code: str = Field(min_length=1, max_length=MAX_CODE_LENGTH)


class CodeRunResponse(BaseModel):
    ok: bool = True
    stdout: str
    stderr: str
    returncode: int | None
    timed_out: bool = Field(serialization_alias="timedOut")
    duration_seconds: float = Field(serialization_alias="durationSeconds")


class SearchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1)
    max_results: int = Field(
        default=DEFAULT_SEARCH_RESULTS, alias="maxResults", ge=1, le=MAX_SEARCH_RESULTS
    )

    @field_validator("query")
    @classmethod
    def validate_query(cls, query: str) -> str:
        if not query.strip():
            raise ValueError("query must not be blank")
        return query.strip()


class SearchResultItem(BaseModel):
    title: str
    url: str
    snippet: str


class SearchResponse(BaseModel):
    ok: bool = True
    results: list[SearchResultItem]


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str


class ModelMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    provider: str
    label: str
    supports_history: bool = Field(alias="supportsHistory")
    streams_natively: bool = Field(alias="streamsNatively")


class UsageSummaryItem(BaseModel):
    model: str
    tokens: int
    operations: int
    cost: float


class UsageResponse(BaseModel):
    ok: bool = True
    usage: list[UsageSummaryItem]
