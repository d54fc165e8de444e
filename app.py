"""AI gateway backend using FastAPI + Mangum for AWS Lambda."""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from functools import lru_cache

from fastapi import APIRouter, FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response, StreamingResponse
from mangum import Mangum

from gateway_api.constants import (
    ANONYMOUS_USER_ID,
    PERSIST_PARTIAL_ON_DISCONNECT_ENV,
    SANDBOX_TIMEOUT_ENV,
    SANDBOX_TIMEOUT_SECONDS,
)
from gateway_api.errors import BadRequestError, SandboxEnvironmentError, SearchError
from gateway_api.infra.runtime import (
    configured_providers,
    ensure_langsmith_configured,
    env_flag,
    env_float,
    flush_langsmith_traces,
)
from gateway_api.model_registry import MODEL_CATALOG, Provider
from gateway_api.orchestration.policies import PromptLengthPolicy
from gateway_api.orchestration.router import ModelRouter
from gateway_api.providers.anthropic_provider import AnthropicChatProvider
from gateway_api.providers.base import ProviderAdapter
from gateway_api.providers.cohere_provider import CohereChatProvider
from gateway_api.providers.google_provider import GoogleChatProvider
from gateway_api.providers.openai_provider import OpenAIChatProvider, XAIChatProvider
from gateway_api.schemas import (
    ChatRequest,
    CodeRunRequest,
    CodeRunResponse,
    ErrorResponse,
    ModelMetadata,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
    UsageResponse,
)
from gateway_api.services.chat_service import ChatService, ChatTurn
from gateway_api.services.code_sandbox import CodeSandbox
from gateway_api.services.usage import start_of_day, summarize_usage
from gateway_api.services.web_search import WebSearchConnector
from gateway_api.sse import SSE_HEADERS, encode_chat_event
from gateway_api.storage.base import ChatStore
from gateway_api.storage.memory import InMemoryChatStore

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

app = FastAPI()
router = APIRouter(prefix="/api")


def build_provider_adapters() -> dict[Provider, ProviderAdapter]:
    return {
        Provider.OPENAI: OpenAIChatProvider(),
        Provider.ANTHROPIC: AnthropicChatProvider(),
        Provider.GOOGLE: GoogleChatProvider(),
        Provider.XAI: XAIChatProvider(),
        Provider.COHERE: CohereChatProvider(),
    }


@lru_cache(maxsize=1)
def get_chat_store() -> ChatStore:
    return InMemoryChatStore()


@lru_cache(maxsize=1)
def get_chat_service() -> ChatService:
    return ChatService(
        router=ModelRouter(adapters=build_provider_adapters(), policy=PromptLengthPolicy()),
        store=get_chat_store(),
        persist_partial_on_disconnect=env_flag(PERSIST_PARTIAL_ON_DISCONNECT_ENV),
    )


@lru_cache(maxsize=1)
def get_code_sandbox() -> CodeSandbox:
    return CodeSandbox(timeout_seconds=env_float(SANDBOX_TIMEOUT_ENV, SANDBOX_TIMEOUT_SECONDS))


@lru_cache(maxsize=1)
def get_search_connector() -> WebSearchConnector:
    return WebSearchConnector()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return _error_response(422, "; ".join(details) or "Invalid request")


async def _chat_event_stream(turn: ChatTurn) -> AsyncIterator[str]:
    try:
        async with aclosing(turn.events()) as events:
            async for event in events:
                yield encode_chat_event(event)
    finally:
        await run_in_threadpool(flush_langsmith_traces)


@router.post("/chat", response_model=None)
async def chat(
    request: ChatRequest,
    user_id: str = Header(default=ANONYMOUS_USER_ID, alias="X-User-Id"),
) -> Response:
    """Stream an assistant reply as Server-Sent Events."""
    await run_in_threadpool(ensure_langsmith_configured)
    try:
        turn = await get_chat_service().start_turn(request, user_id=user_id)
    except BadRequestError as e:
        return _error_response(400, str(e))
    except Exception:
        logger.exception("Chat turn could not be started")
        return _error_response(500, "Chat turn could not be started")

    return StreamingResponse(
        _chat_event_stream(turn), media_type="text/event-stream", headers=SSE_HEADERS
    )


@router.post("/code/run", response_model=None)
async def run_code(request: CodeRunRequest) -> Response:
    """Execute a snippet in the bounded sandbox and return its captured output."""
    await run_in_threadpool(ensure_langsmith_configured)
    try:
        result = await get_code_sandbox().run(request.language, request.code)
    except BadRequestError as e:
        return _error_response(400, str(e))
    except SandboxEnvironmentError as e:
        logger.exception("Sandbox environment failure", extra={"language": request.language})
        return _error_response(500, str(e))
    except Exception:
        logger.exception("Sandbox run failed", extra={"language": request.language})
        return _error_response(500, "Code execution failed")
    finally:
        await run_in_threadpool(flush_langsmith_traces)

    response = CodeRunResponse(
        stdout=result.stdout,
        stderr=result.stderr,
        returncode=result.exit_code,
        timed_out=result.timed_out,
        duration_seconds=result.duration_seconds,
    )
    return JSONResponse(content=response.model_dump(by_alias=True))


@router.post("/search", response_model=None)
async def search(request: SearchRequest) -> Response:
    """Search the web and return ranked (title, url, snippet) results."""
    await run_in_threadpool(ensure_langsmith_configured)
    try:
        hits = await get_search_connector().search(request.query, request.max_results)
    except BadRequestError as e:
        return _error_response(400, str(e))
    except SearchError as e:
        logger.warning("Search failed", extra={"error": str(e)})
        return _error_response(502, str(e))
    except Exception:
        logger.exception("Search failed unexpectedly")
        return _error_response(500, "Search failed")
    finally:
        await run_in_threadpool(flush_langsmith_traces)

    response = SearchResponse(
        results=[SearchResultItem(title=hit.title, url=hit.url, snippet=hit.snippet) for hit in hits]
    )
    return JSONResponse(content=response.model_dump())


@router.get("/usage", response_model=UsageResponse)
async def usage(
    user_id: str = Header(default=ANONYMOUS_USER_ID, alias="X-User-Id"),
) -> UsageResponse:
    """Summarize today's usage ledger for the caller, per model."""
    records = await get_chat_store().list_usage(user_id, since=start_of_day())
    return UsageResponse(usage=summarize_usage(records))


@router.get("/models", response_model=list[ModelMetadata])
def list_models() -> list[ModelMetadata]:
    """Return the known model identifiers and their capabilities."""
    return [
        ModelMetadata(
            id=model_id,
            provider=info.provider.value,
            label=info.label,
            supports_history=info.supports_history,
            streams_natively=info.streams_natively,
        )
        for model_id, info in MODEL_CATALOG.items()
    ]


@router.get("/health")
def health() -> dict[str, object]:
    """Health check endpoint."""
    return {"status": "ok", "providers": configured_providers()}


app.include_router(router)


handler = Mangum(app)
