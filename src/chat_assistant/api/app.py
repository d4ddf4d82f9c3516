"""
FastAPI Application Module

Serves the chat-completion endpoint that forwards a user message to the
configured completion provider and persists both sides of the exchange,
plus a small conversation data surface over the same repository.

Key Features:
- Uniform ``500 {"error": ...}`` responses from the completion endpoint
- CORS preflight for browser clients
- Structured logging, Prometheus counters and OpenTelemetry tracing
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import BaseModel, ValidationError
from structlog import get_logger

from ..config import Settings
from ..domain.models import DEFAULT_TITLE, CompletionRequest, Conversation, Message
from ..errors import ChatError, NotFoundError, RequestValidationError
from ..logging_config import configure_logging
from ..repositories.base import Repository
from ..repositories.factory import build_repository
from ..services.completion import CompletionHandler
from ..services.llm import build_provider

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total failed requests", registry=CUSTOM_REGISTRY)
COMPLETIONS = Counter("completions_total", "Successful chat completions", registry=CUSTOM_REGISTRY)
TOKENS = Counter("completion_tokens_total", "Provider tokens reported as used", registry=CUSTOM_REGISTRY)

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

logger = get_logger()


class ConversationCreate(BaseModel):
    """Defines the structure for conversation creation requests"""
    user_id: str
    title: str = DEFAULT_TITLE


# Core service instances
settings = Settings.from_env()
repository = build_repository(settings)
completion_handler = CompletionHandler(
    repository,
    build_provider(settings),
    system_prompt=settings.system_prompt,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configures logging on startup and closes outbound clients on shutdown"""
    configure_logging(settings.log_level, settings.json_logs)
    logger.info("application_startup_complete", data_store=settings.data_store)

    yield

    await completion_handler.provider.close()
    await repository.close()
    logger.info("application_shutdown_complete")


def get_repository() -> Repository:
    """Returns the conversation storage instance"""
    return repository


def get_completion_handler() -> CompletionHandler:
    """Returns the completion handler"""
    return completion_handler


app = FastAPI(
    title="Chat Assistant API",
    description="Chat completion endpoint with persisted conversation history",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=CORS_ALLOWED_HEADERS,
)

# Set up request tracing
FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Tracks requests and counts server errors"""
    REQUESTS.inc()
    logger.info("request_started", method=request.method, path=request.url.path)
    try:
        response = await call_next(request)
    except Exception as e:
        ERRORS.inc()
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise
    if response.status_code >= 500:
        ERRORS.inc()
    return response


@app.post("/chat-completion")
async def chat_completion(
    request: Request,
    handler: CompletionHandler = Depends(get_completion_handler)
) -> JSONResponse:
    """
    Stores the user message, asks the provider for a reply and stores it.
    Every failure is reported as 500 with an ``error`` field.
    """
    try:
        try:
            body = await request.json()
            payload = CompletionRequest.model_validate(body)
        except (ValueError, ValidationError) as e:
            # A missing or malformed body is reported like a missing field.
            handler.provider.ensure_configured()
            raise RequestValidationError("Missing required parameters") from e

        result = await handler.handle(payload)
    except ChatError as e:
        logger.error("chat_completion_error", error=e.message, error_code=e.error_code)
        return JSONResponse(status_code=500, content={"error": e.message})
    except Exception as e:
        logger.exception("chat_completion_unexpected_error", error=str(e))
        return JSONResponse(
            status_code=500,
            content={"error": str(e) or "An unexpected error occurred"},
        )

    COMPLETIONS.inc()
    if result.usage and result.usage.total_tokens:
        TOKENS.inc(result.usage.total_tokens)
    return JSONResponse(content=result.model_dump(mode="json"))


@app.get("/conversations", response_model=List[Conversation])
async def list_conversations(
    user_id: str,
    repository: Repository = Depends(get_repository)
) -> List[Conversation]:
    """Lists a user's conversations, most recently updated first"""
    try:
        return await repository.list_conversations(user_id)
    except ChatError as e:
        logger.error("list_conversations_error", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load conversations")


@app.post("/conversations", response_model=Conversation)
async def create_conversation(
    conversation: ConversationCreate,
    repository: Repository = Depends(get_repository)
) -> Conversation:
    """Starts a new conversation thread"""
    try:
        return await repository.create_conversation(conversation.user_id, conversation.title)
    except ChatError as e:
        logger.error("create_conversation_error", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to create new conversation")


@app.get("/conversations/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str,
    repository: Repository = Depends(get_repository)
) -> Conversation:
    """Retrieves a specific conversation by its ID"""
    try:
        conversation: Optional[Conversation] = await repository.get_conversation(conversation_id)
    except ChatError as e:
        logger.error("get_conversation_error", conversation_id=conversation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to get conversation")
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@app.delete("/conversations/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str,
    repository: Repository = Depends(get_repository)
) -> Response:
    """Deletes a conversation together with its messages"""
    try:
        await repository.delete_conversation(conversation_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except ChatError as e:
        logger.error("delete_conversation_error", conversation_id=conversation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to delete conversation")
    return Response(status_code=204)


@app.get("/conversations/{conversation_id}/messages", response_model=List[Message])
async def get_messages(
    conversation_id: str,
    repository: Repository = Depends(get_repository)
) -> List[Message]:
    """Gets the message history for a conversation, oldest first"""
    try:
        if await repository.get_conversation(conversation_id) is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return await repository.get_messages(conversation_id)
    except ChatError as e:
        logger.error("get_messages_error", conversation_id=conversation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to load messages")


@app.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")
