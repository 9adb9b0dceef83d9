"""vibechat — FastAPI app serving the moderated, tool-augmented chat stream.

Loads config.yaml on startup. Exposes /api/chat for SSE streaming, plus
operational endpoints for health, the model catalog, config viewing, and
hot-reload.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from vibechat.catalog import UnknownModelError, find_model, get_available_models
from vibechat.config import get_config, load_config, reload_config
from vibechat.runtime import ChatOrchestrator, stream_chat
from vibechat.schemas import ChatRequest, to_sse

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load config on startup."""
    config = load_config()
    logger.info(
        f"vibechat started (origins={config.allowed_origins}, "
        f"auth={'enabled' if config.api_key else 'disabled'}, "
        f"moderation={'enabled' if config.moderation.enabled else 'disabled'}, "
        f"models={len(config.models)}, step_budget={config.step_budget})"
    )
    yield
    logger.info("vibechat shutting down")


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()

app = FastAPI(title="vibechat", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------


async def verify_api_key(request: Request) -> None:
    """Validate X-API-Key header against the configured key.
    If no api_key is set in config, auth is disabled (dev mode).
    """
    config = get_config()
    if not config.api_key:
        return

    key = request.headers.get("X-API-Key")
    if key != config.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Chat endpoint
# ---------------------------------------------------------------------------


@app.post("/api/chat", dependencies=[Depends(verify_api_key)])
async def chat(request: Request):
    """Moderate the conversation and stream the model's answer.

    Streams response as Server-Sent Events (SSE). Request validation and
    model lookup happen before the stream opens.
    """
    config = get_config()

    try:
        models, body = await asyncio.gather(get_available_models(config), request.json())
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body is not valid JSON")

    try:
        chat_request = ChatRequest.model_validate(body)
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    model_id = chat_request.model_id or config.default_model
    try:
        model = find_model(models, model_id)
    except UnknownModelError as e:
        raise HTTPException(status_code=400, detail=str(e))

    orchestrator = ChatOrchestrator.from_config(config)
    logger.info(
        f"Chat request: model={model.id}, messages={len(chat_request.messages)}, "
        f"reasoning={chat_request.reasoning_effort}"
    )

    async def stream():
        async for event in stream_chat(
            orchestrator,
            chat_request.messages,
            model,
            reasoning_effort=chat_request.reasoning_effort,
            maxsize=config.sink_maxsize,
        ):
            yield to_sse(event)
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "x-vercel-ai-ui-message-stream": "v1",
        },
    )


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health():
    """Liveness check."""
    config = get_config()
    return {
        "status": "healthy",
        "models": len(config.models),
        "moderation": config.moderation.enabled,
    }


@app.get("/models")
async def list_models():
    """Return the model catalog and the default model id."""
    config = get_config()
    models = await get_available_models(config)
    return {
        "default": config.default_model,
        "models": [{"id": m.id, "name": m.name} for m in models],
    }


@app.get("/config")
async def get_current_config():
    """Return current config as JSON, without secrets."""
    return get_config().public_dump()


@app.post("/reload", dependencies=[Depends(verify_api_key)])
async def reload():
    """Hot-reload config.yaml without container restart."""
    try:
        new_config = reload_config()
    except Exception as e:
        logger.error(f"Reload failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}")

    return {
        "status": "reloaded",
        "models": len(new_config.models),
        "default_model": new_config.default_model,
    }
