"""
HTTP endpoint for narrative generation.

Keeps the OpenAI key on the server. Failures are answered with
``useFallback: true`` so the caller can switch to deterministic rules.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from timecraft.config.loader import Settings, load_settings
from timecraft.sdk.openai_client import NarrativeClient, resolve_api_key, validate_api_key

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("activity", "subject", "goal")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application.

    One NarrativeClient is shared by all requests. It is built on the first
    request that finds a valid key and closed on shutdown. The endpoint makes
    a single upstream attempt so an upstream 429 is passed through at once;
    the caller falls back instead of waiting on retries.

    Args:
        settings: Application settings (loaded from TIMECRAFT_CONFIG when omitted)

    Returns:
        Configured FastAPI app
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.narrative_client = None
        yield
        client = app.state.narrative_client
        if client is not None:
            await client.close()
            app.state.narrative_client = None

    app = FastAPI(title="TimeCraft", lifespan=lifespan)
    app.state.narrative_client = None

    def get_client(api_key: str) -> NarrativeClient:
        if app.state.narrative_client is None:
            app.state.narrative_client = NarrativeClient(
                api_key=api_key,
                model=settings.model.name,
                temperature=settings.model.temperature,
                max_tokens=settings.model.max_tokens,
                max_retries=0
            )
        return app.state.narrative_client

    @app.post("/api/generate")
    async def generate(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None

        if not isinstance(body, dict) or not all(
            isinstance(body.get(name), str) and body[name].strip() for name in REQUIRED_FIELDS
        ):
            return JSONResponse({"error": "Missing required fields"}, status_code=400)

        api_key = resolve_api_key()
        if not validate_api_key(api_key):
            return JSONResponse(
                {"error": "API key not configured", "useFallback": True},
                status_code=503
            )

        try:
            client = get_client(api_key)
            output = await client.generate(body["activity"], body["subject"], body["goal"])
        except Exception as e:
            logger.error("OpenAI API error: %s", e)
            if getattr(e, "status_code", None) == 429:
                return JSONResponse(
                    {"error": "Rate limit exceeded", "useFallback": True},
                    status_code=429
                )
            return JSONResponse(
                {"error": str(e) or "Generation failed", "useFallback": True},
                status_code=500
            )

        return JSONResponse({"output": output, "method": "ai"})

    return app
