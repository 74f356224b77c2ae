"""
Narrative generation with automatic fallback.

Orchestration Order:
1. Rate limiter - Denied requests never reach the model
2. Credential check - A missing key routes straight to the fallback
3. Hosted model - Success is logged against the rate limiter
4. Deterministic rules - Used whenever any earlier step declines or fails
"""

import asyncio
import logging
import sqlite3
from typing import Optional

from timecraft.config.loader import Settings
from timecraft.sdk.openai_client import NarrativeClient, resolve_api_key, validate_api_key
from timecraft.storage.repository import InMemoryLedgerStore, LedgerStore, SqliteLedgerStore
from .models import GenerationMethod, GenerationResult, TimeEntryInput
from .rate_limiter import DEFAULT_TOKENS_PER_REQUEST, RateLimiter
from .transformer import apply_deterministic_rules

logger = logging.getLogger(__name__)


class NarrativeEngine:
    """Composes rate limiting, the hosted model and the rule-based fallback.

    generate_with_fallback never raises: every failure below it is absorbed
    and answered with the deterministic narrative.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        client: Optional[NarrativeClient] = None,
        api_key: Optional[str] = None,
        tokens_per_request: int = DEFAULT_TOKENS_PER_REQUEST,
        timeout: Optional[float] = None
    ):
        """Initialize the engine.

        Args:
            rate_limiter: Limiter consulted before and updated after model calls
            client: Hosted model client; None forces fallback mode
            api_key: Credential checked before each model call
            tokens_per_request: Token estimate logged per successful request
            timeout: Optional deadline in seconds for the whole model call
        """
        self.rate_limiter = rate_limiter
        self.client = client
        self.api_key = api_key
        self.tokens_per_request = tokens_per_request
        self.timeout = timeout

    async def generate_with_fallback(
        self,
        activity: str,
        subject: str,
        goal: str
    ) -> GenerationResult:
        """Generate a narrative, preferring the hosted model.

        Args:
            activity: Activity id
            subject: Who or what the work concerned
            goal: Purpose of the work

        Returns:
            GenerationResult tagged "ai" or "fallback"
        """
        # ledger reads and writes hit SQLite, keep them off the event loop
        decision = await asyncio.to_thread(self.rate_limiter.can_make_request)
        if not decision.allowed:
            logger.warning("%s, using fallback mode", decision.reason)
            return self._fallback(activity, subject, goal)

        if self.client is None or not validate_api_key(self.api_key):
            logger.warning("OpenAI API key not configured, using fallback mode")
            return self._fallback(activity, subject, goal)

        try:
            call = self.client.generate(activity, subject, goal)
            if self.timeout is not None:
                output = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                output = await call
        except Exception as e:
            logger.error("OpenAI generation failed, using fallback: %r", e)
            return self._fallback(activity, subject, goal)

        await asyncio.to_thread(self.rate_limiter.log_request, self.tokens_per_request)
        return GenerationResult(output=output, method=GenerationMethod.AI)

    async def generate_entry(self, entry: TimeEntryInput) -> GenerationResult:
        """Generate a narrative for a validated time entry."""
        return await self.generate_with_fallback(entry.activity, entry.subject, entry.goal)

    @staticmethod
    def _fallback(activity: str, subject: str, goal: str) -> GenerationResult:
        return GenerationResult(
            output=apply_deterministic_rules(activity, subject, goal),
            method=GenerationMethod.FALLBACK
        )


def build_engine(
    settings: Settings,
    api_key: Optional[str] = None,
    store: Optional[LedgerStore] = None,
    timeout: Optional[float] = None
) -> NarrativeEngine:
    """Wire an engine from settings.

    The model client is only constructed when a valid credential exists.
    If the ledger database cannot be opened, an in-memory ledger is used.

    Args:
        settings: Application settings
        api_key: Credential (defaults to OPENAI_API_KEY)
        store: Ledger store (defaults to SQLite at settings.storage.path)
        timeout: Optional deadline in seconds for model calls

    Returns:
        A ready NarrativeEngine
    """
    if store is None:
        try:
            store = SqliteLedgerStore(settings.storage.path)
        except (sqlite3.Error, OSError) as e:
            logger.error("Failed to open ledger at %s: %s", settings.storage.path, e)
            store = InMemoryLedgerStore()

    rate_limiter = RateLimiter(
        settings.rate_limits,
        store,
        cost_per_million_tokens=settings.usage.cost_per_million_tokens
    )

    api_key = resolve_api_key(api_key)
    client = None
    if validate_api_key(api_key):
        client = NarrativeClient(
            api_key=api_key,
            model=settings.model.name,
            temperature=settings.model.temperature,
            max_tokens=settings.model.max_tokens,
            max_retries=settings.retry.max_retries,
            retry_delay=settings.retry.base_delay
        )

    return NarrativeEngine(
        rate_limiter=rate_limiter,
        client=client,
        api_key=api_key,
        tokens_per_request=settings.usage.tokens_per_request,
        timeout=timeout
    )
