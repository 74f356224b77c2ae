"""
OpenAI client for billing narrative generation.

Issues a single chat completion per attempt and retries transient failures
with linear backoff. Errors that survive the retry budget propagate to the
caller, which owns the fallback decision.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

from openai import APIConnectionError, APITimeoutError, AsyncOpenAI

from ..core.prompts import build_system_prompt, build_user_prompt

logger = logging.getLogger(__name__)

API_KEY_ENV_VAR = "OPENAI_API_KEY"
PLACEHOLDER_API_KEY = "sk-your-api-key-here"


class EmptyResponseError(Exception):
    """Raised when the model returns no usable content."""


def resolve_api_key(api_key: Optional[str] = None) -> Optional[str]:
    """Return the explicit key, else the one from the environment."""
    return api_key if api_key is not None else os.environ.get(API_KEY_ENV_VAR)


def validate_api_key(api_key: Optional[str]) -> bool:
    """Check that a credential is set and is not the placeholder value."""
    return bool(api_key) and api_key != PLACEHOLDER_API_KEY


def get_api_key_status(api_key: Optional[str]) -> Dict[str, bool]:
    """Describe a credential for diagnostics without revealing it."""
    return {
        "configured": bool(api_key),
        "is_placeholder": api_key == PLACEHOLDER_API_KEY,
    }


def is_retryable_error(error: BaseException) -> bool:
    """Classify an error as transient (network, 429, 5xx, timeout).

    Args:
        error: Exception raised by a completion attempt

    Returns:
        True if the request may succeed when resubmitted
    """
    if isinstance(error, (APIConnectionError, APITimeoutError, TimeoutError)):
        return True

    if "fetch" in str(error).lower():
        return True

    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    if isinstance(status, int):
        if status == 429:
            return True
        if 500 <= status < 600:
            return True

    if getattr(error, "code", None) == "ETIMEDOUT":
        return True

    return False


class NarrativeClient:
    """Async OpenAI wrapper that turns a time entry into a narrative.

    The SDK's own retries are disabled so the retry budget here is the
    only one in effect.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        max_tokens: int = 300,
        max_retries: int = 2,
        retry_delay: float = 1.0
    ):
        """Initialize the narrative client.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY)
            model: OpenAI model name
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            max_retries: Additional attempts allowed for transient errors
            retry_delay: Base backoff in seconds, multiplied by the attempt number

        Raises:
            ValueError: If model is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")

        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.client = AsyncOpenAI(api_key=resolve_api_key(api_key), max_retries=0)

    async def generate(
        self,
        activity: str,
        subject: str,
        goal: str,
        retry_count: int = 0
    ) -> str:
        """Generate a billing narrative.

        Args:
            activity: Activity id
            subject: Who or what the work concerned
            goal: Purpose of the work
            retry_count: Attempts already spent against the retry budget

        Returns:
            The model's narrative, stripped

        Raises:
            EmptyResponseError: If the model returns no content
            OpenAI API errors: Propagated once non-retryable or out of retries
        """
        attempt = retry_count
        while True:
            try:
                return await self._complete(activity, subject, goal)
            except Exception as error:
                logger.error("OpenAI API error: %s", error)
                if attempt >= self.max_retries or not is_retryable_error(error):
                    raise
                attempt += 1
                logger.info("Retrying... (attempt %d)", attempt)
                await asyncio.sleep(self.retry_delay * attempt)

    async def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        await self.client.close()

    async def _complete(self, activity: str, subject: str, goal: str) -> str:
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=self._messages(activity, subject, goal),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=1,
            frequency_penalty=0,
            presence_penalty=0,
        )

        output = _first_content(completion)
        if not output:
            raise EmptyResponseError("Empty response from OpenAI")
        return output

    @staticmethod
    def _messages(activity: str, subject: str, goal: str) -> list:
        return [
            {"role": "system", "content": build_system_prompt()},
            {"role": "user", "content": build_user_prompt(activity, subject, goal)},
        ]


def _first_content(completion: Any) -> str:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content.strip() if isinstance(content, str) else ""
