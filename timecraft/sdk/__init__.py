"""
SDK for TimeCraft.

Provides the hosted model client used for narrative generation.
"""

from .openai_client import EmptyResponseError, NarrativeClient

__all__ = ["EmptyResponseError", "NarrativeClient"]
