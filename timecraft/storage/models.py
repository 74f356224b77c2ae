"""
Data models for storage layer.

Defines the rate-limit ledger record and its serialized form.
"""

import json
from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable record of one successful model request.

    Append-only entries that make up the rate-limit ledger.
    """
    timestamp: int  # epoch milliseconds
    tokens_used: int


def serialize_ledger(entries: Iterable[LedgerEntry]) -> bytes:
    """Encode ledger entries as a JSON array of {timestamp, tokensUsed}."""
    payload = [
        {"timestamp": entry.timestamp, "tokensUsed": entry.tokens_used}
        for entry in entries
    ]
    return json.dumps(payload).encode("utf-8")


def deserialize_ledger(data: bytes) -> List[LedgerEntry]:
    """Decode a serialized ledger.

    Args:
        data: JSON produced by serialize_ledger

    Returns:
        Ledger entries in stored order

    Raises:
        ValueError: If the data is not a valid ledger
    """
    try:
        raw = json.loads(data.decode("utf-8") if isinstance(data, bytes) else data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Ledger is not valid JSON: {e}")

    if not isinstance(raw, list):
        raise ValueError("Ledger must be a JSON array")

    entries = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Ledger record at index {i} must be an object")
        timestamp = item.get("timestamp")
        tokens_used = item.get("tokensUsed")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ValueError(f"Ledger record at index {i} has invalid timestamp")
        if isinstance(tokens_used, bool) or not isinstance(tokens_used, (int, float)):
            raise ValueError(f"Ledger record at index {i} has invalid tokensUsed")
        entries.append(LedgerEntry(timestamp=int(timestamp), tokens_used=int(tokens_used)))
    return entries
