"""Persisted snapshot format for the pattern store.

The snapshot is one JSON document: an array of ``[key, pattern]`` pairs with
camelCase pattern fields. Older snapshots written as
``[{"key": ..., "pattern": ...}]`` are read as well.

A payload that is not JSON, or not an array, is corrupt as a whole. A single
entry that cannot be parsed is skipped so the rest of the snapshot survives.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from plumage.core.errors import CorruptStateError
from plumage.core.logging import get_logger
from plumage.learning.models import LearnedPattern

_logger = get_logger("learning.snapshot")


def encode_snapshot(patterns: Iterable[LearnedPattern]) -> bytes:
    """Serialize patterns into the persisted JSON layout."""
    entries = [[pattern.id, pattern.to_dict()] for pattern in patterns]
    return json.dumps(entries, indent=2, ensure_ascii=False).encode("utf-8")


def _split_entry(entry: Any) -> tuple[str, Any]:
    if isinstance(entry, list) and len(entry) == 2:
        return str(entry[0]), entry[1]
    if isinstance(entry, dict) and "pattern" in entry:
        return str(entry.get("key", "")), entry["pattern"]
    raise ValueError(f"Unrecognized snapshot entry of type {type(entry).__name__}")


def decode_snapshot(payload: bytes | str) -> dict[str, LearnedPattern]:
    """Parse a persisted snapshot into a ``{key: pattern}`` mapping.

    Keys are re-derived from each pattern's feature and species, so entries
    written under a different key scheme land under their current key.

    Raises:
        CorruptStateError: If the payload is not a JSON array.
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CorruptStateError(f"Snapshot is not UTF-8: {e}") from e

    if not payload.strip():
        return {}

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise CorruptStateError(f"Snapshot is not valid JSON: {e}") from e
    except RecursionError as e:
        raise CorruptStateError("Snapshot nests too deeply to parse") from e

    if not isinstance(data, list):
        raise CorruptStateError(f"Snapshot must be a JSON array, got {type(data).__name__}")

    patterns: dict[str, LearnedPattern] = {}
    skipped = 0
    for index, entry in enumerate(data):
        try:
            stored_key, raw = _split_entry(entry)
            pattern = LearnedPattern.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError, OverflowError) as e:
            skipped += 1
            _logger.warning("snapshot_entry_skipped", index=index, error=str(e))
            continue
        if stored_key and stored_key != pattern.id:
            _logger.debug("snapshot_key_rederived", stored_key=stored_key, key=pattern.id)
        patterns[pattern.id] = pattern

    if skipped:
        _logger.warning("snapshot_partially_loaded", loaded=len(patterns), skipped=skipped)
    return patterns


__all__ = ["decode_snapshot", "encode_snapshot"]
