"""
Best-effort recovery of corrupted JSON payloads.

Strategies escalate from a plain decode, through textual repair of common
malformations, to salvaging individually well-formed array items.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_TRAILING_COMMA_RE = re.compile(r",\s*([\]}])")
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_]\w*)(\s*:)")
_FLAT_OBJECT_RE = re.compile(r"\{[^{}]*\}")


@dataclass(frozen=True)
class RecoveryOutcome:
    """
    Result of a recovery attempt.

    Attributes:
        strategy: "decode", "repair", "salvage" or None when nothing worked.
        data: Recovered value (None when strategy is None).
        salvaged: Number of array items kept by the salvage strategy.
    """

    strategy: str | None
    data: Any = None
    salvaged: int = 0


def repair_json_text(raw: str) -> str:
    """Drop trailing commas and quote bare object keys."""
    fixed = _TRAILING_COMMA_RE.sub(r"\1", raw)
    return _UNQUOTED_KEY_RE.sub(r'\1"\2"\3', fixed)


def salvage_array_items(raw: str, item_validator: Callable[[Any], bool]) -> list[Any]:
    """Keep every flat `{...}` substring that decodes and passes `item_validator`."""
    recovered: list[Any] = []
    for match in _FLAT_OBJECT_RE.findall(raw):
        try:
            item = json.loads(match)
        except json.JSONDecodeError:
            continue
        if item_validator(item):
            recovered.append(item)
    return recovered


def _accepts(validator: Callable[[Any], Any] | None, data: Any) -> bool:
    if validator is None:
        return True
    try:
        validator(data)
    except ValueError:
        return False
    return True


def recover_json(
    raw: str,
    validator: Callable[[Any], Any] | None = None,
    item_validator: Callable[[Any], bool] | None = None,
) -> RecoveryOutcome:
    """
    Try each strategy in turn.

    Args:
        raw: The stored text.
        validator: Optional whole-value parse function; a decoded or repaired
            payload is only accepted if this does not raise `ValueError`.
        item_validator: Predicate for the array salvage strategy. Without it,
            salvage is skipped.
    """
    for strategy, text in (("decode", raw), ("repair", repair_json_text(raw))):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            continue
        if _accepts(validator, data):
            return RecoveryOutcome(strategy, data)
        logger.info(f"Payload from '{strategy}' strategy rejected by validator")

    if item_validator is not None and raw.lstrip().startswith("["):
        items = salvage_array_items(raw, item_validator)
        if items:
            return RecoveryOutcome("salvage", items, salvaged=len(items))

    return RecoveryOutcome(None)
