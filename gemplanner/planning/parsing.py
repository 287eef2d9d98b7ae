"""Recovering JSON from free-form generator output.

Generators are asked for bare JSON but regularly wrap it in markdown fences
or surround it with prose. Recovery is an ordered chain of strategies, each
``text -> value`` raising ``ValueError`` when it finds nothing usable; the
first strategy that yields a value of the expected root type wins.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable

logger = logging.getLogger(__name__)

Strategy = Callable[[str], Any]

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[\w-]*\s*([\s\S]*?)\s*```")


def unwrap_json_fence(text: str) -> str:
    """Return the inside of the first ```json fence, or the trimmed text unchanged."""
    text = text.strip()
    match = _JSON_FENCE.search(text)
    if match:
        return match.group(1)
    return text


def parse_direct(text: str) -> Any:
    return json.loads(text)


def parse_fenced(text: str) -> Any:
    """Parse the first fenced block, preferring one labelled json."""
    match = _JSON_FENCE.search(text) or _ANY_FENCE.search(text)
    if not match:
        raise ValueError("no fenced block")
    return json.loads(match.group(1))


def _delimited(text: str, opening: str, closing: str) -> Any:
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end <= start:
        raise ValueError(f"no {opening}...{closing} span")
    return json.loads(text[start:end + 1])


def parse_braced(text: str) -> Any:
    """Parse the widest ``{...}`` span: first opening brace to last closing brace."""
    return _delimited(text, "{", "}")


def parse_bracketed(text: str) -> Any:
    """Parse the widest ``[...]`` span."""
    return _delimited(text, "[", "]")


OBJECT_STRATEGIES: tuple[Strategy, ...] = (parse_direct, parse_fenced, parse_braced)
ARRAY_STRATEGIES: tuple[Strategy, ...] = (parse_direct, parse_fenced, parse_bracketed)


def extract_json(text: str, strategies: tuple[Strategy, ...], expect: type) -> Any:
    """Run strategies in order; return the first result that is an ``expect`` instance.

    Raises ValueError when every strategy fails.
    """
    for strategy in strategies:
        try:
            value = strategy(text)
        except ValueError:
            continue
        if isinstance(value, expect):
            return value
        logger.debug(f"{strategy.__name__} produced {type(value).__name__}, expected {expect.__name__}")
    raise ValueError(f"no JSON {expect.__name__} recoverable from text")


def extract_object(text: str) -> dict:
    return extract_json(text, OBJECT_STRATEGIES, dict)


def extract_array(text: str) -> list:
    return extract_json(text, ARRAY_STRATEGIES, list)
