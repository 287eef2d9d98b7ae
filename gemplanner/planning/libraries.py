"""Library extraction: free-form technology description -> LibrarySpec list."""

from __future__ import annotations

import logging
from typing import Protocol

from gemplanner.errors import LibraryExtractionFailed
from gemplanner.planning.models import LibrarySpec
from gemplanner.planning.parsing import extract_array

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """\
Extract a minimal list of libraries relevant to this task. Respond ONLY with a JSON \
array of objects using this schema:
[
  {{ "name": "string", "topic": "string?", "tokens": number? }}
]

Rules:
- name must be canonical and resolvable by developers, e.g. "react", "next.js", \
"supabase/supabase", "tanstack/query".
- Prefer npm package names; if not applicable, use GitHub owner/repo form.
- Include topic only if the user intent suggests a focus (e.g. "auth", "routing", "storage").
- tokens is optional; include only when the task is complex and needs more context.

User prompt:
{user_prompt}
"""


class TextGenerator(Protocol):
    async def invoke(self, prompt: str) -> str: ...


class LibraryResolver:
    """Asks the generator which libraries a natural-language request is about."""

    def __init__(self, generator: TextGenerator) -> None:
        self._generator = generator

    async def resolve_from_prompt(self, text: str) -> list[LibrarySpec]:
        raw = await self._generator.invoke(EXTRACTION_PROMPT.format(user_prompt=text))
        return parse_library_list(raw)


def parse_library_list(raw: str) -> list[LibrarySpec]:
    try:
        data = extract_array(raw)
    except ValueError as e:
        raise LibraryExtractionFailed(raw) from e

    libraries = [
        spec for spec in (LibrarySpec.from_dict(item) for item in data if isinstance(item, dict))
        if spec is not None
    ]
    logger.info(f"Extracted {len(libraries)} libraries from prompt")
    return libraries
