"""
Prompt construction for RAG completions.

The user message lists every retrieved document as a fenced JSON block, in
ranked order, followed by the user's query verbatim. The system preamble
tells the model how to cite documents.
"""
import json
import logging
from pathlib import Path
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from apps.rag.store import RetrievalCandidate

logger = logging.getLogger(__name__)

RESULTS_HEADER = "Search results: \n"
NO_RESULTS = "No results \n\n"

# Used when SYSTEM_PROMPT_PATH is not configured
DEFAULT_SYSTEM_PROMPT = """You are a helpful knowledge base assistant. Answer the user's question using the search results provided with it.

RULES:
1. Prefer information from the search results over your own knowledge.
2. If the search results say "No results" or do not contain the answer, say so plainly.
3. When you use a search result, cite it as [citation]<id>[/citation], where <id> is the "id" field of that result.
4. Be concise and factual."""


def render_candidate(candidate: RetrievalCandidate) -> str:
    """Render one candidate as a fenced JSON block."""
    block = json.dumps(candidate.to_prompt_dict(), ensure_ascii=False)
    return f"```json\n{block}\n```\n\n"


def compose_prompt(candidates: List[RetrievalCandidate], query_text: str) -> str:
    """
    Build the completion prompt.

    Format:
        Search results:
        ```json
        {"id": 42, "title": "...", "url": "...", "body": "..."}
        ```

        <query text>

    With no candidates the results section says "No results" so the model
    is not left to invent any.
    """
    parts = [RESULTS_HEADER]
    if not candidates:
        parts.append(NO_RESULTS)

    for candidate in candidates:
        parts.append(render_candidate(candidate))

    parts.append(query_text)
    return "".join(parts)


_system_prompt: Optional[str] = None


def get_system_prompt() -> str:
    """
    Load the system preamble once per process.

    Raises:
        ImproperlyConfigured: SYSTEM_PROMPT_PATH points to a missing file
    """
    global _system_prompt

    if _system_prompt is not None:
        return _system_prompt

    path = getattr(settings, 'SYSTEM_PROMPT_PATH', '')
    if not path:
        _system_prompt = DEFAULT_SYSTEM_PROMPT
        return _system_prompt

    try:
        _system_prompt = Path(path).read_text(encoding='utf-8')
    except OSError as e:
        raise ImproperlyConfigured(f"Cannot read system prompt at {path}: {e}")

    logger.info(f"Loaded system prompt from {path} ({len(_system_prompt)} chars)")
    return _system_prompt


def reset_system_prompt():
    """Forget the loaded preamble. Useful for testing."""
    global _system_prompt
    _system_prompt = None
