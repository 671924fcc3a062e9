"""
Citation post-processing for generated answers.

The model cites documents as [citation]<id>[/citation]. Markers whose id
belongs to a document in the prompt become Markdown links; any other marker
is left exactly as generated.
"""
import re
from typing import List

from apps.rag.store import RetrievalCandidate

CITATION_PATTERN = re.compile(r'\[citation\](\d+)\[/citation\]')


def escape_link_text(title: str) -> str:
    """Backslash-escape brackets so a title can never form a citation marker."""
    return title.replace('[', '\\[').replace(']', '\\]')


def format_link(candidate: RetrievalCandidate) -> str:
    return f"[{escape_link_text(candidate.title)}]({candidate.url})"


def resolve_citations(text: str, candidates: List[RetrievalCandidate]) -> str:
    """
    Replace citation markers with links to the cited documents.

    Resolved text contains no markers for known ids, and link titles are
    escaped, so applying this twice gives the same result as applying it once.
    """
    def replace(match: re.Match) -> str:
        document_id = int(match.group(1))
        for candidate in candidates:
            if candidate.document_id == document_id:
                return format_link(candidate)
        return match.group(0)

    return CITATION_PATTERN.sub(replace, text)


def unescape_newlines(text: str) -> str:
    """Turn literal "\\n" sequences some models emit into real newlines."""
    return text.replace("\\n", "\n")
