"""
Retrieval-augmented query pipeline.

query -> retrieve (embed + scoped search) -> compose prompt -> complete
      -> resolve citations -> optional session turn
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from apps.chat.sessions import get_or_create_session, record_turn
from apps.rag.citations import resolve_citations, unescape_newlines
from apps.rag.llm_client import complete, get_model_name
from apps.rag.prompt import compose_prompt, get_system_prompt
from apps.rag.retrieval import retrieve
from apps.rag.store import BaseDocumentStore, RetrievalBudget, RetrievalCandidate

logger = logging.getLogger(__name__)


@dataclass
class QueryAnswer:
    """Final answer with the documents it was grounded on."""
    text: str
    model: str
    candidates: List[RetrievalCandidate] = field(default_factory=list)
    session_id: Optional[str] = None
    message_count: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        data = {
            "response": self.text,
            "model": self.model,
            "sources": [c.to_dict() for c in self.candidates],
        }
        if self.session_id:
            data["sessionId"] = self.session_id
        return data


def answer_query(
    query_text: str,
    user_id: int,
    budget: RetrievalBudget,
    dataset_name: Optional[str] = None,
    model: Optional[str] = None,
    embedding_model: Optional[str] = None,
    session_id: Optional[str] = None,
    use_session: bool = False,
    store: Optional[BaseDocumentStore] = None,
) -> QueryAnswer:
    """
    Answer a query from the user's documents.

    Args:
        query_text: Query text as sent; it ends the prompt unchanged
        user_id: Authenticated user; scopes retrieval and the session
        budget: Retrieval budget
        dataset_name: Dataset to search ("default" when empty)
        model: Completion model override
        embedding_model: Embedding model override
        session_id: Session to append the turn to
        use_session: Record the turn even when no session_id was given

    Raises:
        RetrievalError, LLMError: Provider failures
        SearchValidationError, DocumentStoreError: Store failures
        SessionNotFound, SessionValidationError, SessionStoreError: Session problems
    """
    session = None
    if session_id or use_session:
        # Resolve the session first so a foreign ID fails before any LLM call
        session = get_or_create_session(session_id, user_id, model or '')

    candidates = retrieve(
        query_text,
        dataset_name,
        user_id,
        budget,
        model=embedding_model,
        store=store,
    )

    prompt = compose_prompt(candidates, query_text)
    logger.debug(f"Prompt: {len(prompt)} chars, {len(candidates)} documents")

    generated = complete(prompt, model=model, system_prompt=get_system_prompt())

    text = unescape_newlines(resolve_citations(generated, candidates))

    if session is not None:
        record_turn(session, query_text, text)

    return QueryAnswer(
        text=text,
        model=model or get_model_name(),
        candidates=candidates,
        session_id=str(session.id) if session is not None else None,
        message_count=len(session.messages) if session is not None else None,
    )
