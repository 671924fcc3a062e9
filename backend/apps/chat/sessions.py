"""
Chat session service.

Loads or starts a user's session and persists whole turns.
"""
import logging
import uuid
from typing import List, Optional

from django.db import DatabaseError, transaction

from apps.chat.models import ChatSession, MessageRole
from apps.rag.llm_client import LLMMessage

logger = logging.getLogger(__name__)


class SessionNotFound(Exception):
    """Raised when a session ID belongs to another user."""
    pass


class SessionValidationError(Exception):
    """Raised when a session ID is malformed."""
    pass


class SessionStoreError(Exception):
    """Raised when a session cannot be loaded or saved."""
    pass


def get_or_create_session(
    session_id: Optional[str],
    user_id: int,
    model: str = '',
) -> ChatSession:
    """
    Load a session, or start one that is saved with its first turn.

    A missing ID gets a fresh UUID. An unknown ID starts a new session under
    that ID. An ID owned by another user is reported as not found.
    """
    if not session_id:
        return ChatSession(id=uuid.uuid4(), user_id=user_id, model=model, messages=[])

    try:
        parsed_id = uuid.UUID(str(session_id))
    except ValueError:
        raise SessionValidationError("Session ID must be a UUID")

    try:
        session = ChatSession.objects.filter(id=parsed_id).first()
    except DatabaseError as e:
        logger.error(f"Failed to retrieve session {parsed_id}: {e}")
        raise SessionStoreError("Failed to retrieve session") from e

    if session is None:
        return ChatSession(id=parsed_id, user_id=user_id, model=model, messages=[])

    if session.user_id != user_id:
        logger.warning(f"User {user_id} requested session {parsed_id} owned by another user")
        raise SessionNotFound("Session not found")

    if model:
        session.model = model
    return session


def session_messages(session: ChatSession) -> List[LLMMessage]:
    """The stored transcript as LLM messages."""
    return [
        LLMMessage(role=message["role"], content=message["content"])
        for message in session.messages
    ]


def record_turn(session: ChatSession, user_text: str, assistant_text: str) -> ChatSession:
    """
    Append a user message and the assistant's reply, then save once.

    Raises:
        SessionStoreError: The save failed; the stored transcript is unchanged
    """
    messages = list(session.messages)
    messages.append({"role": MessageRole.USER.value, "content": user_text})
    messages.append({"role": MessageRole.ASSISTANT.value, "content": assistant_text})

    previous = session.messages
    try:
        with transaction.atomic():
            session.messages = messages
            session.save()
    except DatabaseError as e:
        session.messages = previous
        logger.error(f"Failed to save session {session.id}: {e}")
        raise SessionStoreError("Failed to save session") from e

    logger.debug(f"Session {session.id} now has {len(messages)} messages")
    return session
