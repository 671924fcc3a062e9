"""
Chat session model.
"""
import uuid
from django.db import models


class MessageRole(models.TextChoices):
    """Author of a message in a session transcript."""
    USER = 'user', 'User'
    ASSISTANT = 'assistant', 'Assistant'


class ChatSession(models.Model):
    """
    An ordered transcript of user/assistant messages.

    Each turn appends one user message and one assistant message and is
    saved as a whole; a failed turn leaves the stored transcript untouched.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Sessions are private to the user that started them
    user_id = models.BigIntegerField(db_index=True)

    model = models.CharField(max_length=255, blank=True, default='')

    # [{"role": "user" | "assistant", "content": "..."}]
    messages = models.JSONField(default=list)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sessions'
        ordering = ['-updated_at']

    def __str__(self):
        return f"Session {self.id} ({len(self.messages)} messages)"
