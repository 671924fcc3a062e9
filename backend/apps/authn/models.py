"""
Access token model.
"""
from django.conf import settings
from django.db import models


class AccessToken(models.Model):
    """
    An opaque bearer token identifying one user.

    Tokens are issued with the issue_token management command and read into
    the process-wide token cache on first use.
    """
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='access_tokens',
    )

    token = models.CharField(max_length=128, unique=True)

    # Null means the token never expires
    expires_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'access_tokens'
        ordering = ['-created_at']

    def __str__(self):
        return f"Token for user {self.user_id} (expires {self.expires_at or 'never'})"
