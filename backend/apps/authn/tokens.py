"""
Access token cache.

All valid tokens are read from the database the first time any request needs
one and kept for the life of the process. Tokens issued afterwards are not
seen until invalidate() is called or the process restarts.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from django.db import DatabaseError
from django.utils import timezone

from .models import AccessToken

logger = logging.getLogger(__name__)


class TokenCacheError(Exception):
    """Raised when tokens cannot be loaded."""
    pass


@dataclass(frozen=True)
class CachedToken:
    """A token's owner and expiry as cached in memory."""
    user_id: int
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


def load_access_tokens() -> Dict[str, CachedToken]:
    """Read every stored token, keyed by token value."""
    try:
        rows = AccessToken.objects.values_list('token', 'user_id', 'expires_at')
        return {
            token: CachedToken(user_id=user_id, expires_at=expires_at)
            for token, user_id, expires_at in rows
        }
    except DatabaseError as e:
        logger.error(f"Failed to load access tokens: {e}")
        raise TokenCacheError("Could not fetch access tokens") from e


class AccessTokenCache:
    """
    Lazily populated, read-shared token cache.

    The lock only serializes the first load so concurrent first requests do
    not each query the table; lookups after that take no lock.
    """

    def __init__(self, loader: Optional[Callable[[], Dict[str, CachedToken]]] = None):
        self._loader = loader or load_access_tokens
        self._tokens: Optional[Dict[str, CachedToken]] = None
        self._lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._tokens is not None

    def _get_tokens(self) -> Dict[str, CachedToken]:
        tokens = self._tokens
        if tokens is not None:
            return tokens

        with self._lock:
            if self._tokens is None:
                self._tokens = self._loader()
                logger.info(f"Loaded {len(self._tokens)} access tokens")
            return self._tokens

    def lookup(self, token: str) -> Optional[int]:
        """
        Resolve a token to its user ID.

        Returns:
            The user ID, or None for unknown or expired tokens

        Raises:
            TokenCacheError: The first load failed (retried on the next call)
        """
        if not token:
            return None

        entry = self._get_tokens().get(token)
        if entry is None:
            return None

        if entry.is_expired(timezone.now()):
            logger.info(f"Rejected expired token for user {entry.user_id}")
            return None

        return entry.user_id

    def invalidate(self):
        """Drop cached tokens; the next lookup reloads them."""
        with self._lock:
            self._tokens = None
        logger.info("Access token cache invalidated")


# Global singleton instance
_token_cache: Optional[AccessTokenCache] = None


def get_token_cache() -> AccessTokenCache:
    """Get the global access token cache instance."""
    global _token_cache
    if _token_cache is None:
        _token_cache = AccessTokenCache()
    return _token_cache


def reset_token_cache():
    """Drop the global cache instance. Useful for testing."""
    global _token_cache
    _token_cache = None
