"""
Shared fixtures: process-wide singletons are reset around every test and a
scripted LLM client stands in for the provider.
"""
from typing import Dict, List, Optional

import pytest

from apps.authn.models import AccessToken
from apps.authn.tokens import reset_token_cache
from apps.rag import llm_client
from apps.rag.llm_client import BaseLLMClient, EmbeddingError, LLMError, LLMMessage, LLMResponse
from apps.rag.prompt import reset_system_prompt
from apps.rag.store import SQLiteDocumentStore, reset_document_store


class FakeLLMClient(BaseLLMClient):
    """Returns canned embeddings and replies, recording every call."""

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        reply: str = "ok",
        default_vector: Optional[List[float]] = None,
    ):
        self.vectors = vectors or {}
        self.reply = reply
        self.default_vector = default_vector or [0.0, 0.0, 0.0]
        self.chat_calls: List[dict] = []
        self.embed_calls: List[dict] = []
        self.fail_chat = False
        self.fail_embed = False

    @property
    def model_name(self) -> str:
        return "fake-model"

    def chat(self, messages: List[LLMMessage], model=None, temperature: float = 0.0) -> LLMResponse:
        self.chat_calls.append({"messages": list(messages), "model": model})
        if self.fail_chat:
            raise LLMError("chat unavailable")
        return LLMResponse(content=self.reply, model=model or self.model_name)

    def embed(self, text: str, model=None) -> List[float]:
        self.embed_calls.append({"text": text, "model": model})
        if self.fail_embed:
            raise EmbeddingError("embeddings unavailable")
        return list(self.vectors.get(text, self.default_vector))

    def ping(self) -> bool:
        return True


@pytest.fixture(autouse=True)
def reset_singletons():
    """Every test starts with fresh caches."""
    reset_document_store()
    reset_token_cache()
    reset_system_prompt()
    llm_client.reset_llm_client()
    yield
    reset_document_store()
    reset_token_cache()
    reset_system_prompt()
    llm_client.reset_llm_client()


@pytest.fixture
def fake_llm():
    """Install a FakeLLMClient as the process-wide client."""
    client = FakeLLMClient()
    llm_client._client_instance = client
    return client


@pytest.fixture
def small_vectors(settings):
    """Three-dimensional embeddings for the configured store."""
    settings.EMBEDDING_DIMENSIONS = 3
    settings.DOCUMENT_STORE = 'sqlite'
    reset_document_store()
    return 3


@pytest.fixture
def store():
    return SQLiteDocumentStore(dimensions=3)


@pytest.fixture
def make_user(django_user_model):
    def _make(username: str):
        return django_user_model.objects.create(username=username)
    return _make


@pytest.fixture
def auth_headers(make_user):
    """Bearer headers for a fresh user; returns (headers, user_id)."""
    def _headers(username: str = "alice"):
        user = make_user(username)
        token = AccessToken.objects.create(user=user, token=f"token-{username}")
        return {"HTTP_AUTHORIZATION": f"Bearer {token.token}"}, user.id
    return _headers
