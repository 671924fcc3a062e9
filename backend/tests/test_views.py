"""
Tests for the HTTP API: ingestion, query, chat and health endpoints.

Requests go through the Django test client with a real access token; the
LLM provider is FakeLLMClient and documents use three-dimensional vectors.
"""
import json
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from apps.chat.models import ChatSession
from apps.docs.models import Dataset, Document
from apps.rag.store import DocumentStoreError


def post_json(client, url, payload, headers):
    return client.post(url, data=json.dumps(payload), content_type='application/json', **headers)


@pytest.fixture
def api(client, auth_headers, fake_llm, small_vectors, db):
    """Authenticated client for user "alice" plus the fake LLM."""
    headers, user_id = auth_headers("alice")

    return SimpleNamespace(
        client=client,
        headers=headers,
        user_id=user_id,
        llm=fake_llm,
        post=lambda url, payload: post_json(client, url, payload, headers),
        get=lambda url, params=None: client.get(url, params or {}, **headers),
    )


# ============================================================================
# Ingestion Tests
# ============================================================================

class TestAddDocument:
    """POST /api/documents"""

    def test_creates_document(self, api):
        api.llm.vectors = {"run the deploy script": [1.0, 0.0, 0.0]}

        response = api.post('/api/documents', {
            "title": "Deploy guide",
            "url": "http://wiki/deploy",
            "body": "run the deploy script",
            "dataset": "ops",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Deploy guide"
        assert data["dataset"] == "ops"
        assert data["wordCount"] == 4
        document = Document.objects.get(id=data["id"])
        assert document.dataset.user_id == api.user_id
        assert list(document.embedding) == [1.0, 0.0, 0.0]

    def test_default_dataset(self, api):
        response = api.post('/api/documents', {"title": "T", "body": "b"})

        assert response.status_code == 201
        assert response.json()["dataset"] == "default"
        assert Dataset.objects.filter(name="default", user_id=api.user_id).exists()

    @pytest.mark.parametrize("payload", [
        {"body": "b"},
        {"title": "T"},
        {"title": "", "body": "b"},
        {"title": "T", "body": "b", "url": 5},
        ["not", "an", "object"],
    ])
    def test_invalid_payload(self, api, payload):
        response = api.post('/api/documents', payload)

        assert response.status_code == 400
        assert Document.objects.count() == 0

    def test_invalid_json(self, api):
        response = api.client.post(
            '/api/documents', data="{nope", content_type='application/json', **api.headers,
        )

        assert response.status_code == 400

    def test_embedding_failure_stores_nothing(self, api):
        api.llm.fail_embed = True

        response = api.post('/api/documents', {"title": "T", "body": "b"})

        assert response.status_code == 503
        assert Document.objects.count() == 0
        assert Dataset.objects.count() == 0

    def test_wrong_embedding_size(self, api):
        api.llm.default_vector = [1.0, 2.0]

        response = api.post('/api/documents', {"title": "T", "body": "b"})

        assert response.status_code == 500
        assert response.json()["code"] == "INVALID_EMBEDDING"

    def test_requires_auth(self, client, db):
        response = post_json(client, '/api/documents', {"title": "T", "body": "b"}, {})

        assert response.status_code == 401

    def test_get_not_allowed(self, api):
        response = api.client.get('/api/documents', **api.headers)

        assert response.status_code == 405


class TestAddDocumentsBulk:
    """POST /api/bulk/documents"""

    def test_creates_all(self, api):
        response = api.post('/api/bulk/documents', {"documents": [
            {"title": "A", "body": "a"},
            {"title": "B", "body": "b", "dataset": "notes"},
        ]})

        assert response.status_code == 201
        documents = response.json()["documents"]
        assert [d["title"] for d in documents] == ["A", "B"]
        assert [d["dataset"] for d in documents] == ["default", "notes"]
        assert Document.objects.count() == 2

    def test_one_invalid_rejects_all(self, api):
        response = api.post('/api/bulk/documents', {"documents": [
            {"title": "A", "body": "a"},
            {"title": "", "body": "b"},
        ]})

        assert response.status_code == 400
        assert Document.objects.count() == 0

    def test_embedding_failure_stores_nothing(self, api):
        api.llm.fail_embed = True

        response = api.post('/api/bulk/documents', {"documents": [{"title": "A", "body": "a"}]})

        assert response.status_code == 503
        assert Document.objects.count() == 0

    @pytest.mark.parametrize("payload", [{}, {"documents": []}, {"documents": "A"}])
    def test_requires_document_list(self, api, payload):
        assert api.post('/api/bulk/documents', payload).status_code == 400

    def test_limit(self, api, settings):
        settings.MAX_BULK_DOCUMENTS = 2

        response = api.post('/api/bulk/documents', {"documents": [
            {"title": str(i), "body": "b"} for i in range(3)
        ]})

        assert response.status_code == 400
        assert response.json()["code"] == "TOO_MANY_DOCUMENTS"


# ============================================================================
# Query Tests
# ============================================================================

class TestQueryPost:
    """POST /api/query"""

    def seed(self, api):
        api.llm.vectors = {
            "how do I deploy?": [0.0, 0.0, 0.0],
            "deploy " * 50: [1.0, 0.0, 0.0],
            "rollback " * 80: [2.0, 0.0, 0.0],
        }
        first = api.post('/api/documents', {
            "title": "Deploy", "url": "http://wiki/deploy", "body": "deploy " * 50,
        }).json()
        second = api.post('/api/documents', {
            "title": "Rollback", "url": "http://wiki/rollback", "body": "rollback " * 80,
        }).json()
        return first, second

    def test_answer_with_resolved_citation(self, api):
        first, _ = self.seed(api)
        api.llm.reply = f"See [citation]{first['id']}[/citation] and [citation]999[/citation]"

        response = api.post('/api/query', {"query": "how do I deploy?", "maxWords": 100})

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "See [Deploy](http://wiki/deploy) and [citation]999[/citation]"
        assert [s["title"] for s in data["sources"]] == ["Deploy"]
        assert data["model"] == "fake-model"
        assert "sessionId" not in data

    def test_default_budget_is_word_budget(self, api, settings):
        settings.RAG_MAX_WORDS = 100
        self.seed(api)

        data = api.post('/api/query', {"query": "how do I deploy?"}).json()

        assert [s["title"] for s in data["sources"]] == ["Deploy"]

    def test_top_k(self, api):
        self.seed(api)

        data = api.post('/api/query', {"query": "how do I deploy?", "topK": 2}).json()

        assert [s["title"] for s in data["sources"]] == ["Deploy", "Rollback"]
        assert [s["rank"] for s in data["sources"]] == [1, 2]

    @pytest.mark.parametrize("payload", [
        {"query": "q", "topK": 2, "maxWords": 100},
        {"query": "q", "topK": 0},
        {"query": "q", "maxWords": -5},
        {"query": "q", "topK": "many"},
        {"query": "q", "topK": True},
        {"query": ""},
        {"query": "   "},
        {"query": "q", "model": 3},
    ])
    def test_bad_request(self, api, payload):
        response = api.post('/api/query', payload)

        assert response.status_code == 400
        assert api.llm.chat_calls == []

    def test_empty_dataset_still_answers(self, api):
        api.llm.reply = "I found nothing."

        response = api.post('/api/query', {"query": "anything?", "dataset": "empty"})

        assert response.status_code == 200
        assert response.json()["sources"] == []
        assert "No results" in api.llm.chat_calls[0]["messages"][1].content

    def test_model_overrides(self, api):
        api.post('/api/query', {"query": "q", "model": "big", "embeddingModel": "emb"})

        assert api.llm.chat_calls[0]["model"] == "big"
        assert api.llm.embed_calls[-1]["model"] == "emb"

    def test_embedding_failure(self, api):
        api.llm.fail_embed = True

        response = api.post('/api/query', {"query": "q"})

        assert response.status_code == 503
        assert response.json()["code"] == "EMBEDDING_FAILED"

    def test_completion_failure(self, api):
        api.llm.fail_chat = True

        response = api.post('/api/query', {"query": "q"})

        assert response.status_code == 503
        assert response.json()["code"] == "LLM_UNAVAILABLE"

    def test_store_failure(self, api, monkeypatch):
        from apps.rag.store import SQLiteDocumentStore

        def broken(*args, **kwargs):
            raise DocumentStoreError("down")

        monkeypatch.setattr(SQLiteDocumentStore, "search", broken)

        response = api.post('/api/query', {"query": "q"})

        assert response.status_code == 500

    def test_session_turns(self, api):
        session_id = str(uuid.uuid4())
        api.llm.reply = "one"

        first = api.post('/api/query', {"query": "first", "sessionId": session_id})
        api.llm.reply = "two"
        second = api.post('/api/query', {"query": "second", "sessionId": session_id})

        assert first.json()["sessionId"] == session_id
        assert second.json()["sessionId"] == session_id
        session = ChatSession.objects.get(id=session_id)
        assert [m["content"] for m in session.messages] == ["first", "one", "second", "two"]

    def test_multiline_query_kept_verbatim(self, api):
        query = "Explain this:\n\n    def f():\n        return 1"
        session_id = str(uuid.uuid4())

        response = api.post('/api/query', {"query": query, "sessionId": session_id})

        assert response.status_code == 200
        assert api.llm.chat_calls[0]["messages"][1].content.endswith(query)
        assert api.llm.embed_calls[-1]["text"] == query
        session = ChatSession.objects.get(id=session_id)
        assert session.messages[0]["content"] == query

    def test_session_turn_audited_with_message_count(self, api, monkeypatch):
        audited = MagicMock()
        monkeypatch.setattr('apps.rag.views.audit_chat_turn', audited)
        session_id = str(uuid.uuid4())

        api.post('/api/query', {"query": "first", "sessionId": session_id})
        api.post('/api/query', {"query": "second", "sessionId": session_id})

        assert [c.args[1:] for c in audited.call_args_list] == [(session_id, 2), (session_id, 4)]

    def test_malformed_session(self, api):
        response = api.post('/api/query', {"query": "q", "sessionId": "abc"})

        assert response.status_code == 400


class TestQueryScoping:
    """Users never see each other's documents."""

    def test_dataset_name_collision(self, client, auth_headers, fake_llm, small_vectors, db):
        alice_headers, _ = auth_headers("alice")
        bob_headers, _ = auth_headers("bob")

        post_json(client, '/api/documents', {"title": "Alice notes", "body": "a", "dataset": "notes"}, alice_headers)
        post_json(client, '/api/documents', {"title": "Bob notes", "body": "b", "dataset": "notes"}, bob_headers)

        response = client.get('/api/query', {"query": "notes", "dataset": "notes"}, **alice_headers)

        assert response.status_code == 200
        assert [r["title"] for r in response.json()["responses"]] == ["Alice notes"]

    def test_foreign_session(self, client, auth_headers, fake_llm, small_vectors, db):
        alice_headers, _ = auth_headers("alice")
        bob_headers, bob_id = auth_headers("bob")
        session = ChatSession.objects.create(user_id=bob_id, messages=[])

        response = post_json(
            client, '/api/query', {"query": "q", "sessionId": str(session.id)}, alice_headers,
        )

        assert response.status_code == 404


class TestQueryGet:
    """GET /api/query"""

    def test_returns_ranked_documents(self, api):
        api.llm.vectors = {"near body": [1.0, 0.0, 0.0], "far body": [3.0, 0.0, 0.0]}
        api.post('/api/documents', {"title": "Far", "body": "far body", "url": "http://far"})
        api.post('/api/documents', {"title": "Near", "body": "near body", "url": "http://near"})

        response = api.get('/api/query', {"query": "x", "topK": "1"})

        assert response.status_code == 200
        responses = response.json()["responses"]
        assert len(responses) == 1
        assert responses[0]["title"] == "Near"
        assert responses[0]["url"] == "http://near"
        assert responses[0]["text"] == "near body"
        assert api.llm.chat_calls == []

    def test_default_top_k(self, api, settings):
        settings.RAG_DEFAULT_TOP_K = 2
        api.post('/api/bulk/documents', {"documents": [
            {"title": str(i), "body": f"body {i}"} for i in range(4)
        ]})

        response = api.get('/api/query', {"query": "x"})

        assert len(response.json()["responses"]) == 2

    @pytest.mark.parametrize("params", [{}, {"query": "x", "topK": "0"}, {"query": "x", "topK": "abc"}])
    def test_bad_request(self, api, params):
        assert api.get('/api/query', params).status_code == 400


# ============================================================================
# Chat Tests
# ============================================================================

class TestChat:
    """POST /api/chat"""

    def test_new_session(self, api):
        api.llm.reply = "Hello!"

        response = api.post('/api/chat', {"query": "Hi"})

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "Hello!"
        session = ChatSession.objects.get(id=data["sessionId"])
        assert session.user_id == api.user_id
        assert len(session.messages) == 2

    def test_history_sent_to_model(self, api):
        api.llm.reply = "first reply"
        session_id = api.post('/api/chat', {"query": "first"}).json()["sessionId"]

        api.llm.reply = "second reply"
        api.post('/api/chat', {"query": "second", "sessionId": session_id})

        messages = api.llm.chat_calls[-1]["messages"]
        assert [(m.role, m.content) for m in messages] == [
            ("user", "first"),
            ("assistant", "first reply"),
            ("user", "second"),
        ]

    def test_llm_failure_saves_nothing(self, api):
        api.llm.fail_chat = True

        response = api.post('/api/chat', {"query": "Hi"})

        assert response.status_code == 503
        assert ChatSession.objects.count() == 0

    def test_multiline_query_kept_verbatim(self, api):
        query = "Why does this fail?\n\n    x = [1,\n         2]"

        session_id = api.post('/api/chat', {"query": query}).json()["sessionId"]

        assert api.llm.chat_calls[0]["messages"][-1].content == query
        assert ChatSession.objects.get(id=session_id).messages[0]["content"] == query

    def test_empty_query(self, api):
        assert api.post('/api/chat', {"query": ""}).status_code == 400



# ============================================================================
# Health Tests
# ============================================================================

class TestHealth:
    """GET /healthz and /readyz"""

    def test_healthz(self, client):
        response = client.get('/healthz')

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.django_db
    def test_readyz(self, client, fake_llm, settings):
        settings.DOCUMENT_STORE = 'sqlite'

        response = client.get('/readyz')

        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "ok", "llm": "ok"}

    @pytest.mark.django_db
    def test_readyz_database_down(self, client, fake_llm, settings, monkeypatch):
        from apps.rag.store import SQLiteDocumentStore

        def broken(self):
            raise DocumentStoreError("down")

        settings.DOCUMENT_STORE = 'sqlite'
        monkeypatch.setattr(SQLiteDocumentStore, "check", broken)

        response = client.get('/readyz')

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"
