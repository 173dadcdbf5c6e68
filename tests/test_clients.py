"""Unit tests for the scraper service and ElevenLabs clients."""

import json

import httpx
import pytest

from dagens_pipeline.clients import ElevenLabsClient, LocalScraperService, ScraperServiceClient
from dagens_pipeline.config import Settings
from dagens_pipeline.errors import (
    ConfigurationError,
    ContentResolutionError,
    KnowledgeBasePushError,
)


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestElevenLabsClient:
    """Tests for ElevenLabsClient."""

    def test_requires_api_key(self, settings: Settings) -> None:
        s = settings.model_copy(update={"elevenlabs_api_key": None})
        with pytest.raises(ConfigurationError):
            ElevenLabsClient(settings=s)

    def test_add_document(self, settings: Settings) -> None:
        seen = {}

        def handler(req: httpx.Request) -> httpx.Response:
            seen["url"] = str(req.url)
            seen["key"] = req.headers.get("xi-api-key")
            seen["body"] = json.loads(req.content)
            return httpx.Response(200, json={"id": "doc-1", "name": "Torstens - Dagens 2026-03-02"})

        kb = ElevenLabsClient("secret", settings=settings, client=_client(handler))
        data = kb.add_document_to_kb("kb-1", "Fisk", "Torstens - Dagens 2026-03-02")
        assert data["id"] == "doc-1"
        assert seen["url"] == "https://api.elevenlabs.io/v1/convai/knowledge-base/text"
        assert seen["key"] == "secret"
        assert seen["body"] == {"text": "Fisk", "name": "Torstens - Dagens 2026-03-02"}

    def test_error_status(self, settings: Settings) -> None:
        client = _client(lambda req: httpx.Response(422, json={"detail": "bad text"}))
        kb = ElevenLabsClient(settings=settings, client=client)
        with pytest.raises(KnowledgeBasePushError, match="bad text") as exc_info:
            kb.add_document_to_kb("kb-1", "x", "n")
        assert exc_info.value.status == 422
        assert exc_info.value.knowledge_base_id == "kb-1"

    def test_transport_error(self, settings: Settings) -> None:
        def handler(req: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=req)

        kb = ElevenLabsClient(settings=settings, client=_client(handler))
        with pytest.raises(KnowledgeBasePushError):
            kb.add_document_to_kb("kb-1", "x", "n")

    def test_non_json_success_body(self, settings: Settings) -> None:
        client = _client(lambda req: httpx.Response(200, text="<html>OK</html>"))
        kb = ElevenLabsClient(settings=settings, client=client)
        with pytest.raises(KnowledgeBasePushError, match="Invalid knowledge base response"):
            kb.add_document_to_kb("kb-1", "x", "n")


class TestReplaceDocument:
    """Tests for the find, delete and create flow on ElevenLabsClient."""

    @staticmethod
    def _handler(calls, documents):
        def handler(req: httpx.Request) -> httpx.Response:
            calls.append((req.method, req.url.path, dict(req.url.params)))
            if req.method == "GET":
                return httpx.Response(200, json={"documents": documents})
            if req.method == "DELETE":
                return httpx.Response(200, json={})
            return httpx.Response(200, json={"id": "new-1", "name": json.loads(req.content)["name"]})

        return handler

    def test_replaces_exact_name_only(self, settings: Settings) -> None:
        calls = []
        documents = [
            {"id": "dated", "name": "Torstens - Dagens 2026-03-02"},
            {"id": "old-1", "name": "torstens"},
        ]
        kb = ElevenLabsClient(settings=settings, client=_client(self._handler(calls, documents)))
        doc = kb.replace_document("# Torstens", "Torstens")

        assert doc.document_id == "new-1"
        assert doc.document_name == "Torstens"
        assert doc.action == "updated"
        assert calls == [
            ("GET", "/v1/convai/knowledge-base", {"search": "Torstens"}),
            ("DELETE", "/v1/convai/knowledge-base/old-1", {"force": "true"}),
            ("POST", "/v1/convai/knowledge-base/text", {}),
        ]

    def test_creates_when_missing(self, settings: Settings) -> None:
        calls = []
        kb = ElevenLabsClient(settings=settings, client=_client(self._handler(calls, [])))
        assert kb.replace_document("# Ny", "Ny Restaurang").action == "created"
        assert [c[0] for c in calls] == ["GET", "POST"]

    def test_list_accepts_bare_list(self, settings: Settings) -> None:
        client = _client(lambda req: httpx.Response(200, json=[{"id": "a", "name": "A"}]))
        kb = ElevenLabsClient(settings=settings, client=client)
        assert kb.find_document("a") == {"id": "a", "name": "A"}

    def test_delete_missing_is_ok(self, settings: Settings) -> None:
        kb = ElevenLabsClient(settings=settings, client=_client(lambda req: httpx.Response(404)))
        kb.delete_document("gone")

    def test_list_error(self, settings: Settings) -> None:
        kb = ElevenLabsClient(settings=settings, client=_client(lambda req: httpx.Response(500)))
        with pytest.raises(KnowledgeBasePushError, match="list documents"):
            kb.find_document("Torstens")


class TestScraperServiceClient:
    """Tests for ScraperServiceClient."""

    def test_get_dagens(self, settings: Settings) -> None:
        def handler(req: httpx.Request) -> httpx.Response:
            assert req.url.path == "/api/restaurant/torstens/dagens"
            return httpx.Response(200, json={"success": True, "content": "Fisk", "fullContent": "# T\nFisk"})

        svc = ScraperServiceClient("http://scraper:4001/", settings=settings, client=_client(handler))
        dagens = svc.get_dagens("torstens")
        assert dagens.content == "Fisk"
        assert dagens.full_content == "# T\nFisk"

    def test_get_dagens_falls_back_to_text(self, settings: Settings) -> None:
        client = _client(lambda req: httpx.Response(200, json={"text": "Soppa"}))
        assert ScraperServiceClient(settings=settings, client=client).get_dagens("x").content == "Soppa"

    @pytest.mark.parametrize("status", [404, 500])
    def test_get_dagens_error_status(self, settings: Settings, status: int) -> None:
        client = _client(lambda req: httpx.Response(status, json={"error": "nope"}))
        with pytest.raises(ContentResolutionError) as exc_info:
            ScraperServiceClient(settings=settings, client=client).get_dagens("x")
        assert exc_info.value.status == status
        assert exc_info.value.slug == "x"

    def test_get_dagens_invalid_json(self, settings: Settings) -> None:
        client = _client(lambda req: httpx.Response(200, text="<html>"))
        with pytest.raises(ContentResolutionError):
            ScraperServiceClient(settings=settings, client=client).get_dagens("x")

    def test_add_document(self, settings: Settings) -> None:
        seen = {}

        def handler(req: httpx.Request) -> httpx.Response:
            seen["path"] = req.url.path
            seen["body"] = json.loads(req.content)
            return httpx.Response(200, json={"success": True, "documentId": "doc-9"})

        svc = ScraperServiceClient(settings=settings, client=_client(handler))
        assert svc.add_document("kb-1", "Fisk", "T - Dagens", "key") == "doc-9"
        assert seen["path"] == "/api/elevenlabs/add-document"
        assert seen["body"] == {"kbId": "kb-1", "text": "Fisk", "name": "T - Dagens", "apiKey": "key"}

    def test_add_document_without_api_key(self, settings: Settings) -> None:
        seen = {}

        def handler(req: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(req.content)
            return httpx.Response(200, json={"id": "doc-1"})

        ScraperServiceClient(settings=settings, client=_client(handler)).add_document("kb", "t", "n")
        assert "apiKey" not in seen["body"]

    def test_add_document_error(self, settings: Settings) -> None:
        client = _client(lambda req: httpx.Response(500, json={"error": "Failed to add document"}))
        with pytest.raises(KnowledgeBasePushError, match="Failed to add document") as exc_info:
            ScraperServiceClient(settings=settings, client=client).add_document("kb", "t", "n")
        assert exc_info.value.status == 500

    def test_add_document_missing_id(self, settings: Settings) -> None:
        client = _client(lambda req: httpx.Response(200, json={"success": True}))
        with pytest.raises(KnowledgeBasePushError):
            ScraperServiceClient(settings=settings, client=client).add_document("kb", "t", "n")


class TestLocalScraperService:
    """Tests for LocalScraperService."""

    def test_get_dagens(self, settings: Settings, write_voice_ai, voice_ai_text: str) -> None:
        write_voice_ai("torstens", voice_ai_text)
        dagens = LocalScraperService(settings=settings).get_dagens("torstens")
        assert dagens.content == "## Dagens Special\nPannbiff med lök (125 kr)"

    def test_get_dagens_not_scraped(self, settings: Settings) -> None:
        with pytest.raises(ContentResolutionError) as exc_info:
            LocalScraperService(settings=settings).get_dagens("okand")
        assert exc_info.value.status == 404

    def test_add_document(self, settings: Settings) -> None:
        client = _client(lambda req: httpx.Response(200, json={"id": "doc-3"}))
        svc = LocalScraperService(settings=settings, client=client)
        assert svc.add_document("kb-1", "Fisk", "T - Dagens") == "doc-3"

    def test_add_document_without_api_key(self, settings: Settings) -> None:
        s = settings.model_copy(update={"elevenlabs_api_key": None})
        svc = LocalScraperService(settings=s, client=_client(lambda req: httpx.Response(200)))
        with pytest.raises(KnowledgeBasePushError, match="API key"):
            svc.add_document("kb-1", "Fisk", "T - Dagens")

    def test_sync_restaurant(self, settings: Settings, write_voice_ai, voice_ai_text: str) -> None:
        posted = {}

        def handler(req: httpx.Request) -> httpx.Response:
            if req.method == "GET":
                return httpx.Response(200, json={"documents": []})
            posted.update(json.loads(req.content))
            return httpx.Response(200, json={"id": "doc-7", "name": "Torstens"})

        write_voice_ai("torstens", voice_ai_text)
        svc = LocalScraperService(settings=settings, client=_client(handler))
        doc = svc.sync_restaurant("torstens", "Torstens")
        assert doc.document_id == "doc-7"
        assert doc.action == "created"
        assert posted == {"text": voice_ai_text, "name": "Torstens"}

    def test_sync_restaurant_not_scraped(self, settings: Settings) -> None:
        with pytest.raises(ContentResolutionError):
            LocalScraperService(settings=settings).sync_restaurant("okand", "Okänd")
