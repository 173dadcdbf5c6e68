"""HTTP clients for the scraper service and the ElevenLabs knowledge base."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings, get_settings
from .errors import ConfigurationError, ContentResolutionError, KnowledgeBasePushError
from .knowledge import read_voice_ai, resolve_dagens
from .models import DagensContent, RestaurantDocument

logger = logging.getLogger(__name__)

WORKSPACE = "workspace"


def _error_detail(resp: httpx.Response) -> str:
    """Best-effort error message from a JSON or text error body."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason_phrase
    if isinstance(data, dict):
        return str(data.get("error") or data.get("detail") or resp.reason_phrase)
    return resp.reason_phrase


class ElevenLabsClient:
    """Manages text documents in an ElevenLabs conversational-AI knowledge base.

    Documents live at workspace level; the knowledge base ID callers pass is
    carried into logs and errors.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        s = settings or get_settings()
        self.api_key = api_key or s.elevenlabs_api_key
        if not self.api_key:
            raise ConfigurationError(
                "An ElevenLabs API key is required. Set DAGENS_ELEVENLABS_API_KEY or pass one."
            )
        self.base_url = s.elevenlabs_base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=s.timeout_seconds)

    def _request(
        self, method: str, path: str, knowledge_base_id: str, action: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            resp = self._client.request(
                method,
                f"{self.base_url}{path}",
                headers={"xi-api-key": self.api_key},
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise KnowledgeBasePushError(
                knowledge_base_id, f"Failed to reach knowledge base: {exc}"
            ) from exc
        if resp.is_error and not (method == "DELETE" and resp.status_code == 404):
            raise KnowledgeBasePushError(
                knowledge_base_id,
                f"Failed to {action}: {resp.status_code} {_error_detail(resp)}",
                status=resp.status_code,
            )
        return resp

    @staticmethod
    def _json(resp: httpx.Response, knowledge_base_id: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise KnowledgeBasePushError(
                knowledge_base_id, f"Invalid knowledge base response: {exc}"
            ) from exc

    def add_document_to_kb(self, knowledge_base_id: str, text: str, name: str) -> Dict[str, Any]:
        """Create a text document and return the vendor's response (``id``, ``name``)."""
        logger.info("Adding document %r to KB %s (%d chars)", name, knowledge_base_id, len(text))
        resp = self._request(
            "POST", "/convai/knowledge-base/text", knowledge_base_id, "create document",
            json={"text": text, "name": name},
        )
        data = self._json(resp, knowledge_base_id)
        if not isinstance(data, dict):
            raise KnowledgeBasePushError(knowledge_base_id, "Invalid knowledge base response")
        return data

    def list_documents(
        self, search: Optional[str] = None, *, knowledge_base_id: str = ""
    ) -> List[Dict[str, Any]]:
        params = {"search": search} if search else None
        resp = self._request(
            "GET", "/convai/knowledge-base", knowledge_base_id, "list documents", params=params
        )
        data = self._json(resp, knowledge_base_id)
        if isinstance(data, dict):
            data = data.get("documents") or []
        return [d for d in data if isinstance(d, dict)]

    def find_document(self, name: str, *, knowledge_base_id: str = "") -> Optional[Dict[str, Any]]:
        """Return the document whose name equals ``name`` (case-insensitive), if any.

        Only exact names match, so dated dagens documents that merely start
        with the restaurant name are never picked up.
        """
        wanted = name.lower()
        for doc in self.list_documents(name, knowledge_base_id=knowledge_base_id):
            if str(doc.get("name", "")).lower() == wanted:
                return doc
        return None

    def delete_document(self, document_id: str, *, knowledge_base_id: str = "") -> None:
        """Delete a document; one that is already gone counts as deleted."""
        self._request(
            "DELETE", f"/convai/knowledge-base/{document_id}", knowledge_base_id,
            "delete document", params={"force": "true"},
        )
        logger.info("Deleted KB document %s", document_id)

    def replace_document(
        self, text: str, name: str, *, knowledge_base_id: str = ""
    ) -> RestaurantDocument:
        """Delete any document named ``name``, then create it again from ``text``."""
        existing = self.find_document(name, knowledge_base_id=knowledge_base_id)
        if existing and existing.get("id"):
            logger.info("Replacing existing document %r (id=%s)", name, existing["id"])
            self.delete_document(str(existing["id"]), knowledge_base_id=knowledge_base_id)

        data = self.add_document_to_kb(knowledge_base_id, text, name)
        document_id = data.get("id") or data.get("document_id")
        if not document_id:
            raise KnowledgeBasePushError(knowledge_base_id, "Knowledge base returned no document ID")
        return RestaurantDocument(
            document_id=str(document_id),
            document_name=data.get("name") or name,
            action="updated" if existing else "created",
        )


class ScraperServiceClient:
    """Client for the scraper service endpoints the sync flow depends on."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        s = settings or get_settings()
        self.base_url = (base_url or s.scraper_service_url).rstrip("/")
        self._client = client or httpx.Client(timeout=s.timeout_seconds)

    def get_dagens(self, slug: str) -> DagensContent:
        """Fetch today's special content for a restaurant slug.

        Raises:
            ContentResolutionError: On transport errors or non-2xx responses.
        """
        url = f"{self.base_url}/api/restaurant/{slug}/dagens"
        try:
            resp = self._client.get(url)
        except httpx.HTTPError as exc:
            raise ContentResolutionError(slug, f"Failed to fetch dagens: {exc}") from exc

        if resp.is_error:
            raise ContentResolutionError(
                slug,
                f"Failed to fetch dagens: {resp.status_code} {_error_detail(resp)}",
                status=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise ContentResolutionError(slug, f"Invalid dagens response: {exc}") from exc
        return DagensContent(
            slug=slug,
            content=data.get("content") or data.get("text") or "",
            full_content=data.get("fullContent") or "",
        )

    def add_document(
        self, knowledge_base_id: str, text: str, name: str, api_key: Optional[str] = None
    ) -> str:
        """Push a document through the scraper service and return its document ID.

        Raises:
            KnowledgeBasePushError: On transport errors or non-2xx responses.
        """
        url = f"{self.base_url}/api/elevenlabs/add-document"
        body: Dict[str, Any] = {"kbId": knowledge_base_id, "text": text, "name": name}
        if api_key:
            body["apiKey"] = api_key
        try:
            resp = self._client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise KnowledgeBasePushError(
                knowledge_base_id, f"Failed to add KB document: {exc}"
            ) from exc

        if resp.is_error:
            raise KnowledgeBasePushError(
                knowledge_base_id,
                f"Failed to add KB document: {_error_detail(resp)}",
                status=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise KnowledgeBasePushError(
                knowledge_base_id, f"Invalid add-document response: {exc}"
            ) from exc
        document_id = data.get("documentId") or data.get("id")
        if not document_id:
            raise KnowledgeBasePushError(knowledge_base_id, "Knowledge base returned no document ID")
        return str(document_id)


class LocalScraperService:
    """Resolves dagens from local scrape output and pushes straight to ElevenLabs.

    This is what the scraper service itself uses; remote callers go through
    ScraperServiceClient instead.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client

    def get_dagens(self, slug: str) -> DagensContent:
        try:
            return resolve_dagens(self.settings.restaurants_path, slug)
        except FileNotFoundError as exc:
            raise ContentResolutionError(
                slug, f"Restaurant '{slug}' not found or not scraped yet", status=404
            ) from exc

    def _kb(self, knowledge_base_id: str, api_key: Optional[str]) -> ElevenLabsClient:
        try:
            return ElevenLabsClient(api_key, settings=self.settings, client=self._client)
        except ConfigurationError as exc:
            raise KnowledgeBasePushError(knowledge_base_id, str(exc)) from exc

    def add_document(
        self, knowledge_base_id: str, text: str, name: str, api_key: Optional[str] = None
    ) -> str:
        kb = self._kb(knowledge_base_id, api_key)
        data = kb.add_document_to_kb(knowledge_base_id, text, name)
        document_id = data.get("id") or data.get("document_id")
        if not document_id:
            raise KnowledgeBasePushError(knowledge_base_id, "Knowledge base returned no document ID")
        return str(document_id)

    def sync_restaurant(
        self, slug: str, name: str, api_key: Optional[str] = None
    ) -> RestaurantDocument:
        """Replace the restaurant's full voice-ai document in the knowledge base.

        Used right after a scrape, before the restaurant has a customer
        record and its own knowledge base ID.

        Raises:
            ContentResolutionError: If the restaurant was never scraped.
            KnowledgeBasePushError: If any knowledge base call fails.
        """
        try:
            text = read_voice_ai(self.settings.restaurants_path, slug)
        except FileNotFoundError as exc:
            raise ContentResolutionError(
                slug, f"Restaurant '{slug}' not found or not scraped yet", status=404
            ) from exc
        kb = self._kb(WORKSPACE, api_key)
        result = kb.replace_document(text, name, knowledge_base_id=WORKSPACE)
        logger.info("Restaurant document %s for %s (id=%s)", result.action, slug, result.document_id)
        return result
