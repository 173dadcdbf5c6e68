"""Shared test fixtures for Dagens Pipeline tests."""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from dagens_pipeline.config import Settings
from dagens_pipeline.errors import ContentResolutionError, KnowledgeBasePushError
from dagens_pipeline.models import Customer, DagensContent, RestaurantDocument
from dagens_pipeline.store import CustomerStore


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temp dir with no crawl delay or backoff."""
    s = Settings(
        project_root=tmp_path,
        crawl_delay_seconds=0.0,
        backoff_unit_seconds=0.0,
        elevenlabs_api_key="test-key",
        cron_secret=None,
    )
    s.ensure_dirs()
    return s


@pytest.fixture
def scenario_html() -> str:
    """Plain body text with contact details and hours but no menu markup."""
    return (
        "<title>Restaurang X</title><body>Kontakt: telefon 042-123 456. "
        "Öppet måndag 11:00-22:00. Pastarätt (119 kr): God pasta.</body>"
    )


@pytest.fixture
def restaurant_html() -> str:
    """A restaurant page with menu markup, contact block and opening hours."""
    return """
    <html><head><title>Torstens Ängelholm</title></head>
    <body>
    <main>
        <h1>Välkommen till Torstens</h1>
        <div class="menu-item">
            <h3>Dagens lunch</h3>
            <p>Pannbiff med lök och potatismos</p>
            <span>125 kr</span>
        </div>
        <div class="menu-item">
            <h3>Pasta carbonara</h3>
            <p class="description">Bacon, ägg och parmesan</p>
            <span>189:-</span>
        </div>
        <div class="dish">
            <strong>Pasta carbonara</strong>
            <p>Samma rätt igen</p>
        </div>
        <div class="dish">
            <h4>Caesarsallad</h4>
        </div>
        <footer>
            Telefon: 0431-123 45<br>
            E-post: info@torstens.se<br>
            Storgatan 12, 262 32 Ängelholm<br>
            Mån 11:00-22:00<br>
            tisdag 11.00 - 23.00<br>
            Måndag 12:00-14:00
        </footer>
    </main>
    </body></html>
    """


@pytest.fixture
def voice_ai_text() -> str:
    """A voice-ai document with a dagens section."""
    return (
        "# Torstens\n\n"
        "## Information\n- Telefonnummer: 0431-123 45\n\n"
        "## Dagens\nPannbiff med lök (125 kr)\n\n"
        "## Vanliga frågor\nQ: Har ni glutenfritt?\nA: Fråga personalen.\n"
    )


@pytest.fixture
def write_voice_ai(settings: Settings):
    """Write a voice-ai document for a slug under the settings' restaurants dir."""

    def _write(slug: str, text: str) -> Path:
        path = settings.restaurants_path / slug / "voice-ai.txt"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_customer():
    """Factory for customers that have everything a sync needs."""

    def _make(customer_id: int = 1, **overrides) -> Customer:
        data = {
            "id": customer_id,
            "name": f"Restaurang {customer_id}",
            "restaurant_slug": f"restaurang-{customer_id}",
            "website_url": f"https://example.com/{customer_id}/",
            "knowledge_base_id": f"kb-{customer_id}",
            "update_frequency": "daily",
            "daily_update_time": "06:00",
        }
        data.update(overrides)
        return Customer(**data)

    return _make


@pytest.fixture
def store(settings: Settings) -> CustomerStore:
    return CustomerStore(settings.customers_path)


class FakeService:
    """In-memory scraper service that records every push."""

    def __init__(self, content: Optional[Dict[str, str]] = None) -> None:
        self.content: Dict[str, str] = dict(content or {})
        self.resolution_failures: Dict[str, int] = {}
        self.push_failure: Optional[int] = None
        self.pushes: List[Dict[str, Optional[str]]] = []
        self.restaurant_syncs: List[tuple] = []

    def get_dagens(self, slug: str) -> DagensContent:
        if slug in self.resolution_failures:
            status = self.resolution_failures[slug]
            raise ContentResolutionError(slug, f"Failed to fetch dagens: {status}", status=status)
        text = self.content.get(slug, "")
        return DagensContent(slug=slug, content=text, full_content=text)

    def add_document(
        self, knowledge_base_id: str, text: str, name: str, api_key: Optional[str] = None
    ) -> str:
        if self.push_failure is not None:
            raise KnowledgeBasePushError(
                knowledge_base_id, f"Failed to add KB document: {self.push_failure}",
                status=self.push_failure,
            )
        self.pushes.append({"kb": knowledge_base_id, "text": text, "name": name, "api_key": api_key})
        return f"doc-{len(self.pushes)}"

    def sync_restaurant(
        self, slug: str, name: str, api_key: Optional[str] = None
    ) -> RestaurantDocument:
        self.restaurant_syncs.append((slug, name))
        return RestaurantDocument(document_id="doc-r", document_name=name, action="created")


@pytest.fixture
def service() -> FakeService:
    return FakeService()
