"""FastAPI scraper service: dagens content, KB documents, scrape triggers and cron."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from pydantic import BaseModel

from .clients import LocalScraperService
from .config import Settings, get_settings
from .errors import ConfigurationError, SyncError
from .hashing import short
from .knowledge import resolve_dagens, scrape_restaurant, slugify
from .models import SyncStatus
from .store import CustomerStore
from .sync import run_scheduled, sync_customer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RestaurantNotFoundError(HTTPException):
    def __init__(self, slug: str):
        super().__init__(
            status_code=404,
            detail=f"Restaurant '{slug}' not found or not scraped yet",
        )


class CustomerNotFoundError(HTTPException):
    def __init__(self):
        super().__init__(status_code=404, detail="Customer not found")


class MissingFieldsError(HTTPException):
    def __init__(self, fields: str):
        super().__init__(status_code=400, detail=f"{fields} are required")


class PrerequisiteMissingError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class UnauthorizedError(HTTPException):
    def __init__(self):
        super().__init__(status_code=401, detail="Unauthorized")


class UpstreamError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=detail)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class AddDocumentRequest(BaseModel):
    kbId: Optional[str] = None
    text: Optional[str] = None
    name: Optional[str] = None
    apiKey: Optional[str] = None


class ScrapeUrlRequest(BaseModel):
    url: Optional[str] = None
    name: Optional[str] = None
    syncToElevenLabs: bool = True


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> CustomerStore:
    return request.app.state.store


def get_service(request: Request) -> LocalScraperService:
    return request.app.state.service


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter()


@router.get("/health", tags=["health"])
def health():
    return {"status": "healthy", "timestamp": _now_iso()}


@router.get("/api/restaurant/{slug}/dagens", tags=["restaurants"])
def get_dagens(slug: str, settings: Settings = Depends(get_app_settings)):
    """Today's special for a scraped restaurant."""
    logger.info("Fetching dagens content for: %s", slug)
    try:
        dagens = resolve_dagens(settings.restaurants_path, slug)
    except FileNotFoundError:
        raise RestaurantNotFoundError(slug)

    logger.info("Dagens content found (%d chars)", len(dagens.content))
    return {
        "success": True,
        "slug": slug,
        "content": dagens.content,
        "fullContent": dagens.full_content,
        "timestamp": _now_iso(),
    }


@router.post("/api/elevenlabs/add-document", tags=["knowledge-base"])
def add_document(body: AddDocumentRequest, service: LocalScraperService = Depends(get_service)):
    """Add a document to an existing knowledge base without recreating it."""
    if not body.kbId or not body.text or not body.name:
        raise MissingFieldsError("kbId, text, and name")

    try:
        document_id = service.add_document(body.kbId, body.text, body.name, body.apiKey)
    except (ConfigurationError, SyncError) as exc:
        logger.error("Failed to add document to KB %s: %s", body.kbId, exc)
        raise UpstreamError(str(exc))

    return {
        "success": True,
        "documentId": document_id,
        "documentName": body.name,
        "knowledgeBaseId": body.kbId,
        "message": "Document added to Knowledge Base successfully",
    }


def _scrape_in_background(
    url: str, name: str, sync: bool, settings: Settings,
    store: CustomerStore, service: LocalScraperService,
) -> None:
    try:
        summary = scrape_restaurant([url], name, settings=settings)
    except Exception:
        logger.exception("Auto-scrape failed for %s", name)
        return
    logger.info("Auto-scrape completed for %s: %s", name, summary.slug)

    if not sync:
        return
    customer = next(
        (c for c in store.list_customers() if c.restaurant_slug == summary.slug), None
    )
    try:
        if customer is not None and customer.knowledge_base_id:
            result = sync_customer(customer, store=store, service=service)
            logger.info("Initial sync for %s: %s", summary.slug, result.status.value)
        else:
            doc = service.sync_restaurant(summary.slug, name)
            logger.info(
                "Restaurant document %s for %s: %s (id=%s)",
                doc.action, summary.slug, doc.document_name, doc.document_id,
            )
    except (ConfigurationError, SyncError) as exc:
        logger.error("Initial knowledge base sync failed for %s: %s", summary.slug, exc)


@router.post("/api/scrape-url", tags=["restaurants"])
def scrape_url(
    body: ScrapeUrlRequest,
    background: BackgroundTasks,
    settings: Settings = Depends(get_app_settings),
    store: CustomerStore = Depends(get_store),
    service: LocalScraperService = Depends(get_service),
):
    """Start a scrape of a new restaurant; the work runs after the response is sent."""
    if not body.url or not body.name:
        raise MissingFieldsError("url and name")

    slug = slugify(body.name)
    logger.info("Starting scrape for: %s (%s)", body.name, body.url)
    background.add_task(
        _scrape_in_background, body.url, body.name, body.syncToElevenLabs,
        settings, store, service,
    )
    return {
        "success": True,
        "message": f"Scraping startad för {body.name}",
        "slug": slug,
        "url": body.url,
    }


@router.get("/api/cron/update-restaurants", tags=["cron"])
def update_restaurants(
    hour: Optional[int] = Query(default=None, ge=0, le=23),
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    store: CustomerStore = Depends(get_store),
    service: LocalScraperService = Depends(get_service),
):
    """Sync every customer scheduled for this hour. Always 200 once authorized."""
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise UnauthorizedError()

    report = run_scheduled(store=store, service=service, hour=hour)
    return {
        "success": True,
        "message": f"Processed {report.total} customers",
        "results": {
            "total": report.total,
            "success": report.success,
            "failed": report.failed,
            "skipped": report.skipped,
            "startTime": report.started_at.isoformat(),
            "endTime": report.finished_at.isoformat() if report.finished_at else None,
            "duration": f"{report.duration_ms}ms",
        },
    }


@router.post("/api/customers/{customer_id}/update-kb", tags=["customers"])
def update_kb(
    customer_id: int,
    store: CustomerStore = Depends(get_store),
    service: LocalScraperService = Depends(get_service),
):
    """Manually sync one customer's dagens content to its knowledge base."""
    customer = store.get(customer_id)
    if customer is None:
        raise CustomerNotFoundError()

    try:
        result = sync_customer(customer, store=store, service=service)
    except ConfigurationError as exc:
        raise PrerequisiteMissingError(str(exc))

    if result.status is SyncStatus.FAILED:
        raise UpstreamError(result.error or "Sync failed")

    changed = result.status is SyncStatus.SUCCESS
    return {
        "success": True,
        "message": "KB document updated successfully" if changed else f"Skipped: {result.reason}",
        "contentChanged": changed,
        "oldHash": short(result.old_fingerprint),
        "newHash": short(result.new_fingerprint),
        "documentId": result.document_id,
        "documentName": result.document_name,
        "knowledgeBaseId": customer.knowledge_base_id,
    }


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[CustomerStore] = None,
    service: Optional[LocalScraperService] = None,
) -> FastAPI:
    """Factory function for the scraper service app."""
    s = settings or get_settings()
    app = FastAPI(
        title="Dagens Pipeline Scraper Service",
        description="Restaurant scraping and voice-AI knowledge base sync",
        version="0.1.0",
    )
    app.state.settings = s
    app.state.store = store or CustomerStore(s.customers_path)
    app.state.service = service or LocalScraperService(settings=s)
    app.include_router(router)
    return app
