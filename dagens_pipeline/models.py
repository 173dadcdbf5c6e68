"""Pydantic models shared across the pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class FetchOutcome(str, Enum):
    """How a single page fetch ended."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    TIMED_OUT = "timed_out"
    NETWORK_ERROR = "network_error"


class CrawledPage(BaseModel):
    """Represents the result of one crawl attempt for a single URL."""

    model_config = ConfigDict(frozen=True)

    url: str
    fetched_at: datetime
    outcome: FetchOutcome
    status: Optional[int] = None
    html: Optional[str] = None
    final_url: Optional[str] = None
    attempts: int = 1
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        """Return True when the page was fetched with a 200 and a body."""
        return (
            self.outcome is FetchOutcome.SUCCESS
            and self.status == 200
            and self.html is not None
        )


class MenuItem(BaseModel):
    title: str
    description: str = ""
    price: Optional[int] = None


class ContactInfo(BaseModel):
    phones: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    addresses: List[str] = Field(default_factory=list)


class ExtractedFacts(BaseModel):
    """Structured facts derived from one page's HTML."""

    source_url: str
    title: str = ""
    headline: str = ""
    word_count: int = 0
    menu_items: List[MenuItem] = Field(default_factory=list)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    opening_hours: List[str] = Field(default_factory=list)


class KnowledgeEntry(BaseModel):
    """One line of a knowledge JSONL file."""

    id: str
    type: Literal["fact", "qa", "menu"]
    text: str
    tags: List[str] = Field(default_factory=list)
    source: Optional[str] = None


class KnowledgeDocument(BaseModel):
    """A document pushed to the external knowledge base."""

    name: str
    text: str
    knowledge_base_id: str
    created_at: datetime
    document_id: Optional[str] = None


class SyncState(BaseModel):
    """Last known fingerprint for a restaurant; versioned for compare-and-swap."""

    last_fingerprint: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    version: int = 0


class Customer(BaseModel):
    """The slice of a dashboard customer record that the sync flow uses."""

    id: int
    name: str
    restaurant_slug: Optional[str] = None
    website_url: Optional[str] = None
    knowledge_base_id: Optional[str] = None
    elevenlabs_api_key: Optional[str] = None
    update_frequency: Literal["daily", "weekly", "manual"] = "manual"
    daily_update_time: Optional[str] = None
    sync_state: SyncState = Field(default_factory=SyncState)


class SyncStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class SyncResult(BaseModel):
    """Outcome of one knowledge-base synchronization attempt."""

    status: SyncStatus
    slug: str
    document_id: Optional[str] = None
    document_name: Optional[str] = None
    new_fingerprint: Optional[str] = None
    old_fingerprint: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def skipped(cls, slug: str, reason: str, **kwargs) -> "SyncResult":
        return cls(status=SyncStatus.SKIPPED, slug=slug, reason=reason, **kwargs)

    @classmethod
    def failed(cls, slug: str, error: str, **kwargs) -> "SyncResult":
        return cls(status=SyncStatus.FAILED, slug=slug, error=error, **kwargs)


class BatchReport(BaseModel):
    """Partitioned results of a scheduled batch run."""

    total: int = 0
    success: List[dict] = Field(default_factory=list)
    failed: List[dict] = Field(default_factory=list)
    skipped: List[dict] = Field(default_factory=list)
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class DagensContent(BaseModel):
    """Today's special for one restaurant, as served by the scraper service."""

    slug: str
    content: str = ""
    full_content: str = ""


class RestaurantDocument(BaseModel):
    """A restaurant's full voice-ai document after it was (re)created in the knowledge base."""

    document_id: str
    document_name: str
    action: Literal["created", "updated"]
