"""Knowledge-base synchronization: resolve dagens, hash-gate, push if changed."""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Protocol

from .errors import (
    ConfigurationError,
    ContentResolutionError,
    KnowledgeBasePushError,
    StaleSyncStateError,
)
from .hashing import compute_fingerprint, has_changed, short
from .models import (
    BatchReport,
    Customer,
    DagensContent,
    KnowledgeDocument,
    SyncResult,
    SyncStatus,
)
from .store import CustomerStore, lock_for

logger = logging.getLogger(__name__)

NO_CONTENT = "no content found"
UNCHANGED = "unchanged"
MONDAY = 0


class DagensService(Protocol):
    """What the synchronizer needs from the scraper service."""

    def get_dagens(self, slug: str) -> DagensContent: ...

    def add_document(
        self, knowledge_base_id: str, text: str, name: str, api_key: Optional[str] = None
    ) -> str: ...


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def document_name(name: str, today: date) -> str:
    return f"{name} - Dagens {today.isoformat()}"


def require_sync_config(
    slug: Optional[str], website_url: Optional[str], knowledge_base_id: Optional[str]
) -> None:
    """Raise ConfigurationError if any prerequisite for a sync is missing."""
    if not website_url:
        raise ConfigurationError("No website URL configured for this customer")
    if not knowledge_base_id:
        raise ConfigurationError(
            "No Knowledge Base ID configured. Please run initial scrape first."
        )
    if not slug:
        raise ConfigurationError("No restaurant slug found. Please run initial scrape first.")


def sync_daily_content(
    slug: str,
    website_url: str,
    knowledge_base_id: str,
    previous_fingerprint: Optional[str],
    *,
    name: str,
    service: DagensService,
    api_key: Optional[str] = None,
    today: Optional[date] = None,
) -> SyncResult:
    """Push today's special to the knowledge base if it changed since the last sync.

    The caller owns persistence: on success it must store
    ``result.new_fingerprint`` as the restaurant's new sync state. Failures
    leave the fingerprint where it was so the next run retries.

    Raises:
        ConfigurationError: If slug, website URL or knowledge base ID is missing.
    """
    require_sync_config(slug, website_url, knowledge_base_id)

    try:
        dagens = service.get_dagens(slug)
    except ContentResolutionError as exc:
        logger.error("Content resolution failed for %s: %s", slug, exc)
        return SyncResult.failed(slug, str(exc), old_fingerprint=previous_fingerprint)

    content = dagens.content
    if not content.strip():
        logger.info("Skipped %s: %s", slug, NO_CONTENT)
        return SyncResult.skipped(slug, NO_CONTENT, old_fingerprint=previous_fingerprint)

    new_fingerprint = compute_fingerprint(content)
    if not has_changed(content, previous_fingerprint):
        logger.info("Skipped %s: content unchanged (%s)", slug, short(new_fingerprint))
        return SyncResult.skipped(
            slug, UNCHANGED,
            old_fingerprint=previous_fingerprint, new_fingerprint=new_fingerprint,
        )

    doc = KnowledgeDocument(
        name=document_name(name, today or _utc_today()),
        text=content,
        knowledge_base_id=knowledge_base_id,
        created_at=datetime.now(timezone.utc),
    )
    logger.info(
        "Content changed for %s (%s -> %s), pushing %r",
        slug, short(previous_fingerprint) or "NONE", short(new_fingerprint), doc.name,
    )

    try:
        document_id = service.add_document(doc.knowledge_base_id, doc.text, doc.name, api_key)
    except KnowledgeBasePushError as exc:
        logger.error("Knowledge base push failed for %s: %s", slug, exc)
        return SyncResult.failed(
            slug, str(exc),
            old_fingerprint=previous_fingerprint, new_fingerprint=new_fingerprint,
        )

    logger.info("Document added for %s (id=%s)", slug, document_id)
    return SyncResult(
        status=SyncStatus.SUCCESS,
        slug=slug,
        document_id=document_id,
        document_name=doc.name,
        new_fingerprint=new_fingerprint,
        old_fingerprint=previous_fingerprint,
    )


def sync_customer(
    customer: Customer,
    *,
    store: CustomerStore,
    service: DagensService,
    today: Optional[date] = None,
) -> SyncResult:
    """Sync one stored customer and persist the new fingerprint on success.

    Syncs for the same slug are serialized, and the fingerprint is written
    with compare-and-swap so a concurrent writer is detected instead of
    overwritten.
    """
    require_sync_config(customer.restaurant_slug, customer.website_url, customer.knowledge_base_id)

    with lock_for(customer.restaurant_slug):
        current = store.get(customer.id) or customer
        previous = current.sync_state.last_fingerprint

        result = sync_daily_content(
            current.restaurant_slug,
            current.website_url,
            current.knowledge_base_id,
            previous,
            name=current.name,
            service=service,
            api_key=current.elevenlabs_api_key,
            today=today,
        )
        if result.status is not SyncStatus.SUCCESS:
            return result

        try:
            store.compare_and_swap(current.id, previous, result.new_fingerprint)
        except StaleSyncStateError as exc:
            logger.error("Lost sync-state update for %s: %s", current.restaurant_slug, exc)
            return result.model_copy(update={"status": SyncStatus.FAILED, "error": str(exc)})

    return result


def is_due(customer: Customer, hour: int, weekday: int) -> bool:
    """Return True if the customer's schedule matches ``hour`` on ``weekday``.

    Weekly customers only run on Mondays, at their configured hour.
    """
    if customer.daily_update_time != f"{hour:02d}:00":
        return False
    if customer.update_frequency == "daily":
        return True
    if customer.update_frequency == "weekly":
        return weekday == MONDAY
    return False


def select_due_customers(customers: Iterable[Customer], hour: int, weekday: int) -> List[Customer]:
    """Customers scheduled for this hour that have everything a sync needs."""
    return [
        c for c in customers
        if is_due(c, hour, weekday)
        and c.website_url and c.knowledge_base_id and c.restaurant_slug
    ]


def run_batch(
    customers: List[Customer],
    *,
    store: CustomerStore,
    service: DagensService,
    today: Optional[date] = None,
) -> BatchReport:
    """Sync each customer in order; one customer's failure never stops the run."""
    started = time.monotonic()
    report = BatchReport(total=len(customers), started_at=datetime.now(timezone.utc))

    for customer in customers:
        logger.info("Processing: %s", customer.name)
        base = {"id": customer.id, "name": customer.name}
        try:
            result = sync_customer(customer, store=store, service=service, today=today)
        except Exception as exc:
            logger.exception("Sync failed for %s", customer.name)
            report.failed.append({**base, "error": str(exc)})
            continue

        if result.status is SyncStatus.SUCCESS:
            report.success.append({
                **base,
                "document_id": result.document_id,
                "document_name": result.document_name,
                "old_hash": short(result.old_fingerprint),
                "new_hash": short(result.new_fingerprint),
            })
        elif result.status is SyncStatus.SKIPPED:
            report.skipped.append({**base, "reason": result.reason})
        else:
            report.failed.append({**base, "error": result.error})

    report.finished_at = datetime.now(timezone.utc)
    report.duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "Batch completed in %dms: %d success, %d failed, %d skipped",
        report.duration_ms, len(report.success), len(report.failed), len(report.skipped),
    )
    return report


def run_scheduled(
    *,
    store: CustomerStore,
    service: DagensService,
    hour: Optional[int] = None,
    now: Optional[datetime] = None,
) -> BatchReport:
    """Run the batch for every stored customer due at ``hour`` (default: current hour)."""
    now = now or datetime.now()
    hour = now.hour if hour is None else hour
    due = select_due_customers(store.list_customers(), hour, now.weekday())
    logger.info("Found %d customer(s) to update for hour %02d (weekday %d)", len(due), hour, now.weekday())
    return run_batch(due, store=store, service=service)
