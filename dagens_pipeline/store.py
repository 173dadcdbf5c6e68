"""JSON-file customer store with compare-and-swap sync-state updates."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .errors import StaleSyncStateError
from .models import Customer, SyncState

logger = logging.getLogger(__name__)

_slug_locks: Dict[str, threading.Lock] = {}
_slug_locks_guard = threading.Lock()


def lock_for(slug: str) -> threading.Lock:
    """Return the process-wide lock that serializes syncs for one restaurant."""
    with _slug_locks_guard:
        lock = _slug_locks.get(slug)
        if lock is None:
            lock = _slug_locks[slug] = threading.Lock()
        return lock


class CustomerStore:
    """Customer records kept in a single JSON file.

    Every write goes through a tmp-file rename so a crash never leaves a
    half-written file behind.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> Dict[int, Customer]:
        if not self.path.exists():
            return {}
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        return {int(c["id"]): Customer.model_validate(c) for c in raw.get("customers", [])}

    def _write(self, customers: Dict[int, Customer]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"customers": [c.model_dump(mode="json") for c in customers.values()]}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def list_customers(self) -> List[Customer]:
        """Return all customers ordered by ID."""
        with self._lock:
            return sorted(self._read().values(), key=lambda c: c.id)

    def get(self, customer_id: int) -> Optional[Customer]:
        with self._lock:
            return self._read().get(customer_id)

    def upsert(self, customer: Customer) -> None:
        with self._lock:
            customers = self._read()
            customers[customer.id] = customer
            self._write(customers)
        logger.debug("Saved customer %d (%s)", customer.id, customer.name)

    def compare_and_swap(
        self,
        customer_id: int,
        expected_fingerprint: Optional[str],
        new_fingerprint: str,
        *,
        synced_at: Optional[datetime] = None,
    ) -> SyncState:
        """Advance a customer's fingerprint only if it still equals ``expected_fingerprint``.

        Raises:
            KeyError: If the customer does not exist.
            StaleSyncStateError: If another sync advanced the fingerprint first.
        """
        with self._lock:
            customers = self._read()
            customer = customers.get(customer_id)
            if customer is None:
                raise KeyError(f"Unknown customer id={customer_id}")

            current = customer.sync_state
            if current.last_fingerprint != expected_fingerprint:
                raise StaleSyncStateError(
                    f"Sync state for customer {customer_id} changed concurrently "
                    f"(expected {expected_fingerprint!r}, found {current.last_fingerprint!r})"
                )

            new_state = SyncState(
                last_fingerprint=new_fingerprint,
                last_sync_at=synced_at or datetime.now(timezone.utc),
                version=current.version + 1,
            )
            customers[customer_id] = customer.model_copy(update={"sync_state": new_state})
            self._write(customers)

        logger.info("Customer %d sync state advanced to version %d", customer_id, new_state.version)
        return new_state
