"""Content fingerprints and change detection."""

from __future__ import annotations

import hashlib
from typing import Optional


def compute_fingerprint(text: str) -> str:
    """Return the hex SHA-256 digest of ``text`` after trimming it.

    Leading and trailing whitespace never affects the fingerprint, so the
    same content re-rendered with different padding is not a change.
    """
    return hashlib.sha256(text.strip().encode("utf-8")).hexdigest()


def has_changed(new_text: str, previous_fingerprint: Optional[str]) -> bool:
    """Return True if ``new_text`` differs from the content behind the fingerprint.

    A missing fingerprint means the content was never synced, which always
    counts as a change.
    """
    if not previous_fingerprint:
        return True
    return compute_fingerprint(new_text) != previous_fingerprint


def short(fingerprint: Optional[str]) -> Optional[str]:
    """Return the 8-character prefix used in logs and reports."""
    return fingerprint[:8] if fingerprint else None
