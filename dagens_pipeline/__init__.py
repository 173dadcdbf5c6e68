"""Dagens Pipeline: restaurant scraper and voice-AI knowledge base sync."""

from .config import Settings, get_settings
from .extract import extract_facts, extract_pages
from .hashing import compute_fingerprint, has_changed
from .ingest_http import fetch_many, fetch_url
from .knowledge import build_knowledge, scrape_restaurant
from .sync import run_batch, run_scheduled, sync_customer, sync_daily_content
from .validate import ValidationReport, ValidationResult, run_validation

__all__ = [
    "Settings",
    "get_settings",
    "fetch_url",
    "fetch_many",
    "extract_facts",
    "extract_pages",
    "compute_fingerprint",
    "has_changed",
    "build_knowledge",
    "scrape_restaurant",
    "sync_daily_content",
    "sync_customer",
    "run_batch",
    "run_scheduled",
    "run_validation",
    "ValidationReport",
    "ValidationResult",
]
