"""Sequential page crawling with redirect following, rate-limit backoff and raw storage."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from .config import Settings, get_settings
from .models import CrawledPage, FetchOutcome

logger = logging.getLogger(__name__)

REDIRECT_STATUS = frozenset({301, 302})


class RateLimited(Exception):
    """Raised inside the retry loop when the server answers 429."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP 429 for {response.request.url}")
        self.response = response


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _write_json_atomic(path: Path, payload: Dict[str, Any]) -> None:
    """Write JSON atomically via tmp-file rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


def _client(settings: Settings) -> httpx.Client:
    # Redirects are followed by hand so a redirect never counts as a retry.
    return httpx.Client(
        timeout=settings.timeout_seconds,
        follow_redirects=False,
        headers={
            "user-agent": settings.user_agent,
            "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "accept-language": settings.accept_language,
        },
    )


def _log_backoff(retry_state: RetryCallState) -> None:
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "Rate limited (attempt %d), waiting %.1fs before retrying",
        retry_state.attempt_number, wait,
    )


def _retry_decorator(settings: Settings):
    unit = settings.backoff_unit_seconds
    return retry(
        retry=retry_if_exception_type(RateLimited),
        stop=stop_after_attempt(settings.max_retries + 1),
        wait=wait_incrementing(start=unit, increment=unit),
        before_sleep=_log_backoff,
        reraise=True,
    )


def _get_following_redirects(
    client: httpx.Client, state: Dict[str, Any], max_redirects: int
) -> httpx.Response:
    """GET ``state["url"]``, following 301/302 and recording the final URL in ``state``."""
    for _ in range(max_redirects + 1):
        resp = client.get(state["url"])
        location = resp.headers.get("location")
        if resp.status_code not in REDIRECT_STATUS or not location:
            return resp
        target = urljoin(state["url"], location)
        logger.info("Redirect %d: %s -> %s", resp.status_code, state["url"], target)
        state["url"] = target
    raise httpx.TooManyRedirects(
        f"Exceeded {max_redirects} redirects starting from {state['start']}",
        request=resp.request,
    )


def fetch_url(
    url: str,
    *,
    settings: Optional[Settings] = None,
    client: Optional[httpx.Client] = None,
) -> CrawledPage:
    """Fetch a single URL and classify the outcome.

    Never raises for HTTP or transport problems: timeouts, connection errors
    and exhausted rate-limit retries come back as a CrawledPage with the
    matching ``outcome`` and ``error`` set.

    Args:
        url: The URL to fetch.
        settings: Pipeline settings. Uses defaults if not provided.
        client: Optional httpx client to reuse across fetches.

    Returns:
        CrawledPage for the URL.
    """
    s = settings or get_settings()
    state: Dict[str, Any] = {"start": url, "url": url, "attempts": 0}

    @_retry_decorator(s)
    def _do_request(http: httpx.Client) -> httpx.Response:
        state["attempts"] += 1
        resp = _get_following_redirects(http, state, s.max_redirects)
        if resp.status_code == 429:
            raise RateLimited(resp)
        return resp

    logger.info("Fetching: %s", url)
    fetched_at = _utc_now()

    def _failure(outcome: FetchOutcome, error: str, status: Optional[int] = None) -> CrawledPage:
        return CrawledPage(
            url=url,
            fetched_at=fetched_at,
            outcome=outcome,
            status=status,
            final_url=state["url"],
            attempts=state["attempts"],
            error=error,
        )

    try:
        if client is not None:
            resp = _do_request(client)
        else:
            with _client(s) as http:
                resp = _do_request(http)
    except RateLimited:
        logger.error("Rate limit retries exhausted for %s after %d attempts", url, state["attempts"])
        return _failure(
            FetchOutcome.RATE_LIMITED,
            f"HTTP 429 for {url} after {state['attempts']} attempts",
            status=429,
        )
    except httpx.TimeoutException:
        logger.error("Timeout for %s", url)
        return _failure(FetchOutcome.TIMED_OUT, "timeout")
    except httpx.RequestError as exc:
        logger.error("Network error for %s: %s", url, exc)
        return _failure(FetchOutcome.NETWORK_ERROR, str(exc) or exc.__class__.__name__)

    status = resp.status_code
    if status == 200:
        logger.info("Fetched OK: %s (%d bytes)", url, len(resp.content))
    else:
        logger.warning("HTTP %d for %s", status, url)

    return CrawledPage(
        url=url,
        fetched_at=fetched_at,
        outcome=FetchOutcome.SUCCESS,
        status=status,
        html=resp.text if status == 200 else None,
        final_url=state["url"],
        attempts=state["attempts"],
        error=None if status == 200 else f"HTTP {status}",
    )


def fetch_many(
    urls: List[str],
    *,
    settings: Optional[Settings] = None,
    client: Optional[httpx.Client] = None,
) -> List[CrawledPage]:
    """Fetch multiple URLs sequentially, in order.

    Waits ``crawl_delay_seconds`` between consecutive fetches, never before
    the first or after the last. A failed URL does not stop the batch.
    """
    s = settings or get_settings()
    results: List[CrawledPage] = []

    def _run(http: httpx.Client) -> None:
        for i, url in enumerate(urls):
            if i > 0 and s.crawl_delay_seconds > 0:
                time.sleep(s.crawl_delay_seconds)
            results.append(fetch_url(url, settings=s, client=http))

    if client is not None:
        _run(client)
    else:
        with _client(s) as http:
            _run(http)

    ok = sum(1 for r in results if r.is_success)
    logger.info("Crawl finished: %d/%d pages fetched", ok, len(urls))
    return results


def persist_page(page: CrawledPage, raw_dir: Path) -> Optional[Tuple[Path, Path]]:
    """Save a page's HTML and metadata keyed by content hash. Idempotent.

    Returns None for pages without HTML.
    """
    if page.html is None:
        return None

    body = page.html.encode("utf-8")
    content_hash = _sha256_bytes(body)
    raw_dir.mkdir(parents=True, exist_ok=True)
    html_path = raw_dir / f"{content_hash}.html"
    meta_path = raw_dir / f"{content_hash}.json"

    if not html_path.exists():
        html_path.write_bytes(body)
        logger.info("Saved HTML: %s (%d bytes)", html_path.name, len(body))

    if not meta_path.exists():
        meta = page.model_dump(mode="json", exclude={"html"})
        meta["content_hash"] = content_hash
        meta["raw_html_path"] = str(html_path).replace("\\", "/")
        _write_json_atomic(meta_path, meta)

    return html_path, meta_path
