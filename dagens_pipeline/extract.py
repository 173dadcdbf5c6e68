"""Turn restaurant page HTML into structured facts.

Two independent passes run over each page:

* a DOM pass (BeautifulSoup) for title, headline, word count and menu items,
  which depends on the page's markup;
* a pattern pass (regular expressions over the raw HTML) for phone numbers,
  e-mail addresses, street addresses and opening hours, which depends only on
  the text.

Nothing here raises on unexpected input; every field falls back to an empty
value.
"""

from __future__ import annotations

import html as html_lib
import logging
import re
from typing import Dict, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

from .models import ContactInfo, CrawledPage, ExtractedFacts, MenuItem

logger = logging.getLogger(__name__)

MAX_PHONES = 3
MAX_EMAILS = 2
MAX_ADDRESSES = 2
MAX_HOURS = 7
MAX_TITLE_LENGTH = 100


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

MENU_SELECTOR = '[class*="menu"], [class*="meny"], .dish, .food-item, .menu-item'
MENU_TITLE_SELECTOR = "h3, h4, .title, .name, strong"
MENU_DESCRIPTION_SELECTOR = "p, .description, .desc"

PRICE_RE = re.compile(r"(\d+)\s*(?:kr\b|:-|SEK\b)", re.IGNORECASE)

PHONE_RE = re.compile(r"\b(?:telefon|tel|phone)[:\s]*([0-9\s\-+()]{8,})", re.IGNORECASE)
EMAIL_RE = re.compile(r"[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
ADDRESS_RE = re.compile(
    r"[A-ZÅÄÖ][a-zåäö]+(?:[ \t][a-zåäö]+)*[ \t]+\d+[a-zA-Z]?,?\s*"
    r"\d{3}\s?\d{2}\s+[A-ZÅÄÖ][a-zåäö]+"
)

WEEKDAYS: Dict[str, str] = {
    "mån": "måndag",
    "tis": "tisdag",
    "ons": "onsdag",
    "tor": "torsdag",
    "fre": "fredag",
    "lör": "lördag",
    "sön": "söndag",
}

DAY_PATTERN = r"mån(?:dag)?|tis(?:dag)?|ons(?:dag)?|tor(?:sdag)?|fre(?:dag)?|lör(?:dag)?|sön(?:dag)?"
TIME_PATTERN = r"\d{1,2}[.:]\d{2}"

# "Mån 11:00-22:00", "Mån-Fre 11.00 - 14.00", "Söndag: stängt"
HOURS_RE = re.compile(
    rf"\b(?P<first>{DAY_PATTERN})\b(?:[\s\-–—]+(?P<last>{DAY_PATTERN})\b)?[\s:]*"
    rf"(?:(?P<open>{TIME_PATTERN})(?:\s*[-–—]\s*|\s+)(?P<close>{TIME_PATTERN})"
    r"|(?P<closed>stängt|closed)\b)",
    re.IGNORECASE,
)

MIN_PHONE_DIGITS = 7


def _dedupe(values: Iterable[str], limit: int) -> List[str]:
    """Keep first occurrences, in order, up to ``limit`` items."""
    out: List[str] = []
    for v in values:
        if v and v not in out:
            out.append(v)
        if len(out) >= limit:
            break
    return out


def _text(el: Optional[Tag]) -> str:
    if el is None:
        return ""
    return " ".join(el.get_text(" ", strip=True).split())


# ---------------------------------------------------------------------------
# Pattern pass
# ---------------------------------------------------------------------------

def extract_phones(raw_html: str) -> List[str]:
    phones = (m.group(1).strip(" \t\r\n-") for m in PHONE_RE.finditer(raw_html))
    return _dedupe(
        (p for p in phones if sum(c.isdigit() for c in p) >= MIN_PHONE_DIGITS), MAX_PHONES
    )


def extract_emails(raw_html: str) -> List[str]:
    return _dedupe((m.group(0) for m in EMAIL_RE.finditer(raw_html)), MAX_EMAILS)


def extract_addresses(raw_html: str) -> List[str]:
    addresses = (" ".join(m.group(0).split()) for m in ADDRESS_RE.finditer(raw_html))
    return _dedupe(addresses, MAX_ADDRESSES)


def _day_span(first: str, last: Optional[str]) -> List[str]:
    """Full day names from ``first`` through ``last``, wrapping past Sunday."""
    order = list(WEEKDAYS.values())
    start = order.index(WEEKDAYS[first.lower()[:3]])
    if last is None:
        return [order[start]]
    end = order.index(WEEKDAYS[last.lower()[:3]])
    return [order[(start + i) % 7] for i in range((end - start) % 7 + 1)]


def extract_hours(raw_html: str) -> List[str]:
    """Return one entry per weekday in week order, first match per day wins.

    Entries read ``"<weekday> HH:MM-HH:MM"`` or ``"<weekday> stängt"``. Day
    ranges such as ``Mån-Fre`` expand to every day they cover.
    """
    seen_days: Dict[str, str] = {}
    for m in HOURS_RE.finditer(raw_html):
        if m.group("closed"):
            hours = "stängt"
        else:
            opens = m.group("open").replace(".", ":")
            closes = m.group("close").replace(".", ":")
            hours = f"{opens}-{closes}"
        for day in _day_span(m.group("first"), m.group("last")):
            seen_days.setdefault(day, f"{day} {hours}")

    ordered = [seen_days[d] for d in WEEKDAYS.values() if d in seen_days]
    return _dedupe(ordered, MAX_HOURS)


def extract_contact_info(raw_html: str) -> ContactInfo:
    text = html_lib.unescape(raw_html or "")
    return ContactInfo(
        phones=extract_phones(text),
        emails=extract_emails(text),
        addresses=extract_addresses(text),
    )


# ---------------------------------------------------------------------------
# DOM pass
# ---------------------------------------------------------------------------

def _parse_price(text: str) -> Optional[int]:
    m = PRICE_RE.search(text)
    return int(m.group(1)) if m else None


def _menu_item(el: Tag) -> Optional[MenuItem]:
    title = _text(el.select_one(MENU_TITLE_SELECTOR))
    if not title:
        first_p = el.find("p")
        if first_p is not None:
            lines = first_p.get_text("\n", strip=True).split("\n")
            title = lines[0].strip() if lines else ""
    if not title or len(title) >= MAX_TITLE_LENGTH:
        return None

    description = ""
    for candidate in el.select(MENU_DESCRIPTION_SELECTOR):
        text = _text(candidate)
        if text and text != title:
            description = text
            break

    return MenuItem(
        title=title,
        description=description,
        price=_parse_price(el.get_text(" ", strip=True)),
    )


def extract_menu_items(soup: BeautifulSoup) -> List[MenuItem]:
    items: List[MenuItem] = []
    seen_titles = set()
    for el in soup.select(MENU_SELECTOR):
        item = _menu_item(el)
        if item is None or item.title in seen_titles:
            continue
        seen_titles.add(item.title)
        items.append(item)
    return items


def _main_text(soup: BeautifulSoup) -> str:
    region = soup.find("main") or soup.find("body") or soup
    return region.get_text(" ", strip=True)


def extract_facts(html: str, source_url: str) -> ExtractedFacts:
    """Derive ExtractedFacts from one page's HTML. Performs no I/O."""
    soup = BeautifulSoup(html or "", "lxml")

    facts = ExtractedFacts(
        source_url=source_url,
        title=_text(soup.find("title")),
        headline=_text(soup.find("h1")),
        word_count=len(_main_text(soup).split()),
        menu_items=extract_menu_items(soup),
        contact_info=extract_contact_info(html),
        opening_hours=extract_hours(html_lib.unescape(html or "")),
    )
    logger.debug(
        "Extracted %s: %d menu items, %d phones, %d hour entries",
        source_url, len(facts.menu_items), len(facts.contact_info.phones),
        len(facts.opening_hours),
    )
    return facts


def extract_pages(pages: Iterable[CrawledPage]) -> List[ExtractedFacts]:
    """Extract facts from every successfully fetched page, in order."""
    out = [extract_facts(p.html, p.url) for p in pages if p.is_success]
    logger.info("Extracted facts from %d page(s)", len(out))
    return out
