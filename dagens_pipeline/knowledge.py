"""Build knowledge entries from extracted facts and write them per restaurant."""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import httpx
from pydantic import BaseModel
from slugify import slugify as _slugify

from .config import Settings, get_settings
from .extract import extract_pages
from .ingest_http import fetch_many, persist_page
from .models import DagensContent, ExtractedFacts, KnowledgeEntry, MenuItem

logger = logging.getLogger(__name__)

KNOWLEDGE_FILE = "knowledge.jsonl"
VOICE_AI_FILE = "voice-ai.txt"
INFO_FILE = "info.json"
MAX_MENU_ITEMS = 5

DAGENS_SECTION_RE = re.compile(r"##\s*dagens.*?\n(.*?)(?=##|$)", re.IGNORECASE | re.DOTALL)
SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

STANDARD_FAQS = [
    (
        "faq-gluten",
        "Har ni glutenfritt?",
        "Vi märker vår meny så gott det går, men fråga alltid personalen för "
        "säkerhets skull. Flera rätter kan anpassas till glutenfritt.",
        ["allergi", "gluten", "mat"],
    ),
    (
        "faq-vegetarian",
        "Har ni vegetariska alternativ?",
        "Ja, vi har alltid vegetariska och ofta även veganska alternativ på "
        "menyn. Fråga gärna personalen för dagens utbud.",
        ["vegetariskt", "veganskt", "mat"],
    ),
    (
        "faq-payment",
        "Vilka betalningsmetoder tar ni emot?",
        "Vi tar emot kontanter, kort och Swish. Alla vanliga betalmetoder fungerar bra.",
        ["betalning", "swish", "kort"],
    ),
]


class RestaurantScrape(BaseModel):
    """Summary of one scrape run for a restaurant."""

    slug: str
    name: str
    path: str
    pages_total: int
    pages_fetched: int
    entries: int
    scraped_at: datetime


def slugify(name: str) -> str:
    """Return the URL-safe restaurant identifier for a display name."""
    return _slugify(name, lowercase=True)


def _format_item(item: MenuItem) -> str:
    return f"{item.title} ({item.price} kr)" if item.price else item.title


def _is_dagens(item: MenuItem) -> bool:
    return "dagens" in f"{item.title} {item.description}".lower()


def build_knowledge(facts_list: List[ExtractedFacts], name: str) -> List[KnowledgeEntry]:
    """Build knowledge entries for one restaurant.

    Standard FAQs are always present. Facts come from the first page that
    carries them, since the first URL in a preset is the restaurant's main page.
    """
    entries: List[KnowledgeEntry] = [
        KnowledgeEntry(id=fid, type="qa", text=f"Q: {q}\nA: {a}", tags=tags)
        for fid, q, a, tags in STANDARD_FAQS
    ]
    if not facts_list:
        return entries

    main = facts_list[0]
    basic = f"{name} - {main.title}" if main.title else name
    entries.append(KnowledgeEntry(
        id="basic-info", type="fact", text=basic,
        tags=["grundinfo", "restaurang"], source=main.source_url,
    ))

    phone = next((f for f in facts_list if f.contact_info.phones), None)
    if phone:
        entries.append(KnowledgeEntry(
            id="phone", type="fact",
            text=f"Telefonnummer: {phone.contact_info.phones[0]}",
            tags=["kontakt", "telefon"], source=phone.source_url,
        ))

    address = next((f for f in facts_list if f.contact_info.addresses), None)
    if address:
        entries.append(KnowledgeEntry(
            id="address", type="fact",
            text=f"Adress: {address.contact_info.addresses[0]}",
            tags=["kontakt", "adress", "plats"], source=address.source_url,
        ))

    hours = next((f for f in facts_list if f.opening_hours), None)
    if hours:
        formatted = ", ".join(h[:1].upper() + h[1:] for h in hours.opening_hours)
        entries.append(KnowledgeEntry(
            id="hours", type="fact", text=f"Öppettider: {formatted}",
            tags=["öppettider", "tider"], source=hours.source_url,
        ))

    menu = [item for f in facts_list for item in f.menu_items]
    regular = [item for item in menu if not _is_dagens(item)]
    dagens = [item for item in menu if _is_dagens(item)]

    if regular:
        text = ", ".join(_format_item(i) for i in regular[:MAX_MENU_ITEMS])
        entries.append(KnowledgeEntry(
            id="menu", type="menu", text=f"Från vår meny: {text}",
            tags=["meny", "mat", "rätter"],
        ))
    if dagens:
        lines = []
        for item in dagens:
            line = _format_item(item)
            if item.description:
                line += f": {item.description}"
            lines.append(line)
        entries.append(KnowledgeEntry(
            id="dagens", type="menu", text="\n".join(lines),
            tags=["dagens", "meny", "lunch"],
        ))

    return entries


def render_voice_ai(entries: Iterable[KnowledgeEntry], name: Optional[str] = None) -> str:
    """Render entries as the plain-text document a voice agent reads."""
    entries = list(entries)
    facts = [e for e in entries if e.type == "fact"]
    menus = [e for e in entries if e.type == "menu" and e.id != "dagens"]
    dagens = [e for e in entries if e.id == "dagens"]
    faqs = [e for e in entries if e.type == "qa"]

    blocks: List[str] = []
    if name:
        blocks.append(f"# {name}")
    if facts:
        blocks.append("## Information\n" + "\n".join(f"- {e.text}" for e in facts))
    if menus:
        blocks.append("## Meny\n" + "\n".join(e.text for e in menus))
    if dagens:
        blocks.append("## Dagens\n" + "\n".join(e.text for e in dagens))
    if faqs:
        blocks.append("## Vanliga frågor\n" + "\n\n".join(e.text for e in faqs))
    return "\n\n".join(blocks) + "\n"


def extract_dagens_section(content: str) -> str:
    """Return the dagens section of a voice-ai document, or all of it if there is none."""
    m = DAGENS_SECTION_RE.search(content)
    if m and m.group(1).strip():
        return f"## Dagens Special\n{m.group(1).strip()}"
    return content


def _write_text_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8", newline="\n") as f:
        f.write(text)
    tmp.replace(path)


def write_knowledge_jsonl(path: Path, entries: Iterable[KnowledgeEntry]) -> int:
    """Write entries to JSONL atomically via tmp-file rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    count = 0
    with tmp.open("w", encoding="utf-8", newline="\n") as f:
        for e in entries:
            f.write(e.model_dump_json(exclude_none=True))
            f.write("\n")
            count += 1
    tmp.replace(path)
    logger.info("Wrote %d knowledge entries to %s", count, path)
    return count


def read_knowledge_jsonl(path: Path) -> List[KnowledgeEntry]:
    """Read a knowledge JSONL file, skipping blank lines."""
    entries: List[KnowledgeEntry] = []
    with path.open("r", encoding="utf-8") as f:
        for i, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(KnowledgeEntry.model_validate_json(line))
            except ValueError as exc:
                raise ValueError(f"Invalid knowledge entry at line {i} in {path}: {exc}") from exc
    return entries


def read_voice_ai(restaurants_dir: Path, slug: str) -> str:
    """Read the voice-ai document for a slug.

    Raises:
        FileNotFoundError: If the restaurant was never scraped.
    """
    if not SLUG_RE.match(slug):
        raise FileNotFoundError(f"Invalid restaurant slug: {slug!r}")
    path = restaurants_dir / slug / VOICE_AI_FILE
    return path.read_text(encoding="utf-8")


def resolve_dagens(restaurants_dir: Path, slug: str) -> DagensContent:
    """Return the dagens excerpt and full voice-ai document for a slug.

    Raises:
        FileNotFoundError: If the restaurant was never scraped.
    """
    full = read_voice_ai(restaurants_dir, slug)
    return DagensContent(slug=slug, content=extract_dagens_section(full), full_content=full)


def scrape_restaurant(
    urls: List[str],
    name: str,
    *,
    settings: Optional[Settings] = None,
    client: Optional[httpx.Client] = None,
) -> RestaurantScrape:
    """Crawl, extract and write the knowledge files for one restaurant."""
    s = settings or get_settings()
    slug = slugify(name)
    out_dir = s.restaurants_path / slug

    pages = fetch_many(urls, settings=s, client=client)
    for page in pages:
        persist_page(page, s.raw_html_path)

    facts = extract_pages(pages)
    entries = build_knowledge(facts, name)

    write_knowledge_jsonl(out_dir / KNOWLEDGE_FILE, entries)
    _write_text_atomic(out_dir / VOICE_AI_FILE, render_voice_ai(entries, name))

    summary = RestaurantScrape(
        slug=slug,
        name=name,
        path=str(out_dir).replace("\\", "/"),
        pages_total=len(pages),
        pages_fetched=sum(1 for p in pages if p.is_success),
        entries=len(entries),
        scraped_at=datetime.now(timezone.utc),
    )
    info = summary.model_dump(mode="json")
    info["urls"] = urls
    _write_text_atomic(out_dir / INFO_FILE, json.dumps(info, ensure_ascii=False, indent=2))

    logger.info("Scraped %s (%s): %d/%d pages, %d entries",
                name, slug, summary.pages_fetched, summary.pages_total, summary.entries)
    return summary
