"""
SmartNotes Backend - Flashcard Exports
=======================================

What:  Two download formats for a note's flashcards.
         - printable sheet: A4 portrait, 85 x 55 mm cards, 10 mm margin,
           5 mm gap, 2 columns, 8 cards per page, rendered as print-ready HTML
         - interchange document: Anki-style JSON
           {"notes": [{"deckName", "modelName", "fields", "tags"}]}
Who:   GET /api/notes/{id}/flashcards/export

Layout is computed separately from rendering so card placement can be
checked without parsing HTML.
"""

import html
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from smartnotes.config import settings
from smartnotes.schemas.note import Flashcard

# ── Print geometry (millimetres) ──────────────────────────────────────────
PAGE_WIDTH_MM = 210
PAGE_HEIGHT_MM = 297
CARD_WIDTH_MM = 85
CARD_HEIGHT_MM = 55
MARGIN_MM = 10
GAP_MM = 5
COLUMNS = 2
CARDS_PER_PAGE = 8

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-z0-9_]")
_WHITESPACE_RUN = re.compile(r"\s+")


@dataclass
class PlacedCard:
    index: int
    x_mm: float
    y_mm: float
    front: str
    back: str
    width_mm: float = CARD_WIDTH_MM
    height_mm: float = CARD_HEIGHT_MM


@dataclass
class PrintPage:
    number: int
    cards: List[PlacedCard] = field(default_factory=list)


def layout_cards(cards: Sequence[Flashcard]) -> List[PrintPage]:
    """Place cards left-to-right, top-to-bottom, 8 to a page."""
    pages: List[PrintPage] = []
    for index, card in enumerate(cards):
        slot = index % CARDS_PER_PAGE
        if slot == 0:
            pages.append(PrintPage(number=len(pages) + 1))
        column = slot % COLUMNS
        row = slot // COLUMNS
        pages[-1].cards.append(
            PlacedCard(
                index=index,
                x_mm=MARGIN_MM + column * (CARD_WIDTH_MM + GAP_MM),
                y_mm=MARGIN_MM + row * (CARD_HEIGHT_MM + GAP_MM),
                front=card.front,
                back=card.back,
            )
        )
    return pages


_PRINT_CSS = f"""
@page {{ size: A4 portrait; margin: 0; }}
body {{ margin: 0; font-family: helvetica, sans-serif; }}
.page {{ position: relative; width: {PAGE_WIDTH_MM}mm; height: {PAGE_HEIGHT_MM}mm; page-break-after: always; }}
.page:last-child {{ page-break-after: auto; }}
.card {{ position: absolute; width: {CARD_WIDTH_MM}mm; height: {CARD_HEIGHT_MM}mm; box-sizing: border-box;
        border: 0.5px solid #ccc; padding: 5mm; font-size: 8pt; overflow-wrap: break-word; overflow: hidden; }}
.front {{ font-weight: bold; margin-bottom: 3mm; border-bottom: 0.3px solid #eee; padding-bottom: 2mm; }}
""".strip()


def render_printable_html(cards: Sequence[Flashcard], title: Optional[str] = None) -> str:
    """Print-ready HTML document; one `.page` block per A4 sheet."""
    doc_title = html.escape(f"{title or 'Flashcards'} - Flashcards")
    parts = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="utf-8">',
        f"<title>{doc_title}</title>",
        f"<style>\n{_PRINT_CSS}\n</style>",
        "</head>",
        "<body>",
    ]
    for page in layout_cards(cards):
        parts.append(f'<div class="page" data-page="{page.number}">')
        for card in page.cards:
            parts.append(
                f'<div class="card" style="left: {card.x_mm}mm; top: {card.y_mm}mm;">'
                f'<div class="front">FRONT: {html.escape(card.front)}</div>'
                f'<div class="back">BACK: {html.escape(card.back)}</div>'
                "</div>"
            )
        parts.append("</div>")
    parts.extend(["</body>", "</html>"])
    return "\n".join(parts)


# ── Interchange document ──────────────────────────────────────────────────


def deck_name(title: Optional[str], prefix: Optional[str] = None) -> str:
    prefix = prefix or settings.anki_deck_prefix
    if title:
        return f"{prefix}::{title}"
    return f"{prefix} Deck"


def anki_tag(name: str) -> str:
    return _WHITESPACE_RUN.sub("_", name.strip())


def build_anki_export(
    cards: Sequence[Flashcard],
    title: Optional[str],
    tag_names: Iterable[str] = (),
    prefix: Optional[str] = None,
) -> Dict[str, Any]:
    tags = [anki_tag(name) for name in tag_names if name and name.strip()]
    deck = deck_name(title, prefix)
    return {
        "notes": [
            {
                "deckName": deck,
                "modelName": "Basic",
                "fields": {"Front": card.front, "Back": card.back},
                "tags": list(tags),
            }
            for card in cards
        ]
    }


def dump_anki_export(document: Dict[str, Any]) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False)


def export_basename(title: Optional[str]) -> str:
    """Title lowercased with every char outside [a-z0-9_] replaced by `_`."""
    if not title:
        return "flashcards"
    return _UNSAFE_FILENAME_CHARS.sub("_", title.lower())


def anki_filename(title: Optional[str]) -> str:
    return f"{export_basename(title)}_anki_import.json"


def printable_filename(title: Optional[str]) -> str:
    return f"{export_basename(title)}_flashcards.html"
