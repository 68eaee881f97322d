"""
SmartNotes Backend - LLM Response Parser
=========================================

What:  Turns semi-structured model output into typed records.
How:   Two independent parsers:
         (a) parse_summary(): a line-scanning state machine over the three
             markdown sections requested by the summarization prompt
         (b) extract_json_object() and its typed wrappers: slice the first
             `{` to the last `}` and validate the decoded object
Who:   NoteProcessor.

Nothing in this module raises on malformed input. Summary parsing always
degrades to explicit placeholder strings, JSON parsing degrades to None, and
the caller decides what a missing result means.
"""

import json
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError

from smartnotes.schemas.note import Flashcard, SummaryResult, TagSuggestions
from smartnotes.services.prompts import (
    CONCEPTS_MARKER,
    OVERVIEW_MARKER,
    TAKEAWAYS_MARKER,
)

logger = logging.getLogger(__name__)

OVERVIEW_PLACEHOLDER = "Overview could not be extracted."
NO_MARKERS_KEY_POINTS = "Could not extract specific takeaways."
KEY_POINTS_PLACEHOLDER = "Key takeaways could not be extracted."

FENCE = "```"
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")

TAG_SUGGESTION_FIELDS = ("suggested_tags", "suggested_links", "summary_keywords")


# ══════════════════════════════════════════════════════════════════════════
# (a) Markdown-sectioned summary
# ══════════════════════════════════════════════════════════════════════════


class ScanState(str, Enum):
    BEFORE_OVERVIEW = "before_overview"
    IN_OVERVIEW = "in_overview"
    IN_CONCEPTS = "in_concepts"
    IN_TAKEAWAYS = "in_takeaways"
    IN_CODE_BLOCK = "in_code_block"


_MARKER_STATES = {
    OVERVIEW_MARKER.lower(): ScanState.IN_OVERVIEW,
    CONCEPTS_MARKER.lower(): ScanState.IN_CONCEPTS,
    TAKEAWAYS_MARKER.lower(): ScanState.IN_TAKEAWAYS,
}


def match_marker(line: str) -> Optional[ScanState]:
    """
    Return the section a marker line opens, or None for content lines.

    Matching ignores case, surrounding whitespace and a trailing colon, so
    "### Main Takeaways:" is still a marker.
    """
    normalized = line.strip().rstrip(":").strip().lower()
    return _MARKER_STATES.get(normalized)


class SummaryScanner:
    """
    Line scanner behind parse_summary().

    Each content line lands in the buffer of the section the scanner is in.
    A fence line toggles IN_CODE_BLOCK; while inside a fence, marker lines
    are ordinary content and the scanner returns to the enclosing section at
    the closing fence.
    """

    def __init__(self) -> None:
        self.state = ScanState.BEFORE_OVERVIEW
        self._resume_state = ScanState.BEFORE_OVERVIEW
        self.seen: Dict[ScanState, bool] = {
            ScanState.IN_OVERVIEW: False,
            ScanState.IN_CONCEPTS: False,
            ScanState.IN_TAKEAWAYS: False,
        }
        self.buffers: Dict[ScanState, List[str]] = {
            ScanState.BEFORE_OVERVIEW: [],
            ScanState.IN_OVERVIEW: [],
            ScanState.IN_CONCEPTS: [],
            ScanState.IN_TAKEAWAYS: [],
        }

    @property
    def section(self) -> ScanState:
        """The section receiving content, looking through an open fence."""
        if self.state == ScanState.IN_CODE_BLOCK:
            return self._resume_state
        return self.state

    @property
    def any_marker(self) -> bool:
        return any(self.seen.values())

    def feed(self, line: str) -> None:
        if self.state == ScanState.IN_CODE_BLOCK:
            self.buffers[self.section].append(line)
            if line.strip().startswith(FENCE):
                self.state = self._resume_state
            return

        if line.strip().startswith(FENCE):
            self.buffers[self.state].append(line)
            self._resume_state = self.state
            self.state = ScanState.IN_CODE_BLOCK
            return

        target = match_marker(line)
        if target is not None:
            self.seen[target] = True
            self.state = target
            return

        self.buffers[self.state].append(line)

    def scan(self, text: str) -> "SummaryScanner":
        for line in text.splitlines():
            self.feed(line)
        return self

    def lines(self, section: ScanState) -> List[str]:
        return self.buffers[section]


def strip_outer_fence(text: str) -> Optional[str]:
    """
    Body of a response wrapped whole in one fence, e.g. ```markdown ... ```.

    Returns None when the first non-blank line does not open a fence or the
    last non-blank line is not a bare closing fence.
    """
    lines = text.strip().splitlines()
    if len(lines) < 2:
        return None
    if not lines[0].strip().startswith(FENCE) or lines[-1].strip() != FENCE:
        return None
    return "\n".join(lines[1:-1])


def first_sentences(text: str, limit: int = 3) -> str:
    """
    First 1-3 sentences of `text`, split on `.`, `!` or `?` + whitespace.

    Falls back to the first blank-line separated paragraph when no
    sentence can be found.
    """
    stripped = text.strip()
    sentences = [s.strip() for s in _SENTENCE_BOUNDARY.split(stripped) if s.strip()]
    if sentences:
        return " ".join(sentences[:limit])
    return _PARAGRAPH_BREAK.split(stripped, maxsplit=1)[0].strip()


def parse_summary(text: Optional[str]) -> SummaryResult:
    """
    Split a summarization response into (summary, key points).

    Rules:
        - summary: trimmed Overview section; without one, 1-3 sentences of
          the text preceding the first marker; else a placeholder
        - key points: non-blank lines of Key Concepts & Details followed by
          non-blank lines of Main Takeaways, verbatim and in order
        - no marker at all: the whole response is the summary and the key
          points are a single "could not extract" line
    """
    if text is None or not text.strip():
        logger.warning("Empty summarization response, using placeholders")
        return SummaryResult(
            summary=OVERVIEW_PLACEHOLDER,
            key_points=[NO_MARKERS_KEY_POINTS],
        )

    scanner = SummaryScanner().scan(text)

    # Markers only inside fences: retry once without a fence wrapping the
    # whole answer. Responses that mix prose and code blocks keep the first
    # scan.
    if not scanner.any_marker:
        unwrapped = strip_outer_fence(text)
        if unwrapped is not None:
            scanner = SummaryScanner().scan(unwrapped)

    if not scanner.any_marker:
        logger.warning("No section markers in summarization response, using whole text")
        return SummaryResult(summary=text.strip(), key_points=[NO_MARKERS_KEY_POINTS])

    if scanner.seen[ScanState.IN_OVERVIEW]:
        summary = "\n".join(scanner.lines(ScanState.IN_OVERVIEW)).strip()
    else:
        summary = first_sentences("\n".join(scanner.lines(ScanState.BEFORE_OVERVIEW)))
    if not summary:
        logger.warning("Overview section missing or empty in summarization response")
        summary = OVERVIEW_PLACEHOLDER

    key_points = [
        line
        for section in (ScanState.IN_CONCEPTS, ScanState.IN_TAKEAWAYS)
        for line in scanner.lines(section)
        if line.strip()
    ]
    if not key_points:
        logger.warning("Key concepts and takeaways missing in summarization response")
        key_points = [KEY_POINTS_PLACEHOLDER]

    return SummaryResult(summary=summary, key_points=key_points)


# ══════════════════════════════════════════════════════════════════════════
# (b) Embedded JSON object
# ══════════════════════════════════════════════════════════════════════════


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode the JSON object spanning the first `{` to the last `}`.

    Leading and trailing prose (including markdown fences) is ignored.
    Returns None when either brace is missing, they are out of order, the
    slice is not valid JSON, or it decodes to something other than an object.
    """
    if not isinstance(text, str):
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    try:
        value = json.loads(text[start:end + 1])
    except ValueError:
        return None
    if not isinstance(value, dict):
        return None
    return value


def parse_tag_suggestions(text: Optional[str]) -> Optional[TagSuggestions]:
    obj = extract_json_object(text)
    if obj is None:
        logger.warning("Tagging response does not contain a JSON object")
        return None
    missing = [name for name in TAG_SUGGESTION_FIELDS if name not in obj]
    if missing:
        logger.warning("Tagging response is missing fields: %s", ", ".join(missing))
        return None
    try:
        return TagSuggestions.model_validate(obj)
    except SchemaValidationError as e:
        logger.warning("Tagging response failed validation: %d error(s)", e.error_count())
        return None


def parse_flashcards(text: Optional[str]) -> Optional[List[Flashcard]]:
    obj = extract_json_object(text)
    if obj is None:
        logger.warning("Flashcard response does not contain a JSON object")
        return None
    cards = obj.get("flashcards")
    if not isinstance(cards, list):
        logger.warning("Flashcard response has no 'flashcards' list")
        return None
    try:
        return [Flashcard.model_validate(card) for card in cards]
    except SchemaValidationError as e:
        logger.warning("Flashcard item failed validation: %d error(s)", e.error_count())
        return None
