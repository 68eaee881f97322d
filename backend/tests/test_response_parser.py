"""
SmartNotes Backend - Response Parser Unit Tests
================================================

What we test:
    ✅ Sectioned summary: overview, key concepts and takeaways in order
    ✅ Marker matching ignores case and a trailing colon
    ✅ Markers inside code fences are content, not section switches
    ✅ Missing overview / no markers / empty input fall back to placeholders
    ✅ JSON slicing from prose, and None for every malformed shape
"""

from smartnotes.services.response_parser import (
    KEY_POINTS_PLACEHOLDER,
    NO_MARKERS_KEY_POINTS,
    OVERVIEW_PLACEHOLDER,
    ScanState,
    extract_json_object,
    first_sentences,
    match_marker,
    parse_flashcards,
    parse_summary,
    parse_tag_suggestions,
)


class TestParseSummary:

    def test_three_sections(self, summary_response):
        result = parse_summary(summary_response)
        assert result.summary == (
            "Photosynthesis converts light energy into chemical energy stored in glucose."
        )
        assert result.key_points == [
            "- **Chlorophyll:** absorbs red and blue light.",
            "- **Calvin cycle:** fixes carbon dioxide into sugars.",
            "- Plants are primary producers.",
        ]

    def test_multiline_overview_is_joined_and_trimmed(self):
        text = "### Overview\n\n  First line.\nSecond line.  \n\n### Main Takeaways\n- A"
        result = parse_summary(text)
        assert result.summary == "First line.\nSecond line."
        assert result.key_points == ["- A"]

    def test_markers_are_case_insensitive_with_trailing_colon(self):
        text = "### overview:\nShort overview.\n### MAIN TAKEAWAYS:\n- Point"
        result = parse_summary(text)
        assert result.summary == "Short overview."
        assert result.key_points == ["- Point"]

    def test_marker_inside_code_fence_is_content(self):
        text = (
            "### Overview\n"
            "Explains markdown headings.\n"
            "### Key Concepts & Details\n"
            "```\n"
            "### Main Takeaways\n"
            "```\n"
            "- Headings start with hashes.\n"
        )
        result = parse_summary(text)
        assert result.summary == "Explains markdown headings."
        assert result.key_points == [
            "```",
            "### Main Takeaways",
            "```",
            "- Headings start with hashes.",
        ]

    def test_response_wrapped_in_one_fence(self):
        text = (
            "```markdown\n"
            "### Overview\n"
            "A is B.\n"
            "### Key Concepts & Details\n"
            "- point one\n"
            "### Main Takeaways\n"
            "- take one\n"
            "```"
        )
        result = parse_summary(text)
        assert result.summary == "A is B."
        assert result.key_points == ["- point one", "- take one"]

    def test_fenced_code_without_markers_is_not_unwrapped(self):
        text = "```\nprint('hi')\n```"
        result = parse_summary(text)
        assert result.summary == text
        assert result.key_points == [NO_MARKERS_KEY_POINTS]

    def test_missing_overview_uses_leading_sentences(self):
        text = (
            "Cells divide. They grow! Do they rest? They do.\n"
            "### Main Takeaways\n"
            "- Mitosis"
        )
        result = parse_summary(text)
        assert result.summary == "Cells divide. They grow! Do they rest?"
        assert result.key_points == ["- Mitosis"]

    def test_missing_overview_and_preamble_uses_placeholder(self):
        result = parse_summary("### Key Concepts & Details\n- Only concepts")
        assert result.summary == OVERVIEW_PLACEHOLDER
        assert result.key_points == ["- Only concepts"]

    def test_sections_without_points_use_placeholder(self):
        result = parse_summary("### Overview\nJust an overview.")
        assert result.summary == "Just an overview."
        assert result.key_points == [KEY_POINTS_PLACEHOLDER]

    def test_no_markers_keeps_whole_text(self):
        result = parse_summary("  A plain answer with no headings.  ")
        assert result.summary == "A plain answer with no headings."
        assert result.key_points == [NO_MARKERS_KEY_POINTS]

    def test_empty_input_never_yields_empty_fields(self):
        for text in (None, "", "   \n  "):
            result = parse_summary(text)
            assert result.summary == OVERVIEW_PLACEHOLDER
            assert result.key_points == [NO_MARKERS_KEY_POINTS]


class TestScannerHelpers:

    def test_match_marker(self):
        assert match_marker("### Overview") == ScanState.IN_OVERVIEW
        assert match_marker("  ### key concepts & details:  ") == ScanState.IN_CONCEPTS
        assert match_marker("### Main Takeaways") == ScanState.IN_TAKEAWAYS
        assert match_marker("## Overview") is None
        assert match_marker("Overview") is None

    def test_first_sentences_limits_to_three(self):
        assert first_sentences("One. Two. Three. Four.") == "One. Two. Three."

    def test_first_sentences_without_punctuation(self):
        assert first_sentences("no punctuation here\n\nsecond paragraph") == (
            "no punctuation here\n\nsecond paragraph"
        )


class TestExtractJsonObject:

    def test_json_wrapped_in_prose_and_fence(self, tags_response):
        obj = extract_json_object(tags_response)
        assert obj["summary_keywords"] == ["photosynthesis", "glucose"]

    def test_nested_braces_use_outermost_span(self):
        obj = extract_json_object('prefix {"a": {"b": 1}} suffix')
        assert obj == {"a": {"b": 1}}

    def test_malformed_inputs_return_none(self):
        for text in (None, "", "no braces", "} backwards {", "{not json}", "[1, 2]"):
            assert extract_json_object(text) is None

    def test_two_objects_do_not_decode(self):
        assert extract_json_object('{"a": 1} and {"b": 2}') is None


class TestParseTagSuggestions:

    def test_valid_response(self, tags_response):
        suggestions = parse_tag_suggestions(tags_response)
        assert [t.name for t in suggestions.suggested_tags] == ["Biology", "Botany"]
        assert suggestions.suggested_tags[0].category == "Science"
        assert suggestions.suggested_tags[1].category is None
        assert suggestions.suggested_links == []

    def test_link_fields(self):
        text = (
            '{"suggested_tags": [], "summary_keywords": [], "suggested_links": '
            '[{"note_id": "abc", "note_title": "Cells", "reason": "same topic"}]}'
        )
        suggestions = parse_tag_suggestions(text)
        link = suggestions.suggested_links[0]
        assert (link.note_id, link.note_title, link.reason) == ("abc", "Cells", "same topic")

    def test_missing_required_field_returns_none(self):
        assert parse_tag_suggestions('{"suggested_tags": [], "summary_keywords": []}') is None

    def test_wrong_item_shape_returns_none(self):
        text = '{"suggested_tags": [{"category": "x"}], "summary_keywords": [], "suggested_links": []}'
        assert parse_tag_suggestions(text) is None


class TestParseFlashcards:

    def test_valid_cards(self):
        text = 'Sure!\n{"flashcards": [{"front": "Q1", "back": "A1"}, {"front": "Q2", "back": "A2"}]}'
        cards = parse_flashcards(text)
        assert [(c.front, c.back) for c in cards] == [("Q1", "A1"), ("Q2", "A2")]

    def test_missing_list_returns_none(self):
        assert parse_flashcards('{"cards": []}') is None
        assert parse_flashcards('{"flashcards": "none"}') is None

    def test_card_without_back_returns_none(self):
        assert parse_flashcards('{"flashcards": [{"front": "Q"}]}') is None
