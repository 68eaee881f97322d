"""
SmartNotes Backend - Prompt Templates
======================================

What:  The prompts sent to the LLM gateway and the helpers that fill them.
Who:   NoteProcessor (summary, tagging, flashcards) and OCRService.

The summarization prompt asks for exactly the three markdown sections that
response_parser.parse_summary() scans for; the other two ask for a single
JSON object that extract_json_object() can slice out of surrounding prose.
"""

from typing import Iterable, Sequence

OVERVIEW_MARKER = "### Overview"
CONCEPTS_MARKER = "### Key Concepts & Details"
TAKEAWAYS_MARKER = "### Main Takeaways"


SUMMARIZATION_PROMPT = f"""Please provide a comprehensive and well-structured summary of the following text.
Rephrase and synthesize the information so that every significant point, argument, concept and supporting detail is covered accurately.
Present the information directly, as if explaining it to someone who has not read the original document. Do not describe the document itself (avoid phrases such as "This document outlines..." or "The text discusses...").

Organize your response exactly as follows, using markdown:

{OVERVIEW_MARKER}
A concise, high-level summary of the entire text (2-4 sentences) capturing its main purpose and scope.

{CONCEPTS_MARKER}
Every core concept, methodology and significant point in the text. For each item:
- Present it as: **Term or Concept:** followed by a detailed explanation.
- If the explanation involves a list of principles, practices, steps or sub-details, use markdown bullet points ('-') under the bolded term.

{TAKEAWAYS_MARKER}
3-5 distinct conclusions or critical implications a reader should take away, each as a markdown bullet point ('-').

Here is the text:

{{content}}"""


TAGGING_PROMPT = """Analyze the following note content and its AI-generated summary (if provided). Based on this analysis, provide:
1. 3-5 general, relevant topic tags. Prefer broader topics (e.g. 'Software Engineering', 'Physics', 'Economics') over very niche ones unless the niche is the central theme.
2. 2-3 keywords taken directly from the summary text.
3. 1-2 links to other notes that are semantically related to this note, if any.

Note content:
```
{content}
```

AI-generated summary of the note (use this for summary_keywords):
```
{summary}
```

Existing tags on this note (do not suggest these again):
{existing_tags}

Other available notes as "title (ID: id)" (for link suggestions):
{note_titles}

Respond with a single JSON object with exactly this structure:
{{
  "suggested_tags": [
    {{"name": "general topic tag", "category": "e.g. Broad Subject, Main Field"}}
  ],
  "summary_keywords": ["keyword from summary"],
  "suggested_links": [
    {{"note_id": "ID of the related note", "note_title": "Title of the related note", "reason": "brief explanation"}}
  ]
}}

If nothing relevant is found for a field, return an empty array for that field."""


FLASHCARD_PROMPT = """Turn the key information in the following AI-generated summary into concise, informative flashcards for study and review.
Each flashcard covers one important concept, definition or key fact.

- Aim for 8-15 high-quality flashcards; prioritize clarity and importance.
- "front": a clear question (e.g. "What are the core values of the Agile Manifesto?") or a key term (e.g. "Extreme Programming (XP):").
- "back": a direct, accurate and complete answer or definition.
- Use only information from the summary.

Summary:
```
{summary}
```

Respond with a single JSON object:
{{
  "flashcards": [
    {{"front": "question or term", "back": "answer or definition"}}
  ]
}}

If the summary is too short to yield meaningful flashcards, return an empty "flashcards" array."""


OCR_PROMPT = "Extract all text from this image. Return only the extracted text, nothing else."


def build_summarization_prompt(content: str) -> str:
    return SUMMARIZATION_PROMPT.replace("{content}", content)


def format_note_titles(titles: Iterable[Sequence[str]]) -> str:
    """Render (id, title) pairs one per line for the tagging prompt."""
    lines = [f"- {title} (ID: {note_id})" for note_id, title in titles]
    return "\n".join(lines)


def build_tagging_prompt(
    content: str,
    summary: str,
    existing_tags: Sequence[str],
    note_titles: Iterable[Sequence[str]],
) -> str:
    return TAGGING_PROMPT.format(
        content=content,
        summary=summary or "Not available",
        existing_tags=", ".join(existing_tags) or "None",
        note_titles=format_note_titles(note_titles) or "None available",
    )


def build_flashcard_prompt(summary: str) -> str:
    return FLASHCARD_PROMPT.format(summary=summary)
