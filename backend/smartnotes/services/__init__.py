"""
SmartNotes Backend - Services Layer
====================================

Service Inventory:
    - LLMGateway / GeminiGateway: single-call text generation over httpx
    - OCRService:        image → text through the gateway's vision path
    - ExtractionService: file bytes → plain text (pypdf, python-docx, OCR)
    - response_parser:   model text → SummaryResult / TagSuggestions / flashcards
    - TagService:        tag CRUD, note/tag association, TagRef normalization
    - TagReconciler:     merges AI-suggested tags into the user's tag set
    - NoteService:       note persistence and the two-phase delete
    - NoteProcessor:     fetch → summarize → suggest pipeline, flashcards
    - ImportService:     batch import with a per-file report
    - flashcard_export:  printable sheet and Anki-style JSON

Every service is stateless and exposed as a module-level instance;
collaborators can be injected through constructors in tests.
"""
