"""
SmartNotes Backend - API Routes Package
========================================

Route Inventory:
    - notes.py:   note CRUD, processing, flashcards and exports
    - tags.py:    tag CRUD and note/tag association
    - imports.py: POST /api/import (batch file import)
    - ocr.py:     POST /api/ocr
    - health.py:  GET  /health

Routes stay thin: they resolve the db session and the SessionContext,
call a service and shape the response. Business rules live in services.
"""
