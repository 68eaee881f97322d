"""
SmartNotes Backend - Batch Import Service
==========================================

What:  Imports a batch of uploaded files as notes and runs the AI pipeline
       on each one.
How:   Files are handled strictly one at a time, in upload order:
           extract text → create note (committed) → process_note()
       Every file has its own error boundary; a failing file is recorded in
       the ImportReport with its name and a message, and the batch continues.
Who:   POST /api/import
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from smartnotes.exceptions import (
    ExtractionError,
    GatewayError,
    PersistenceError,
    SmartNotesError,
    ValidationError,
)
from smartnotes.schemas.note import ImportFileResult, ImportReport, NoteCreate
from smartnotes.services.ai_pipeline import NoteProcessor, note_processor
from smartnotes.services.extraction_service import ExtractionService, extraction_service
from smartnotes.services.note_service import NoteService, note_service
from smartnotes.session import SessionContext

logger = logging.getLogger(__name__)

PLACEHOLDER_WARNING = "No text extractor for this file type; imported without AI processing."


@dataclass
class UploadedFile:
    filename: str
    content: bytes
    content_type: Optional[str] = None


class ImportService:
    def __init__(
        self,
        extractor: Optional[ExtractionService] = None,
        notes: Optional[NoteService] = None,
        processor: Optional[NoteProcessor] = None,
    ):
        self.extractor = extractor or extraction_service
        self.notes = notes or note_service
        self.processor = processor or note_processor

    async def import_files(
        self,
        db: AsyncSession,
        session: SessionContext,
        files: Sequence[UploadedFile],
        process: bool = True,
    ) -> ImportReport:
        user_id = session.require_user()
        report = ImportReport()

        for upload in files:
            result = await self._import_one(db, session, user_id, upload, process)
            report.files.append(result)

        logger.info(
            "Batch import finished: %d file(s), %d imported, %d failed",
            len(report.files),
            report.imported_count,
            len(report.failed),
        )
        return report

    async def _import_one(
        self,
        db: AsyncSession,
        session: SessionContext,
        user_id: str,
        upload: UploadedFile,
        process: bool,
    ) -> ImportFileResult:
        result = ImportFileResult(filename=upload.filename)

        try:
            extracted = await self.extractor.extract(
                upload.filename,
                upload.content,
                upload.content_type,
                credential=user_id,
            )
        except (ExtractionError, GatewayError, ValidationError) as e:
            logger.warning("Import of '%s' failed during extraction: %s", upload.filename, e.message)
            result.error = e.message
            return result

        title = Path(upload.filename).stem or upload.filename
        try:
            note = await self.notes.create_note(
                db,
                session,
                NoteCreate(title=title, content=extracted.text),
                is_imported=True,
                source_file_type=extracted.file_type,
            )
            note_id = note.id
            await db.commit()
        except PersistenceError as e:
            await db.rollback()
            logger.error("Import of '%s' failed while saving: %s", upload.filename, e.message)
            result.error = e.message
            return result
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Import of '%s' failed while committing: %s", upload.filename, e)
            result.error = f"Could not save '{upload.filename}'. Please try again."
            return result

        result.imported = True
        result.note_id = note_id

        if extracted.is_placeholder:
            result.warnings.append(PLACEHOLDER_WARNING)
            return result
        if not process:
            return result

        # The note is already committed, so a processing failure is a
        # warning on an imported file, never a batch abort.
        try:
            processing = await self.processor.process_note(db, session, note_id)
        except (SmartNotesError, SQLAlchemyError) as e:
            await db.rollback()
            message = e.message if isinstance(e, SmartNotesError) else type(e).__name__
            logger.error("Processing of imported '%s' failed: %s", upload.filename, message)
            result.warnings.append(f"processing: {message}")
            return result

        result.processed = not processing.is_fatal
        result.warnings.extend(
            f"{stage.stage}: {stage.reason}" for stage in processing.stages if stage.reason
        )
        return result


import_service = ImportService()
