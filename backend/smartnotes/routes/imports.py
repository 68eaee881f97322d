"""
SmartNotes Backend - Batch Import Route
========================================

What:  POST /api/import accepts one or more files (multipart field `files`)
       and answers with a per-file ImportReport.
How:   Files are read into memory and handed to ImportService in upload
       order. Per-file failures appear in the report; the response is 200
       unless the request itself is invalid (no files, not authenticated).
"""

from typing import List

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from smartnotes.database import get_db_session
from smartnotes.exceptions import ValidationError
from smartnotes.schemas.note import ErrorResponse, ImportReport
from smartnotes.services.import_service import UploadedFile, import_service
from smartnotes.session import SessionContext, get_session_context

router = APIRouter(prefix="/api", tags=["Import"])


@router.post(
    "/import",
    response_model=ImportReport,
    responses={
        400: {"description": "No files", "model": ErrorResponse},
        401: {"description": "Not authenticated", "model": ErrorResponse},
    },
    summary="Import PDF/DOCX/TXT/MD/image files as notes",
)
async def import_files(
    files: List[UploadFile] = File(..., description="Files to import"),
    process: bool = Query(default=True, description="Run AI processing on each note"),
    db: AsyncSession = Depends(get_db_session),
    session: SessionContext = Depends(get_session_context),
) -> ImportReport:
    session.require_user()
    if not files:
        raise ValidationError(message="No files were uploaded.", field="files")

    uploads = []
    for upload in files:
        uploads.append(
            UploadedFile(
                filename=upload.filename or "upload",
                content=await upload.read(),
                content_type=upload.content_type,
            )
        )
    return await import_service.import_files(db, session, uploads, process=process)
