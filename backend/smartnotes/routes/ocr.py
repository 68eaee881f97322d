"""
SmartNotes Backend - OCR Route
===============================

What:  POST /api/ocr {"image": "<base64>", "mime_type": "image/png"}
       → {"text": "..."} or {"error": "..."}

Status codes:
    401  no bearer credential ({"error": "Missing Authorization header"})
    200  payload-level problems, reported in the `error` field
    422  unsupported image type
    502  the vision call itself failed (global GatewayError handler)
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from smartnotes.schemas.note import OCRRequest, OCRResponse
from smartnotes.services.extraction_service import validate_image_type
from smartnotes.services.ocr_service import MISSING_CREDENTIAL, ocr_service
from smartnotes.session import SessionContext, get_session_context

router = APIRouter(prefix="/api", tags=["OCR"])


@router.post("/ocr", response_model=OCRResponse, summary="Extract text from an image")
async def recognize_image(
    body: OCRRequest,
    session: SessionContext = Depends(get_session_context),
):
    if not session.is_authenticated:
        return JSONResponse(status_code=401, content={"error": MISSING_CREDENTIAL})

    mime_type = validate_image_type(body.mime_type)
    result = await ocr_service.recognize(body.image, session.user_id, mime_type=mime_type)
    return OCRResponse(text=result.text, error=result.error)
