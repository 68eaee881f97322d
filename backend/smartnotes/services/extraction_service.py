"""
SmartNotes Backend - Text Extraction Service
=============================================

What:  Converts an uploaded file into plain text for a new note.
How:   Dispatches on the file extension (falling back to the declared
       content type):
           .txt .md                    → UTF-8 decode (bad bytes replaced)
           .pdf                        → pypdf, pages in order
           .docx                       → python-docx paragraphs
           .png .jpg .jpeg .bmp .webp  → OCRService (LLM vision path)
           anything else               → "Imported file: <name>" placeholder
Who:   ImportService, once per uploaded file.

Errors (all ExtractionError subclasses, non-fatal to a batch):
    CorruptFileError    the parser library could not open the file
    EmptyResultError    nothing but whitespace came out
    OCRFailedError      the OCR boundary reported a payload error
    UnsupportedTypeError  only from validate_image_type() (OCR route)
Oversized files raise ValidationError before any parsing.
"""

import base64
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional

from docx import Document
from pypdf import PdfReader

from smartnotes.config import settings
from smartnotes.exceptions import (
    CorruptFileError,
    EmptyResultError,
    OCRFailedError,
    UnsupportedTypeError,
    ValidationError,
)
from smartnotes.services.ocr_service import OCRService, ocr_service

logger = logging.getLogger(__name__)

# ── Supported Types ───────────────────────────────────────────────────────
TEXT_EXTENSIONS = {".txt", ".md"}
IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
}
CONTENT_TYPE_EXTENSIONS = {
    "text/plain": ".txt",
    "text/markdown": ".md",
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/bmp": ".bmp",
    "image/webp": ".webp",
}


@dataclass
class ExtractedText:
    """
    Text pulled out of one file.

    is_placeholder is True for unsupported types, where `text` is only the
    "Imported file: <name>" marker.
    """

    text: str
    file_type: str
    is_placeholder: bool = False


def file_type_of(filename: str, content_type: Optional[str] = None) -> str:
    """Lowercase extension with the dot, or one derived from the content type."""
    ext = Path(filename or "").suffix.lower()
    if ext:
        return ext
    if content_type:
        return CONTENT_TYPE_EXTENSIONS.get(content_type.split(";")[0].strip().lower(), "")
    return ""


def validate_image_type(mime_type: str) -> str:
    """Raise UnsupportedTypeError unless `mime_type` is an OCR-capable image type."""
    normalized = (mime_type or "").split(";")[0].strip().lower()
    if normalized == "image/jpg":
        normalized = "image/jpeg"
    if normalized not in set(IMAGE_MIME_TYPES.values()):
        raise UnsupportedTypeError(
            message=(
                f"Image type '{mime_type}' is not supported. "
                f"Allowed: {', '.join(sorted(set(IMAGE_MIME_TYPES.values())))}"
            ),
            context={"mime_type": mime_type},
        )
    return normalized


class ExtractionService:
    def __init__(self, ocr: Optional[OCRService] = None):
        self._ocr = ocr

    @property
    def ocr(self) -> OCRService:
        return self._ocr or ocr_service

    async def extract(
        self,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
        credential: Optional[str] = None,
    ) -> ExtractedText:
        """
        Extract plain text from one file.

        Args:
            filename:      Original upload name (drives type detection)
            content:       Raw file bytes
            content_type:  Declared MIME type, used when the name has no extension
            credential:    Caller identity forwarded to the OCR boundary

        Raises:
            ValidationError:  file exceeds max_file_size
            ExtractionError:  see module docstring
            GatewayError:     OCR call failed at the transport/API level
        """
        if len(content) > settings.max_file_size:
            max_mb = settings.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=f"'{filename}' exceeds the maximum size of {max_mb:.0f}MB.",
                field="file",
                context={"size": len(content), "filename": filename},
            )

        file_type = file_type_of(filename, content_type)

        if file_type in TEXT_EXTENSIONS:
            text = self._decode_text(content)
        elif file_type == ".pdf":
            text = self._extract_pdf(filename, content)
        elif file_type == ".docx":
            text = self._extract_docx(filename, content)
        elif file_type in IMAGE_MIME_TYPES:
            text = await self._extract_image(filename, content, file_type, credential)
        else:
            logger.info("No extractor for '%s' (%s), importing placeholder", filename, file_type or "no extension")
            return ExtractedText(
                text=f"Imported file: {filename}",
                file_type=file_type.lstrip(".") or "unknown",
                is_placeholder=True,
            )

        if not text.strip():
            raise EmptyResultError(
                message=f"No text could be extracted from '{filename}'.",
                filename=filename,
            )

        logger.info("Extracted %d chars from '%s'", len(text), filename)
        return ExtractedText(text=text.strip(), file_type=file_type.lstrip("."))

    # ── Per-type extractors ───────────────────────────────────────────────

    @staticmethod
    def _decode_text(content: bytes) -> str:
        return content.decode("utf-8", errors="replace")

    @staticmethod
    def _extract_pdf(filename: str, content: bytes) -> str:
        try:
            reader = PdfReader(BytesIO(content))
            pages = [page.extract_text() or "" for page in reader.pages]
        except Exception as e:
            logger.warning("Could not read PDF '%s': %s", filename, e)
            raise CorruptFileError(
                message=f"'{filename}' is not a readable PDF file.",
                filename=filename,
                context={"error_type": type(e).__name__},
            ) from e
        return "\n".join(page.strip() for page in pages if page.strip())

    @staticmethod
    def _extract_docx(filename: str, content: bytes) -> str:
        try:
            document = Document(BytesIO(content))
        except Exception as e:
            logger.warning("Could not open DOCX '%s': %s", filename, e)
            raise CorruptFileError(
                message=f"'{filename}' is not a valid DOCX document.",
                filename=filename,
                context={"error_type": type(e).__name__},
            ) from e
        return "\n".join(p.text for p in document.paragraphs if p.text.strip())

    async def _extract_image(
        self,
        filename: str,
        content: bytes,
        file_type: str,
        credential: Optional[str],
    ) -> str:
        encoded = base64.b64encode(content).decode("ascii")
        result = await self.ocr.recognize(
            encoded,
            credential,
            mime_type=IMAGE_MIME_TYPES[file_type],
        )
        if result.error:
            raise OCRFailedError(
                message=f"Text recognition failed for '{filename}': {result.error}",
                filename=filename,
            )
        return result.text or ""


extraction_service = ExtractionService()
