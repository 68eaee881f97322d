"""
SmartNotes Backend - OCR Service
=================================

What:  Image-to-text boundary built on the gateway's vision path.
How:   Validates the payload, strips a data-URL prefix, sends the image with
       a fixed extraction prompt to the configured vision model.
Who:   POST /api/ocr and ExtractionService (image imports).

Two failure channels:
    - payload problems (no credential, no image) come back as
      OCRResult(error=...) so the HTTP layer can answer with a JSON body
    - gateway failures raise GatewayError subclasses
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from smartnotes.config import settings
from smartnotes.services.gemini_gateway import gemini_gateway
from smartnotes.services.llm_base import InlineImage, LLMGateway
from smartnotes.services.prompts import OCR_PROMPT

logger = logging.getLogger(__name__)

MISSING_CREDENTIAL = "Missing Authorization header"
MISSING_IMAGE = "Image data is required"

_DATA_URL_PREFIX = re.compile(r"^data:[^;,]*;base64,", re.IGNORECASE)


@dataclass
class OCRResult:
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def strip_data_url(image_base64: str) -> str:
    return _DATA_URL_PREFIX.sub("", image_base64.strip(), count=1)


class OCRService:
    def __init__(self, gateway: Optional[LLMGateway] = None):
        self._gateway = gateway

    @property
    def gateway(self) -> LLMGateway:
        return self._gateway or gemini_gateway

    async def recognize(
        self,
        image_base64: Optional[str],
        credential: Optional[str],
        mime_type: str = "image/jpeg",
    ) -> OCRResult:
        if not credential or not credential.strip():
            return OCRResult(error=MISSING_CREDENTIAL)
        if not image_base64 or not strip_data_url(image_base64):
            return OCRResult(error=MISSING_IMAGE)

        data = strip_data_url(image_base64)
        text = await self.gateway.generate(
            OCR_PROMPT,
            images=[InlineImage(data=data, mime_type=mime_type)],
            model=settings.gemini_vision_model,
        )
        text = text.strip()
        logger.info("OCR extracted %d chars (%s)", len(text), mime_type)
        return OCRResult(text=text)


ocr_service = OCRService()
