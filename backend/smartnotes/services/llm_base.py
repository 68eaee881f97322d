"""
SmartNotes Backend - Abstract LLM Gateway Interface
====================================================

What:  Abstract base class for the single-call text generation boundary.
How:   Concrete gateways implement generate() and health_check().
Who:   NoteProcessor (summaries, tag suggestions, flashcards) and
       OCRService (vision extraction).

Contract:
    - generate() performs exactly one request and returns the raw model text
    - no retries, no parsing of the text; the pipeline owns both
    - every failure surfaces as a GatewayError subclass
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class InlineImage:
    """Base64 image payload sent alongside a prompt."""

    data: str
    mime_type: str = "image/jpeg"


class LLMGateway(ABC):
    """
    Interface for a text-generation provider.

    Implementations:
        - GeminiGateway: Gemini generateContent REST endpoint over httpx
    """

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        images: Optional[Sequence[InlineImage]] = None,
        model: Optional[str] = None,
    ) -> str:
        """
        Send one prompt (optionally with inline images) and return the text.

        `model` overrides the configured model for this call only.

        Raises:
            MissingCredentialError: no API key configured (before any I/O)
            NetworkFailureError:    transport failure or timeout
            APIError:               non-success HTTP status
            SafetyBlockedError:     generation stopped by safety filters
            MalformedResponseError: success body without the text path
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the provider is configured and reachable. Never raises."""
        ...
