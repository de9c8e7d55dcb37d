"""Voice entry extraction services package."""

from snapledger.services.extraction.gemini_service import (
    ExtractionError,
    GeminiExtractionService,
    build_prompt,
    parse_reply,
)

__all__ = [
    "ExtractionError",
    "GeminiExtractionService",
    "build_prompt",
    "parse_reply",
]
