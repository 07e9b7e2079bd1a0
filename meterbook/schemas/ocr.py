"""OCR candidate schema."""

from decimal import Decimal

from pydantic import BaseModel


class OcrCandidate(BaseModel):
    """Advisory meter value suggested by OCR."""

    value: Decimal | None = None
    confidence: float | None = None
