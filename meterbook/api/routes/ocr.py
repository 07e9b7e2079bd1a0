"""OCR candidate extraction route."""

from fastapi import APIRouter, Depends, File, UploadFile

from meterbook.schemas.ocr import OcrCandidate
from meterbook.services.ocr import OcrExtractor, get_ocr_extractor

router = APIRouter(prefix="/ocr", tags=["ocr"])


@router.post("/extract", response_model=OcrCandidate)
def extract_reading(
    file: UploadFile = File(...),
    extractor: OcrExtractor = Depends(get_ocr_extractor),
):
    """Suggest a meter value for an uploaded photo; the admin confirms it on approval."""
    return extractor.extract(file.file.read())
