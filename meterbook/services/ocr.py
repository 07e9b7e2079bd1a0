"""OCR candidate extraction.

Text recognition runs in a separate OCR service; this module sends it the
image and picks the most plausible meter value out of the recognized text.
The result is only a suggestion for the admin.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Protocol

import httpx

from meterbook.core.config import settings
from meterbook.core.errors import DependencyError
from meterbook.schemas.ocr import OcrCandidate

logger = logging.getLogger(__name__)

# Dials are well below this; larger integer parts are usually serial numbers
MAX_DIAL_INTEGER = 200000

_SPLIT_PATTERN = re.compile(r"(\d{4,6})\D+(\d{3})")
_LONG_RUN_PATTERN = re.compile(r"\d{8,9}")
_GROUP_PATTERN = re.compile(r"\d{4,8}")
_ANY_DIGITS = re.compile(r"\d+")


class OcrExtractor(Protocol):
    """Anything that turns an image into an advisory meter value."""

    def extract(self, image_bytes: bytes) -> OcrCandidate: ...


def parse_reading_candidate(text: str | None) -> Decimal | None:
    """
    Pick a meter value out of OCR text.

    1. "<4-6 digits><separator><3 digits>", e.g. "00190 981" -> 190.981;
       the last match with a plausible integer part wins
    2. 8-9 digit runs, e.g. "00190981" -> 190.981, last plausible one wins
    3. The last 4-8 digit group (or any digit group) as an integer
    """
    if not text:
        return None

    candidate: str | None = None
    for whole, decimals in _SPLIT_PATTERN.findall(text):
        if int(whole) <= MAX_DIAL_INTEGER:
            candidate = f"{whole}.{decimals}"

    if candidate is None:
        for run in _LONG_RUN_PATTERN.findall(text):
            whole, decimals = run[:-3], run[-3:]
            if int(whole) <= MAX_DIAL_INTEGER:
                candidate = f"{whole}.{decimals}"

    if candidate is None:
        groups = _GROUP_PATTERN.findall(text) or _ANY_DIGITS.findall(text)
        if groups:
            candidate = groups[-1]

    if candidate is None:
        return None
    try:
        return Decimal(candidate)
    except InvalidOperation:
        return None


def _normalize_confidence(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


class HttpOcrExtractor:
    """Client for the remote OCR service.

    The service accepts a multipart upload and answers with JSON containing
    the recognized ``text`` and a ``confidence``; a service that already
    extracts a numeric ``reading`` is used as is.
    """

    def __init__(self, url: str | None = None, timeout: float | None = None) -> None:
        self.url = url or settings.OCR_URL
        self.timeout = timeout if timeout is not None else settings.OCR_TIMEOUT_SECONDS

    def extract(self, image_bytes: bytes) -> OcrCandidate:
        try:
            response = httpx.post(
                self.url,
                files={"file": ("meter.jpg", image_bytes)},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("OCR service at %s failed: %s", self.url, exc)
            raise DependencyError("OCR service is unavailable") from exc
        if not isinstance(payload, dict):
            raise DependencyError("OCR service returned an unexpected response")

        confidence = _normalize_confidence(payload.get("confidence"))
        reading = payload.get("reading")
        if reading is not None and not isinstance(reading, bool):
            try:
                value = Decimal(str(reading))
            except InvalidOperation:
                value = None
            if value is not None and value.is_finite():
                return OcrCandidate(value=value, confidence=confidence)

        text = payload.get("text") or ""
        logger.debug("OCR raw text: %r", text)
        return OcrCandidate(value=parse_reading_candidate(text), confidence=confidence)


def get_ocr_extractor() -> OcrExtractor:
    """Dependency providing the configured extractor."""
    return HttpOcrExtractor()
