"""
Issued-date extraction from quotation PDFs.

Text after an ``ISSUED`` keyword wins. Otherwise the first plausible date
anywhere in the document is used, where plausible means between January 1st
two years ago and December 31st two years ahead.
"""
import io
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import PyPDF2

from quotereview.core.config import settings
from quotereview.core.logging import get_logger

logger = get_logger(__name__)

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_DAY_MONTHNAME_YEAR = re.compile(r"\b(\d{1,2})[-/]([A-Za-z]{3})[-/](\d{4})\b")
_NUMERIC_DMY = re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{4})\b")
_MONTHNAME_DAY_YEAR = re.compile(r"\b([A-Za-z]{3})\s+(\d{1,2}),?\s+(\d{4})\b")
_ISO = re.compile(r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b")
_ISSUED = re.compile(r"ISSUED\s+([^\n\r]+)", re.IGNORECASE)


def _make(year: int, month: int, day: int) -> Optional[datetime]:
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def _from_day_monthname(m) -> Optional[datetime]:
    month = MONTHS.get(m.group(2).lower())
    return _make(int(m.group(3)), month, int(m.group(1))) if month else None


def _from_numeric(m) -> Optional[datetime]:
    first, second, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
    # day-first unless only month-first is valid
    if first <= 31 and second <= 12:
        return _make(year, second, first)
    if first <= 12 and second <= 31:
        return _make(year, first, second)
    return None


def _from_monthname_day(m) -> Optional[datetime]:
    month = MONTHS.get(m.group(1).lower())
    return _make(int(m.group(3)), month, int(m.group(2))) if month else None


def _from_iso(m) -> Optional[datetime]:
    return _make(int(m.group(1)), int(m.group(2)), int(m.group(3)))


PATTERNS = (
    (_DAY_MONTHNAME_YEAR, _from_day_monthname),
    (_NUMERIC_DMY, _from_numeric),
    (_MONTHNAME_DAY_YEAR, _from_monthname_day),
    (_ISO, _from_iso),
)


def extract_date_from_text(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    if not text:
        return None

    issued = _ISSUED.search(text)
    if issued:
        fragment = issued.group(1)
        for pattern, build in PATTERNS:
            match = pattern.search(fragment)
            if match:
                value = build(match)
                if value:
                    return value

    now = now or datetime.now(timezone.utc)
    earliest = datetime(now.year - 2, 1, 1, tzinfo=timezone.utc)
    latest = datetime(now.year + 2, 12, 31, tzinfo=timezone.utc)
    for pattern, build in PATTERNS:
        for match in pattern.finditer(text):
            value = build(match)
            if value and earliest <= value <= latest:
                return value
    return None


def extract_text_from_pdf(content: bytes) -> str:
    """Extract text from PDF bytes. Returns empty string if extraction fails."""
    try:
        reader = PyPDF2.PdfReader(io.BytesIO(content))
        text = ""
        for page in reader.pages:
            page_text = page.extract_text()
            if page_text:
                text += page_text + "\n"
        return text.strip()
    except Exception as e:
        logger.warning(f"PDF text extraction failed: {e}")
        return ""


def extract_issued_date(content: bytes) -> Optional[datetime]:
    """Issued date of a PDF, or None. Never raises."""
    try:
        return extract_date_from_text(extract_text_from_pdf(content))
    except Exception as e:
        logger.warning(f"Issued date extraction failed: {e}")
        return None


def calculate_due_date(issued: Optional[datetime], days: Optional[int] = None) -> Optional[datetime]:
    if issued is None:
        return None
    return issued + timedelta(days=settings.DUE_DATE_OFFSET_DAYS if days is None else days)
