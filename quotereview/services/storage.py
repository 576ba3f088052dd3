"""
Local filesystem storage for quotation PDFs.

Files live under ``UPLOAD_DIR/quotations`` and are served by the API at
``/uploads/quotations/<filename>``.
"""
import os
import random
import time
from dataclasses import dataclass
from typing import Optional

from quotereview.core.config import settings
from quotereview.core.errors import DependencyFailure, ValidationError
from quotereview.core.logging import get_logger

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF"
URL_PREFIX = "/uploads/quotations"


@dataclass(frozen=True)
class StoredFile:
    filename: str
    path: str
    url: str


def validate_pdf(content: Optional[bytes], max_size: Optional[int] = None) -> None:
    """Reject empty, oversized or non-PDF payloads."""
    max_size = max_size or settings.MAX_UPLOAD_SIZE
    if not content:
        raise ValidationError("Uploaded PDF is empty")
    if len(content) > max_size:
        raise ValidationError(f"File too large. Maximum size is {max_size // (1024 * 1024)}MB")
    if not content.lstrip()[:4] == PDF_MAGIC:
        raise ValidationError("Only PDF files are allowed")


class PdfStorage:
    """Writes PDFs to disk and hands back their public locator."""

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = base_dir or os.path.join(settings.UPLOAD_DIR, "quotations")

    def _unique_name(self, prefix: str = "") -> str:
        suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
        return f"{prefix}{suffix}.pdf"

    def save(self, content: bytes, prefix: str = "") -> StoredFile:
        filename = self._unique_name(prefix)
        path = os.path.join(self.base_dir, filename)
        try:
            os.makedirs(self.base_dir, exist_ok=True)
            with open(path, "wb") as f:
                f.write(content)
        except OSError as e:
            logger.error(f"Failed to store PDF {filename}: {e}")
            raise DependencyFailure("Failed to store PDF file")
        return StoredFile(filename=filename, path=path, url=f"{URL_PREFIX}/{filename}")

    def delete(self, stored: Optional[StoredFile]) -> None:
        """Best-effort cleanup after a failed operation."""
        if stored is None:
            return
        try:
            if os.path.exists(stored.path):
                os.remove(stored.path)
        except OSError as e:
            logger.error(f"Error deleting stored PDF {stored.filename}: {e}")
