"""Extraction-only scan workflow (no upload, no persistence)."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from tabsplit.domain.errors import ExtractionFailure
from tabsplit.receipt.image_helpers import is_accepted_content_type, shrink_image_bytes

if TYPE_CHECKING:
    from tabsplit.domain.receipt import ReceiptDraft
    from tabsplit.runtime.extraction import ExtractionBackend

ScanStatus = Literal[
    "file_not_found",
    "unsupported_type",
    "extraction_failed",
    "extracted",
]


@dataclass(frozen=True)
class ReceiptScanRequest:
    """Inputs for running the scan workflow."""

    image_path: Path
    extractor: ExtractionBackend


@dataclass(frozen=True)
class ReceiptScanResult:
    """Outcome from the scan workflow."""

    status: ScanStatus
    draft: ReceiptDraft | None = None
    content_type: str | None = None
    error: str | None = None


async def run_receipt_scan(request: ReceiptScanRequest) -> ReceiptScanResult:
    """Run extraction on a local file and return the draft for display."""
    if not request.image_path.is_file():
        return ReceiptScanResult(
            status="file_not_found",
            error=f"Receipt file not found: {request.image_path}",
        )

    content_type, _ = mimetypes.guess_type(request.image_path.name)
    if not is_accepted_content_type(content_type):
        return ReceiptScanResult(
            status="unsupported_type",
            content_type=content_type,
            error=f"Unsupported file type: {content_type or 'unknown'}",
        )

    image_bytes = shrink_image_bytes(request.image_path.read_bytes(), content_type)
    try:
        draft = await request.extractor.extract(image_bytes)
    except ExtractionFailure as exc:
        return ReceiptScanResult(
            status="extraction_failed",
            content_type=content_type,
            error=str(exc),
        )

    return ReceiptScanResult(status="extracted", draft=draft, content_type=content_type)
