"""Extraction backends: image bytes in, ReceiptDraft out.

Two interchangeable implementations share one contract and are chosen at
configuration time:

- StructuredExtractionBackend: the service returns the receipt fields as JSON
- TextExtractionBackend: the service returns raw OCR text, parsed locally
"""

import base64
import time
from datetime import date
from typing import Any, Protocol

import httpx

from tabsplit.domain.errors import ExtractionFailure
from tabsplit.domain.receipt import ReceiptDraft
from tabsplit.receipt.structured import draft_from_payload
from tabsplit.receipt.text_parser import parse_receipt_text
from tabsplit.runtime.logging import get_logger
from tabsplit.runtime.settings import Settings

logger = get_logger(__name__)


class ExtractionBackend(Protocol):
    async def extract(self, image_bytes: bytes) -> ReceiptDraft: ...


class _HttpExtractionBackend:
    """Shared transport for backends that POST ``{"image": <base64>}``."""

    def __init__(
        self,
        endpoint_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint_url = endpoint_url
        self.headers = headers or {}
        self.timeout = timeout
        self._transport = transport

    async def _post_image(self, image_bytes: bytes) -> Any:
        payload = {"image": base64.b64encode(image_bytes).decode("ascii")}
        logger.info("Sending receipt (%d bytes) to extraction service at %s", len(image_bytes), self.endpoint_url)

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint_url, json=payload, headers=self.headers)
        except httpx.TimeoutException as e:
            logger.error("Extraction service timed out after %.0f seconds", self.timeout)
            raise ExtractionFailure(f"Extraction service timed out: {e}") from e
        except httpx.RequestError as e:
            logger.error("Failed to connect to extraction service: %s", e)
            raise ExtractionFailure(f"Failed to connect to extraction service: {e}") from e

        logger.info("Extraction service returned %s in %.2f seconds", response.status_code, time.time() - start_time)

        if not response.is_success:
            raise ExtractionFailure(f"Extraction service error: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise ExtractionFailure("Extraction service returned invalid JSON") from e


class StructuredExtractionBackend(_HttpExtractionBackend):
    """Backend whose service answers with ``{total_amount, date, description, items}``."""

    async def extract(self, image_bytes: bytes) -> ReceiptDraft:
        data = await self._post_image(image_bytes)
        draft = draft_from_payload(data, today=date.today())
        logger.debug("Structured extraction produced %d items", len(draft.items))
        return draft


class TextExtractionBackend(_HttpExtractionBackend):
    """Backend whose service answers with ``{text}``; fields come from the heuristic parser."""

    async def extract(self, image_bytes: bytes) -> ReceiptDraft:
        data = await self._post_image(image_bytes)
        if not isinstance(data, dict):
            raise ExtractionFailure("Extraction response is not a JSON object")

        text = data.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ExtractionFailure("Extraction service recognized no text")

        draft = parse_receipt_text(text, today=date.today())
        logger.debug("Text extraction produced %d items", len(draft.items))
        return draft


def create_extraction_backend(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ExtractionBackend:
    """Build the backend selected by ``settings.extraction_mode``."""
    headers: dict[str, str] = {}
    if settings.supabase_anon_key:
        headers["apikey"] = settings.supabase_anon_key
        headers["Authorization"] = f"Bearer {settings.supabase_anon_key}"

    backend_cls: type[_HttpExtractionBackend]
    if settings.extraction_mode == "text":
        backend_cls = TextExtractionBackend
    else:
        backend_cls = StructuredExtractionBackend

    return backend_cls(  # type: ignore[return-value]
        settings.extraction_url,
        headers=headers,
        timeout=settings.extraction_timeout,
        transport=transport,
    )
