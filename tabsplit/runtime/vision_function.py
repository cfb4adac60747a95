"""Vision-model receipt extraction endpoint.

Accepts ``{"image": <base64>}`` and asks an OpenAI-compatible chat model to
return the receipt fields as JSON. This is the service the structured
extraction backend talks to by default.
"""

import json
import time
from typing import Any

import httpx
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tabsplit.runtime.logging import get_logger
from tabsplit.runtime.settings import Settings

logger = get_logger(__name__)

RECEIPT_OCR_INSTRUCTION = """You are a receipt OCR system. Extract the following information from the receipt image:
- Total amount
- Date
- Vendor name/description
- Line items (with individual prices)

Return the data in this exact JSON format:
{
  "total_amount": number,
  "date": "YYYY-MM-DD",
  "description": "string",
  "items": [
    {
      "description": "string",
      "amount": number
    }
  ]
}"""


class VisionServiceError(RuntimeError):
    """Raised when the vision model cannot be reached or answers badly."""


class ProcessReceiptRequest(BaseModel):
    image: str


def build_chat_request(image_b64: str, model: str) -> dict[str, Any]:
    """Build the chat-completions body for one receipt image."""
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": RECEIPT_OCR_INSTRUCTION},
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"}},
                ],
            },
        ],
        "max_tokens": 1000,
        "response_format": {"type": "json_object"},
    }


def parse_chat_response(data: Any) -> dict[str, Any]:
    """Pull the JSON object out of a chat-completions response."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise VisionServiceError("Vision model response has no message content") from e

    if not isinstance(content, str):
        raise VisionServiceError("Vision model message content is not text")

    # Some models wrap JSON in a markdown fence despite the response format
    content = content.strip()
    if content.startswith("```"):
        content = content.strip("`")
        content = content.removeprefix("json").strip()

    try:
        result = json.loads(content)
    except json.JSONDecodeError as e:
        raise VisionServiceError("Vision model did not return JSON") from e
    if not isinstance(result, dict):
        raise VisionServiceError("Vision model returned JSON that is not an object")
    return result


async def call_vision_model(
    image_b64: str,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Send one base64 image to the vision model and return the receipt object."""
    if not settings.openai_api_key:
        raise VisionServiceError("OPENAI_API_KEY is not configured")

    url = f"{settings.openai_base_url}/chat/completions"
    start_time = time.time()
    try:
        async with httpx.AsyncClient(timeout=settings.extraction_timeout, transport=transport) as client:
            response = await client.post(
                url,
                json=build_chat_request(image_b64, settings.openai_model),
                headers={"Authorization": f"Bearer {settings.openai_api_key}"},
            )
    except httpx.RequestError as e:
        raise VisionServiceError(f"Failed to connect to vision model: {e}") from e

    logger.info("Vision model returned %s in %.2f seconds", response.status_code, time.time() - start_time)
    if not response.is_success:
        raise VisionServiceError(f"Vision model error: {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        raise VisionServiceError("Vision model returned invalid JSON") from e
    return parse_chat_response(data)


def create_vision_router(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> APIRouter:
    router = APIRouter()

    @router.post("/functions/process-receipt")
    async def process_receipt(body: ProcessReceiptRequest) -> JSONResponse:
        try:
            receipt_data = await call_vision_model(body.image, settings, transport=transport)
        except VisionServiceError as e:
            logger.error("Receipt extraction failed: %s", e)
            return JSONResponse({"error": str(e)}, status_code=500)
        return JSONResponse(receipt_data)

    return router
