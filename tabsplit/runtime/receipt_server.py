"""FastAPI server for receipt upload, review and save."""

import time
import uuid
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from fastapi import FastAPI, File, Header, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tabsplit.application.receipts.ingest import ReceiptIngestion
from tabsplit.application.receipts.review import ReviewForm
from tabsplit.domain.errors import IngestionStateError, PersistenceError, ValidationError
from tabsplit.domain.receipt import AuthContext, ReceiptUpload, StoredReceipt
from tabsplit.runtime.extraction import ExtractionBackend, create_extraction_backend
from tabsplit.runtime.logging import get_logger
from tabsplit.runtime.object_storage import ObjectStore, select_object_store
from tabsplit.runtime.paths import get_paths
from tabsplit.runtime.receipt_store import ReceiptStore, quantize_amount, select_receipt_store
from tabsplit.runtime.settings import Settings, get_settings
from tabsplit.runtime.vision_function import create_vision_router

logger = get_logger(__name__)


SESSION_TTL_SECONDS = 30 * 60
MAX_REVIEW_SESSIONS = 256


@dataclass
class ReceiptServices:
    """
    Collaborators the HTTP layer hands to each ingestion cycle.

    Open review sessions live in ``sessions`` (insertion ordered, oldest
    first). Sessions older than ``session_ttl`` seconds are dropped, and the
    oldest are evicted once ``max_sessions`` are open.
    """

    settings: Settings
    extractor: ExtractionBackend
    receipt_store_for: Callable[[AuthContext | None], ReceiptStore]
    object_store_for: Callable[[AuthContext | None], ObjectStore | None]
    sessions: dict[str, ReceiptIngestion] = field(default_factory=dict)
    session_ttl: float = SESSION_TTL_SECONDS
    max_sessions: int = MAX_REVIEW_SESSIONS
    clock: Callable[[], float] = time.monotonic
    _opened_at: dict[str, float] = field(default_factory=dict, repr=False)

    def _drop(self, session_id: str) -> None:
        ingestion = self.sessions.pop(session_id, None)
        self._opened_at.pop(session_id, None)
        if ingestion is not None and ingestion.state == "reviewing":
            ingestion.cancel()

    def expire_sessions(self) -> None:
        cutoff = self.clock() - self.session_ttl
        for session_id in [sid for sid, opened in self._opened_at.items() if opened < cutoff]:
            logger.info("Review session %s expired", session_id)
            self._drop(session_id)

    def open_session(self, ingestion: ReceiptIngestion) -> str:
        self.expire_sessions()
        while self.sessions and len(self.sessions) >= self.max_sessions:
            oldest = next(iter(self.sessions))
            logger.warning("Evicting review session %s; %d sessions open", oldest, len(self.sessions))
            self._drop(oldest)

        session_id = str(uuid.uuid4())
        self.sessions[session_id] = ingestion
        self._opened_at[session_id] = self.clock()
        return session_id

    def get_session(self, session_id: str) -> ReceiptIngestion | None:
        self.expire_sessions()
        return self.sessions.get(session_id)

    def close_session(self, session_id: str) -> ReceiptIngestion | None:
        self._opened_at.pop(session_id, None)
        return self.sessions.pop(session_id, None)


def default_services(settings: Settings) -> ReceiptServices:
    return ReceiptServices(
        settings=settings,
        extractor=create_extraction_backend(settings),
        receipt_store_for=lambda auth: select_receipt_store(settings, auth),
        object_store_for=lambda auth: select_object_store(settings, auth),
    )


class ItemEdit(BaseModel):
    description: str = ""
    amount: float | str | None = None


class ReviewEdits(BaseModel):
    description: str
    date: str
    items: list[ItemEdit] = []


def auth_from_headers(authorization: str | None, user_id: str | None) -> AuthContext | None:
    """Build the auth context from ``Authorization: Bearer`` and ``X-User-Id``."""
    if not authorization or not user_id:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return AuthContext(access_token=token.strip(), user_id=user_id)


def form_payload(form: ReviewForm) -> dict[str, Any]:
    return {
        "description": form.description,
        "date": form.date,
        "suggested_total": float(form.suggested_total),
        "total_amount": float(form.compute_total()),
        "image_url": form.image_ref,
        "items": [{"description": item.description, "amount": float(item.amount)} for item in form.items],
    }


def receipt_payload(receipt: StoredReceipt) -> dict[str, Any]:
    return {
        "id": receipt.id,
        "group_id": receipt.group_id,
        "description": receipt.description,
        "total_amount": float(quantize_amount(receipt.total_amount)),
        "date": receipt.date.isoformat(),
        "uploaded_by": receipt.uploaded_by,
        "paid_by": receipt.paid_by,
        "image_url": receipt.image_url,
        "items": [{"description": item.description, "amount": float(item.amount)} for item in receipt.items],
    }


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"status": "error", "message": message}, status_code=status_code)


def apply_edits(form: ReviewForm, edits: ReviewEdits) -> None:
    """Replace the form contents with the client's edited values."""
    form.set_description(edits.description)
    form.set_date(edits.date)
    for index in reversed(range(len(form.items))):
        form.remove_item(index)
    for index, item in enumerate(edits.items):
        form.add_item()
        form.update_item(index, "description", item.description)
        form.update_item(index, "amount", item.amount)


def create_app(services: ReceiptServices | None = None) -> FastAPI:
    services = services or default_services(get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Create local storage directories on startup."""
        get_paths().ensure_directories()
        yield

    app = FastAPI(title="Receipt Ingestion", lifespan=lifespan)
    app.state.services = services
    app.include_router(create_vision_router(services.settings))

    def _services(request: Request) -> ReceiptServices:
        return request.app.state.services

    def _ingestion(svc: ReceiptServices, group_id: str, auth: AuthContext | None) -> ReceiptIngestion:
        return ReceiptIngestion(
            extractor=svc.extractor,
            receipt_store=svc.receipt_store_for(auth),
            object_store=svc.object_store_for(auth),
            group_id=group_id,
            auth=auth,
        )

    def _session_response(svc: ReceiptServices, ingestion: ReceiptIngestion, form: ReviewForm) -> JSONResponse:
        session_id = svc.open_session(ingestion)
        logger.info("Opened review session %s for group %s", session_id, ingestion.group_id)
        return JSONResponse(
            {
                "status": "success",
                "session_id": session_id,
                "state": ingestion.state,
                "notice": ingestion.notice,
                "draft": form_payload(form),
            }
        )

    async def _submit(ingestion: ReceiptIngestion, edits: ReviewEdits) -> StoredReceipt | JSONResponse:
        if ingestion.form is None:
            return _error("No receipt under review", 409)
        try:
            apply_edits(ingestion.form, edits)
            return await ingestion.submit()
        except ValidationError as e:
            return _error(str(e), 422)
        except IngestionStateError as e:
            return _error(str(e), 409)
        except PersistenceError as e:
            logger.error("Receipt save failed for group %s: %s", ingestion.group_id, e)
            return _error("Failed to save receipt. Please try again.", 502)

    @app.post("/groups/{group_id}/receipts/uploads")
    async def upload_receipt(
        group_id: str,
        request: Request,
        file: UploadFile = File(...),
        authorization: str | None = Header(default=None),
        x_user_id: str | None = Header(default=None),
    ) -> JSONResponse:
        """Start an ingestion cycle and return the draft for review."""
        svc = _services(request)
        ingestion = _ingestion(svc, group_id, auth_from_headers(authorization, x_user_id))

        contents = await file.read()
        try:
            ingestion.select_file(
                ReceiptUpload(
                    filename=file.filename or "receipt",
                    content_type=file.content_type or "",
                    data=contents,
                )
            )
        except ValidationError as e:
            return _error(str(e), 400)

        form = await ingestion.process()
        return _session_response(svc, ingestion, form)

    @app.post("/groups/{group_id}/receipts/manual")
    async def start_manual_receipt(
        group_id: str,
        request: Request,
        authorization: str | None = Header(default=None),
        x_user_id: str | None = Header(default=None),
    ) -> JSONResponse:
        """Open a review session on an empty draft, without any file."""
        svc = _services(request)
        ingestion = _ingestion(svc, group_id, auth_from_headers(authorization, x_user_id))
        form = ingestion.start_manual()
        return _session_response(svc, ingestion, form)

    @app.post("/groups/{group_id}/receipts")
    async def create_receipt(
        group_id: str,
        edits: ReviewEdits,
        request: Request,
        authorization: str | None = Header(default=None),
        x_user_id: str | None = Header(default=None),
    ) -> JSONResponse:
        """Save a manually entered receipt in one request."""
        ingestion = _ingestion(_services(request), group_id, auth_from_headers(authorization, x_user_id))
        ingestion.start_manual()
        result = await _submit(ingestion, edits)
        if isinstance(result, JSONResponse):
            return result
        return JSONResponse({"status": "success", "receipt": receipt_payload(result)}, status_code=201)

    @app.post("/receipts/sessions/{session_id}/submit")
    async def submit_receipt(session_id: str, edits: ReviewEdits, request: Request) -> JSONResponse:
        """Save the reviewed receipt; the session survives failed saves for retry."""
        svc = _services(request)
        ingestion = svc.get_session(session_id)
        if ingestion is None:
            return _error("Unknown review session", 404)

        result = await _submit(ingestion, edits)
        if isinstance(result, JSONResponse):
            return result

        svc.close_session(session_id)
        return JSONResponse({"status": "success", "receipt": receipt_payload(result)}, status_code=201)

    @app.post("/receipts/sessions/{session_id}/cancel")
    async def cancel_receipt(session_id: str, request: Request) -> JSONResponse:
        svc = _services(request)
        ingestion = svc.close_session(session_id)
        if ingestion is None:
            return _error("Unknown review session", 404)
        ingestion.cancel()
        return JSONResponse({"status": "cancelled"})

    @app.get("/groups/{group_id}/receipts")
    async def list_receipts(
        group_id: str,
        request: Request,
        authorization: str | None = Header(default=None),
        x_user_id: str | None = Header(default=None),
    ) -> JSONResponse:
        store = _services(request).receipt_store_for(auth_from_headers(authorization, x_user_id))
        try:
            receipts = await store.list_receipts(group_id)
        except PersistenceError as e:
            logger.error("Listing receipts for group %s failed: %s", group_id, e)
            return _error("Failed to load receipts", 502)
        return JSONResponse({"receipts": [receipt_payload(r) for r in receipts]})

    @app.get("/receipts/{receipt_id}")
    async def get_receipt(
        receipt_id: str,
        request: Request,
        authorization: str | None = Header(default=None),
        x_user_id: str | None = Header(default=None),
    ) -> JSONResponse:
        store = _services(request).receipt_store_for(auth_from_headers(authorization, x_user_id))
        try:
            receipt = await store.get_receipt(receipt_id)
        except PersistenceError as e:
            logger.error("Loading receipt %s failed: %s", receipt_id, e)
            return _error("Failed to load receipt", 502)
        if receipt is None:
            return _error("Receipt not found", 404)
        return JSONResponse(receipt_payload(receipt))

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    return app
