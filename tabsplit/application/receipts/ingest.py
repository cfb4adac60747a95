"""Receipt ingestion orchestration: upload -> extract -> review -> save."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import date
from typing import TYPE_CHECKING, Literal

from tabsplit.application.receipts.review import ReviewForm
from tabsplit.domain.errors import (
    ExtractionFailure,
    IngestionStateError,
    PersistenceError,
    StorageFailure,
    ValidationError,
)
from tabsplit.domain.receipt import AuthContext, ReceiptUpload, StoredReceipt, empty_draft
from tabsplit.receipt.image_helpers import generate_object_name, is_accepted_content_type, shrink_image_bytes
from tabsplit.runtime.logging import get_logger

if TYPE_CHECKING:
    from tabsplit.runtime.extraction import ExtractionBackend
    from tabsplit.runtime.object_storage import ObjectStore
    from tabsplit.runtime.receipt_store import ReceiptStore

logger = get_logger(__name__)

IngestState = Literal["idle", "file_selected", "extracting", "reviewing", "saved", "cancelled"]

MANUAL_ENTRY_NOTICE = "We couldn't read this receipt automatically. Please enter the details manually."
UPLOAD_FAILED_NOTICE = "The receipt image could not be stored; the receipt will be saved without it."
INVALID_FILE_MESSAGE = "Please upload an image (JPEG, PNG) or PDF file"


class ReceiptIngestion:
    """
    Drives one upload-to-save cycle for a group.

    The original is uploaded only when an auth context is given; anonymous
    cycles skip straight to extraction and save without an image reference.
    Extraction and upload failures never block manual entry, and
    ``start_manual`` opens the review form without a file at all.
    """

    def __init__(
        self,
        extractor: ExtractionBackend,
        receipt_store: ReceiptStore,
        group_id: str,
        object_store: ObjectStore | None = None,
        auth: AuthContext | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.extractor = extractor
        self.receipt_store = receipt_store
        self.object_store = object_store
        self.group_id = group_id
        self.auth = auth
        self._today = today

        self.state: IngestState = "idle"
        self.upload: ReceiptUpload | None = None
        self.image_ref: str | None = None
        self.form: ReviewForm | None = None
        self.notice: str | None = None

    def _reset(self) -> None:
        self.upload = None
        self.image_ref = None
        self.form = None
        self.notice = None

    def select_file(self, upload: ReceiptUpload) -> None:
        """Accept an image or PDF; anything else is rejected with ValidationError."""
        if self.state in ("extracting", "reviewing"):
            raise IngestionStateError(f"Cannot select a file while {self.state}")

        self._reset()
        self.state = "file_selected"
        if not is_accepted_content_type(upload.content_type):
            logger.warning("Rejected upload %r with type %r", upload.filename, upload.content_type)
            raise ValidationError(INVALID_FILE_MESSAGE)

        self.upload = upload
        logger.debug("Selected %s (%s, %d bytes)", upload.filename, upload.content_type, len(upload.data))

    async def _upload_original(self, upload: ReceiptUpload) -> str | None:
        if self.auth is None or self.object_store is None:
            logger.debug("No authenticated session; skipping image upload")
            return None

        name = generate_object_name(upload.filename, upload.content_type)
        try:
            return await self.object_store.put(name, upload.data, upload.content_type)
        except StorageFailure as e:
            logger.warning("Image upload failed, continuing without image: %s", e)
            self.notice = UPLOAD_FAILED_NOTICE
            return None

    async def process(self) -> ReviewForm:
        """Upload (if authenticated), extract, and open the review form."""
        if self.state == "extracting":
            raise IngestionStateError("Extraction already in progress")
        if self.state != "file_selected" or self.upload is None:
            raise IngestionStateError("No accepted file to process")

        upload = self.upload
        self.state = "extracting"
        start_time = time.time()

        # Upload is awaited first so the reference is known before review.
        self.image_ref = await self._upload_original(upload)

        try:
            image_bytes = shrink_image_bytes(upload.data, upload.content_type)
            draft = await self.extractor.extract(image_bytes)
        except ExtractionFailure as e:
            logger.warning("Extraction failed, falling back to manual entry: %s", e)
            draft = empty_draft(self._today())
            self.notice = MANUAL_ENTRY_NOTICE
        except Exception:
            self.state = "file_selected"
            raise
        else:
            logger.info(
                "Extracted receipt with %d items in %.2f seconds", len(draft.items), time.time() - start_time
            )

        draft.image_ref = self.image_ref
        self.form = ReviewForm(draft)
        # The review form only needs the stored reference, not the file bytes
        self.upload = None
        self.state = "reviewing"
        return self.form

    def start_manual(self) -> ReviewForm:
        """Open an empty review form without uploading or extracting anything."""
        if self.state in ("extracting", "reviewing"):
            raise IngestionStateError(f"Cannot start manual entry while {self.state}")

        self._reset()
        self.form = ReviewForm(empty_draft(self._today()))
        self.state = "reviewing"
        logger.debug("Started manual entry for group %s", self.group_id)
        return self.form

    async def submit(self) -> StoredReceipt:
        """
        Persist the reviewed receipt.

        If the save fails for any reason the form is reopened with the user's
        edits intact so the save can be retried; the error is re-raised.
        """
        if self.state != "reviewing" or self.form is None:
            raise IngestionStateError(f"Cannot submit while {self.state}")

        form = self.form
        finalized = form.submit()
        user_id = self.auth.user_id if self.auth else None
        try:
            stored = await self.receipt_store.save_receipt(self.group_id, finalized, user_id=user_id)
        except BaseException as e:
            form.reopen()
            if isinstance(e, PersistenceError):
                logger.error("Saving receipt for group %s failed; edits kept for retry", self.group_id)
            else:
                logger.exception("Unexpected error saving receipt for group %s; edits kept", self.group_id)
            raise

        logger.info("Saved receipt %s (total %s)", stored.id, stored.total_amount)
        self._reset()
        self.state = "saved"
        return stored

    def cancel(self) -> None:
        """Discard the file, draft and image reference. Uploaded blobs are kept."""
        if self.state in ("saved", "cancelled"):
            raise IngestionStateError(f"Cannot cancel a {self.state} cycle")
        if self.state == "extracting":
            raise IngestionStateError("Cannot cancel while extraction is in progress")

        if self.form is not None:
            self.form.cancel()
        if self.image_ref:
            logger.info("Cancelled cycle leaves orphaned object %s", self.image_ref)
        self._reset()
        self.state = "cancelled"
