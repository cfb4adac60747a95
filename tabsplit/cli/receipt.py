"""Receipt command handlers used by the unified CLI."""

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

from tabsplit.runtime import get_logger, get_settings

logger = get_logger(__name__)


def cmd_serve(args: argparse.Namespace) -> None:
    """Start the FastAPI server for receipt ingestion."""
    import uvicorn

    from tabsplit.runtime.receipt_server import create_app

    print(f"Starting receipt server on {args.host}:{args.port}")
    print(f"Upload endpoint: http://{args.host}:{args.port}/groups/<group_id>/receipts/uploads")
    print("Press Ctrl+C to stop")

    uvicorn.run(create_app(), host=args.host, port=args.port)


def cmd_scan(args: argparse.Namespace) -> None:
    """Run extraction on a local receipt file and print the draft."""
    from tabsplit.application.receipts.scan import ReceiptScanRequest, run_receipt_scan
    from tabsplit.runtime.extraction import create_extraction_backend

    settings = get_settings()
    if args.mode:
        settings = replace(settings, extraction_mode=args.mode)
    if args.extraction_url:
        settings = replace(settings, extraction_url=args.extraction_url)

    result = asyncio.run(
        run_receipt_scan(
            ReceiptScanRequest(
                image_path=Path(args.image),
                extractor=create_extraction_backend(settings),
            )
        )
    )

    if result.status in ("file_not_found", "unsupported_type"):
        logger.error("%s", result.error)
        print(f"Error: {result.error}")
        sys.exit(1)

    if result.status == "extraction_failed":
        logger.error("%s", result.error)
        print(f"Extraction failed: {result.error}")
        print("Make sure the extraction service is running, or enter the receipt manually.")
        sys.exit(1)

    draft = result.draft
    if draft is None:
        print("Scan failed: missing draft output.")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("EXTRACTED RECEIPT")
    print("=" * 60)
    print(f"Description: {draft.description or '(none)'}")
    print(f"Date: {draft.date.isoformat()}")
    print(f"Total: ${draft.total_amount:.2f}")
    print(f"\nItems ({len(draft.items)}):")
    for i, item in enumerate(draft.items, 1):
        print(f"  {i}. {item.description} - ${item.amount:.2f}")
    print("=" * 60)


def cmd_list(args: argparse.Namespace) -> None:
    """List receipts saved in the local fallback store for a group."""
    from tabsplit.application.receipts.listing import run_list_group_receipts
    from tabsplit.domain.errors import PersistenceError
    from tabsplit.runtime.receipt_store import LocalReceiptStore

    try:
        listing = asyncio.run(run_list_group_receipts(LocalReceiptStore(), args.group_id))
    except PersistenceError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    if not listing.receipts:
        print(f"No receipts found for group {args.group_id}")
        return

    print(f"\nReceipts for group {args.group_id}:")
    for receipt in listing.receipts:
        print(f"  {receipt.date.isoformat()}  {receipt.description:<30}  ${receipt.total_amount:>9.2f}")
    print(f"\nTotal spent: ${listing.total_spent:.2f}")
