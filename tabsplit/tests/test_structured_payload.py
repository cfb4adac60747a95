"""Tests for validating structured extraction responses."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from tabsplit.domain.errors import ExtractionFailure
from tabsplit.domain.receipt import LineItem
from tabsplit.receipt.structured import draft_from_payload

TODAY = date(2026, 10, 19)


def test_well_formed_payload_becomes_draft() -> None:
    draft = draft_from_payload(
        {
            "total_amount": 12.5,
            "date": "2024-03-14",
            "description": " Joe's Diner ",
            "items": [
                {"description": "Burger", "amount": 9.25},
                {"description": "Soda", "amount": "3.25"},
            ],
        },
        today=TODAY,
    )

    assert draft.description == "Joe's Diner"
    assert draft.total_amount == Decimal("12.5")
    assert draft.date == date(2024, 3, 14)
    assert draft.items == [
        LineItem("Burger", Decimal("9.25")),
        LineItem("Soda", Decimal("3.25")),
    ]
    assert draft.image_ref is None


def test_missing_optional_fields_use_defaults() -> None:
    draft = draft_from_payload({"total_amount": 0, "date": None}, today=TODAY)

    assert draft.description == ""
    assert draft.date == TODAY
    assert draft.items == []


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "an", "object"],
        {"date": "2024-03-14"},
        {"total_amount": "lots"},
        {"total_amount": True},
        {"total_amount": -1},
        {"total_amount": 5, "date": "14/03/2024"},
        {"total_amount": 5, "date": 20240314},
        {"total_amount": 5, "date": "20240314"},
        {"total_amount": 5, "date": "2024-W11-4"},
        {"total_amount": 5, "items": {"description": "x"}},
        {"total_amount": 5, "items": [{"description": "x", "amount": None}]},
        {"total_amount": 5, "items": ["Coffee 3.50"]},
        {"total_amount": 5, "description": 42},
    ],
)
def test_shape_mismatch_raises_extraction_failure(payload: object) -> None:
    with pytest.raises(ExtractionFailure):
        draft_from_payload(payload, today=TODAY)
