"""HTTP-level tests for the receipt ingestion server."""

from __future__ import annotations

import pytest
from conftest import FakeExtractor, FakeObjectStore, FakeReceiptStore
from fastapi.testclient import TestClient
from tabsplit.domain.receipt import AuthContext, ReceiptDraft
from tabsplit.runtime.receipt_server import ReceiptServices, auth_from_headers, create_app
from tabsplit.runtime.receipt_store import LocalReceiptStore
from tabsplit.runtime.settings import Settings

AUTH_HEADERS = {"Authorization": "Bearer user-token", "X-User-Id": "user-1"}


def _client(
    extractor: FakeExtractor,
    store: FakeReceiptStore | LocalReceiptStore | None = None,
    object_store: FakeObjectStore | None = None,
) -> tuple[TestClient, ReceiptServices]:
    receipt_store = store or FakeReceiptStore()
    services = ReceiptServices(
        settings=Settings(),
        extractor=extractor,
        receipt_store_for=lambda auth: receipt_store,
        object_store_for=lambda auth: object_store if auth else None,
    )
    return TestClient(create_app(services)), services


def _upload(client: TestClient, content_type: str = "image/png", headers: dict[str, str] | None = None):
    return client.post(
        "/groups/group-1/receipts/uploads",
        files={"file": ("lunch.png", b"png-bytes", content_type)},
        headers=headers or {},
    )


def test_health() -> None:
    client, _ = _client(FakeExtractor(fail=True))

    assert client.get("/health").json() == {"status": "ok"}


def test_rejects_unsupported_file_type() -> None:
    extractor = FakeExtractor(fail=True)
    client, services = _client(extractor)

    response = _upload(client, content_type="text/plain")

    assert response.status_code == 400
    assert response.json()["status"] == "error"
    assert extractor.calls == []
    assert services.sessions == {}


def test_upload_returns_prefilled_draft(coffee_draft: ReceiptDraft) -> None:
    client, services = _client(FakeExtractor(coffee_draft))

    response = _upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "reviewing"
    assert body["notice"] is None
    assert body["draft"]["description"] == "Blue Bottle"
    assert body["draft"]["date"] == "2024-03-14"
    assert body["draft"]["total_amount"] == 4.0
    assert body["session_id"] in services.sessions


def test_extraction_failure_is_not_fatal() -> None:
    client, _ = _client(FakeExtractor(fail=True))

    response = _upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["notice"]
    assert body["draft"]["items"] == []
    assert body["draft"]["total_amount"] == 0


def test_submit_saves_recomputed_total_and_round_trips(coffee_draft: ReceiptDraft) -> None:
    store = LocalReceiptStore()
    client, services = _client(FakeExtractor(coffee_draft), store=store)
    session_id = _upload(client).json()["session_id"]

    response = client.post(
        f"/receipts/sessions/{session_id}/submit",
        json={
            "description": "Team coffee",
            "date": "2024-03-14",
            "items": [{"description": "Coffee", "amount": "3.50"}, {"description": "Cookie", "amount": 2}],
        },
    )

    assert response.status_code == 201
    saved = response.json()["receipt"]
    assert saved["total_amount"] == 5.5
    assert session_id not in services.sessions

    fetched = client.get(f"/receipts/{saved['id']}").json()
    assert fetched["description"] == "Team coffee"
    assert fetched["date"] == "2024-03-14"
    assert fetched["total_amount"] == 5.5
    assert fetched["items"] == [{"description": "Coffee", "amount": 3.5}, {"description": "Cookie", "amount": 2.0}]

    listing = client.get("/groups/group-1/receipts").json()
    assert [r["id"] for r in listing["receipts"]] == [saved["id"]]


def test_submit_validation_error_keeps_session(coffee_draft: ReceiptDraft) -> None:
    client, services = _client(FakeExtractor(coffee_draft))
    session_id = _upload(client).json()["session_id"]

    response = client.post(
        f"/receipts/sessions/{session_id}/submit",
        json={"description": "", "date": "2024-03-14", "items": []},
    )

    assert response.status_code == 422
    assert session_id in services.sessions


def test_persistence_failure_allows_retry(coffee_draft: ReceiptDraft) -> None:
    store = FakeReceiptStore(failures=1)
    client, services = _client(FakeExtractor(coffee_draft), store=store)
    session_id = _upload(client).json()["session_id"]
    edits = {"description": "Lunch", "date": "2024-03-14", "items": [{"description": "Soup", "amount": 7}]}

    first = client.post(f"/receipts/sessions/{session_id}/submit", json=edits)
    second = client.post(f"/receipts/sessions/{session_id}/submit", json=edits)

    assert first.status_code == 502
    assert second.status_code == 201
    assert second.json()["receipt"]["total_amount"] == 7.0
    assert services.sessions == {}


def test_authenticated_upload_attaches_image_and_user(coffee_draft: ReceiptDraft) -> None:
    object_store = FakeObjectStore()
    store = FakeReceiptStore()
    client, _ = _client(FakeExtractor(coffee_draft), store=store, object_store=object_store)

    body = _upload(client, headers=AUTH_HEADERS).json()
    assert body["draft"]["image_url"].startswith("https://storage.example/receipts/")

    response = client.post(
        f"/receipts/sessions/{body['session_id']}/submit",
        json={"description": "Lunch", "date": "2024-03-14", "items": []},
    )

    receipt = response.json()["receipt"]
    assert receipt["uploaded_by"] == "user-1"
    assert receipt["image_url"] == body["draft"]["image_url"]
    assert receipt["total_amount"] == 0.0


def test_cancel_and_unknown_sessions(coffee_draft: ReceiptDraft) -> None:
    client, services = _client(FakeExtractor(coffee_draft))
    session_id = _upload(client).json()["session_id"]

    assert client.post(f"/receipts/sessions/{session_id}/cancel").json() == {"status": "cancelled"}
    assert services.sessions == {}
    assert client.post(f"/receipts/sessions/{session_id}/cancel").status_code == 404
    assert client.get("/receipts/does-not-exist").status_code == 404


@pytest.mark.parametrize(
    ("authorization", "user_id", "expected"),
    [
        ("Bearer abc", "u1", AuthContext("abc", "u1")),
        ("bearer abc", "u1", AuthContext("abc", "u1")),
        ("Basic abc", "u1", None),
        ("Bearer ", "u1", None),
        ("Bearer abc", None, None),
        (None, "u1", None),
    ],
)
def test_auth_from_headers(authorization: str | None, user_id: str | None, expected: AuthContext | None) -> None:
    assert auth_from_headers(authorization, user_id) == expected


def _services(extractor: FakeExtractor, **options: object) -> ReceiptServices:
    store = FakeReceiptStore()
    return ReceiptServices(
        settings=Settings(),
        extractor=extractor,
        receipt_store_for=lambda auth: store,
        object_store_for=lambda auth: None,
        **options,
    )


def test_oldest_session_is_evicted_at_capacity(coffee_draft: ReceiptDraft) -> None:
    services = _services(FakeExtractor(coffee_draft), max_sessions=2)
    client = TestClient(create_app(services))

    first, second, third = (_upload(client).json()["session_id"] for _ in range(3))

    assert list(services.sessions) == [second, third]
    edits = {"description": "Lunch", "date": "2024-03-14", "items": []}
    assert client.post(f"/receipts/sessions/{first}/submit", json=edits).status_code == 404
    assert client.post(f"/receipts/sessions/{third}/submit", json=edits).status_code == 201


def test_stale_sessions_expire(coffee_draft: ReceiptDraft) -> None:
    now = [1000.0]
    services = _services(FakeExtractor(coffee_draft), session_ttl=60, clock=lambda: now[0])
    client = TestClient(create_app(services))
    stale = _upload(client).json()["session_id"]

    now[0] += 61
    fresh = _upload(client).json()["session_id"]

    assert list(services.sessions) == [fresh]
    assert client.post(f"/receipts/sessions/{stale}/cancel").status_code == 404


def test_manual_session_opens_empty_draft() -> None:
    extractor = FakeExtractor(fail=True)
    client, services = _client(extractor)

    body = client.post("/groups/group-1/receipts/manual").json()

    assert body["state"] == "reviewing"
    assert body["notice"] is None
    assert body["draft"]["items"] == []
    assert body["draft"]["total_amount"] == 0.0
    assert extractor.calls == []

    response = client.post(
        f"/receipts/sessions/{body['session_id']}/submit",
        json={"description": "Taxi", "date": "2024-05-01", "items": [{"description": "Fare", "amount": "23.40"}]},
    )
    assert response.status_code == 201
    assert response.json()["receipt"]["total_amount"] == 23.4
    assert services.sessions == {}


def test_create_manual_receipt_in_one_request() -> None:
    store = FakeReceiptStore()
    client, services = _client(FakeExtractor(fail=True), store=store)

    response = client.post(
        "/groups/group-1/receipts",
        json={"description": "Groceries", "date": "2024-05-02", "items": [{"description": "Total", "amount": 41}]},
        headers=AUTH_HEADERS,
    )

    assert response.status_code == 201
    receipt = response.json()["receipt"]
    assert receipt["total_amount"] == 41.0
    assert receipt["uploaded_by"] == "user-1"
    assert receipt["image_url"] is None
    assert services.sessions == {}

    invalid = client.post("/groups/group-1/receipts", json={"description": "", "date": "2024-05-02", "items": []})
    assert invalid.status_code == 422
    assert len(store.saved) == 1
