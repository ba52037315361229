"""Tests for the data access port.

InMemoryDataPort is exercised directly; SupabaseDataPort runs against an
httpx.MockTransport that mimics the PostgREST endpoints.
"""

import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import httpx
import pytest
from monitor_agent.data_port import (
    InMemoryDataPort,
    SupabaseDataPort,
    create_data_port,
)
from monitor_agent.errors import DataAccessError, IssueNotFound
from monitor_agent.models import (
    AdminResolver,
    IssueInput,
    IssueKind,
    PolicyResolver,
    Product,
    SaleEvent,
    Severity,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
BASE_URL = "https://x.supabase.co/rest/v1"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_input(**overrides) -> IssueInput:
    fields = dict(
        kind=IssueKind.PRICE_ANOMALY,
        severity=Severity.MEDIUM,
        product_id="p-1",
        expected_value=Decimal("20.00"),
        actual_value=Decimal("25.00"),
        confidence=85,
        description="Detected price anomaly",
    )
    fields.update(overrides)
    return IssueInput(**fields)


def _make_event(n: int, hours_ago: float) -> SaleEvent:
    return SaleEvent(
        id=f"tx-{n}",
        product_id="p-1",
        quantity=1,
        unit_price=Decimal("20"),
        total_amount=Decimal("20"),
        timestamp=NOW - timedelta(hours=hours_ago),
    )


def _issue_row(**overrides) -> dict:
    row = {
        "id": "e-1",
        "error_type": "stock_mismatch",
        "description": "Detected inventory discrepancy",
        "product_id": "p-1",
        "expected_value": 130,
        "actual_value": 200,
        "discrepancy_amount": 70,
        "severity": "low",
        "confidence": 95,
        "resolved": False,
        "resolved_by": None,
        "resolved_at": None,
        "created_at": "2026-03-01T08:00:00+00:00",
    }
    row.update(overrides)
    return row


def _supabase_port(handler) -> SupabaseDataPort:
    client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return SupabaseDataPort("https://x.supabase.co", "service-key", client=client)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class TestInMemoryDataPort:
    def test_create_and_get(self):
        port = InMemoryDataPort()
        issue = port.create_issue(_make_input(), created_at=NOW)
        assert issue.id.startswith("issue-")
        assert issue.is_open
        assert issue.discrepancy == Decimal("5.00")
        assert port.get_issue(issue.id) == issue

    def test_get_missing_issue(self):
        assert InMemoryDataPort().get_issue("nope") is None

    def test_active_products_filter(self):
        products = [
            Product(id="a", sku="A", name="A", cost_price=1, selling_price=2, current_stock=1),
            Product(
                id="b", sku="B", name="B", cost_price=1, selling_price=2,
                current_stock=1, is_active=False,
            ),
        ]
        port = InMemoryDataPort(products=products)
        assert [p.id for p in port.get_active_products()] == ["a"]
        assert len(port.get_all_products()) == 2

    def test_recent_sale_events_newest_first_and_windowed(self):
        port = InMemoryDataPort(sale_events=[_make_event(i, hours_ago=i) for i in range(5)])
        events = port.get_recent_sale_events(3)
        assert [e.id for e in events] == ["tx-0", "tx-1", "tx-2"]

    def test_resolve_open_issue(self):
        port = InMemoryDataPort()
        issue = port.create_issue(_make_input(), created_at=NOW)
        assert port.resolve_issue(issue.id, AdminResolver(admin_id="admin-1"), NOW) is True
        stored = port.get_issue(issue.id)
        assert not stored.is_open
        assert stored.resolved_by == AdminResolver(admin_id="admin-1")
        assert port.get_open_issues() == []

    def test_resolve_twice_keeps_first_resolution(self):
        port = InMemoryDataPort()
        issue = port.create_issue(_make_input(), created_at=NOW)
        port.resolve_issue(issue.id, AdminResolver(admin_id="admin-1"), NOW)
        changed = port.resolve_issue(
            issue.id, PolicyResolver(), NOW + timedelta(hours=1), description="x"
        )
        assert changed is False
        stored = port.get_issue(issue.id)
        assert stored.resolved_at == NOW
        assert stored.description == "Detected price anomaly"

    def test_resolve_unknown_raises(self):
        with pytest.raises(IssueNotFound):
            InMemoryDataPort().resolve_issue("nope", PolicyResolver(), NOW)

    def test_list_issues_newest_first(self):
        port = InMemoryDataPort()
        old = port.create_issue(_make_input(), created_at=NOW - timedelta(days=1))
        new = port.create_issue(_make_input(), created_at=NOW)
        assert [i.id for i in port.list_issues()] == [new.id, old.id]


# ---------------------------------------------------------------------------
# Supabase (PostgREST)
# ---------------------------------------------------------------------------


class TestSupabaseDataPort:
    def test_sends_service_key_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["apikey"] = request.headers["apikey"]
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json=[])

        _supabase_port(handler).get_active_products()
        assert seen == {"apikey": "service-key", "auth": "Bearer service-key"}

    def test_get_active_products(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/rest/v1/products"
            assert request.url.params["is_active"] == "eq.true"
            return httpx.Response(
                200,
                json=[
                    {
                        "id": 7,
                        "sku": "HAM-16",
                        "name": "Claw Hammer",
                        "cost_price": "8.50",
                        "selling_price": "19.99",
                        "current_stock": 42,
                        "is_active": True,
                    }
                ],
            )

        products = _supabase_port(handler).get_active_products()
        assert len(products) == 1
        assert products[0].id == "7"
        assert products[0].selling_price == Decimal("19.99")

    def test_recent_sale_events_query(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/rest/v1/transactions"
            assert request.url.params["order"] == "transaction_time.desc"
            assert request.url.params["limit"] == "200"
            return httpx.Response(
                200,
                json=[
                    {
                        "id": "t-1",
                        "product_id": "7",
                        "quantity": 2,
                        "unit_price": 19.99,
                        "total_amount": 39.98,
                        "customer_location": "Springfield",
                        "transaction_time": "2026-03-02T10:00:00+00:00",
                    }
                ],
            )

        events = _supabase_port(handler).get_recent_sale_events(200)
        assert events[0].location == "Springfield"
        assert events[0].timestamp == datetime(2026, 3, 2, 10, 0, tzinfo=UTC)

    def test_issue_row_mapping(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json=[
                    _issue_row(),
                    _issue_row(
                        id="e-2",
                        error_type="price_anomaly",
                        severity="MEDIUM",
                        resolved=True,
                        resolved_by="admin-3",
                        resolved_at="2026-03-02T09:00:00+00:00",
                    ),
                    _issue_row(
                        id="e-3",
                        resolved=True,
                        resolved_at="2026-03-02T09:00:00+00:00",
                        confidence=None,
                    ),
                ],
            )

        issues = _supabase_port(handler).list_issues()
        assert issues[0].kind == IssueKind.INVENTORY_DISCREPANCY
        assert issues[0].is_open
        assert issues[1].severity == Severity.MEDIUM
        assert issues[1].resolved_by == AdminResolver(admin_id="admin-3")
        assert issues[2].resolved_by == PolicyResolver()
        assert issues[2].confidence == 80

    def test_resolved_row_without_timestamp_is_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[_issue_row(resolved=True)])

        with pytest.raises(DataAccessError, match="Malformed"):
            _supabase_port(handler).list_issues()

    def test_naive_timestamps_are_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[_issue_row(created_at="2026-03-01T08:00:00")])

        with pytest.raises(DataAccessError, match="Malformed"):
            _supabase_port(handler).get_open_issues()

    def test_http_error_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        with pytest.raises(DataAccessError) as exc_info:
            _supabase_port(handler).get_open_issues()
        assert exc_info.value.status_code == 503

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DataAccessError):
            _supabase_port(handler).get_all_products()

    def test_non_list_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"message": "unexpected"})

        with pytest.raises(DataAccessError, match="expected list"):
            _supabase_port(handler).get_all_products()

    def test_create_issue(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            body = json.loads(request.content)
            captured.update(body)
            return httpx.Response(201, json=[{**_issue_row(), **body, "id": "e-9"}])

        issue = _supabase_port(handler).create_issue(_make_input(), created_at=NOW)
        assert captured["error_type"] == "price_anomaly"
        assert captured["expected_value"] == "20.00"
        assert captured["actual_value"] == "25.00"
        assert captured["discrepancy_amount"] == "5.00"
        assert captured["resolved"] is False
        assert captured["created_at"] == NOW.isoformat()
        assert issue.id == "e-9"
        assert issue.kind == IssueKind.PRICE_ANOMALY

    def test_resolve_is_conditional_on_open(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PATCH"
            captured["params"] = dict(request.url.params)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=[_issue_row(resolved=True, resolved_at=NOW.isoformat())])

        changed = _supabase_port(handler).resolve_issue(
            "e-1", PolicyResolver(), NOW, description="done [Auto-resolved by policy]"
        )
        assert changed is True
        assert captured["params"] == {"id": "eq.e-1", "resolved": "eq.false"}
        assert captured["body"]["resolved_by"] is None
        assert captured["body"]["description"].endswith("[Auto-resolved by policy]")

    def test_resolve_already_resolved_is_noop(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "PATCH":
                return httpx.Response(200, json=[])
            return httpx.Response(
                200, json=[_issue_row(resolved=True, resolved_at=NOW.isoformat())]
            )

        changed = _supabase_port(handler).resolve_issue("e-1", AdminResolver(admin_id="a"), NOW)
        assert changed is False

    def test_resolve_unknown_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[])

        with pytest.raises(IssueNotFound):
            _supabase_port(handler).resolve_issue("missing", AdminResolver(admin_id="a"), NOW)


class TestCreateDataPort:
    def test_in_memory_without_credentials(self):
        assert isinstance(create_data_port("", ""), InMemoryDataPort)
        assert isinstance(create_data_port("https://x.supabase.co", ""), InMemoryDataPort)

    def test_supabase_with_credentials(self):
        port = create_data_port("https://x.supabase.co", "key")
        try:
            assert isinstance(port, SupabaseDataPort)
        finally:
            port.close()
