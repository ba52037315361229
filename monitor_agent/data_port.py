"""Data access port.

The engine reads products, sale events and issues from the hosted store and
writes new or resolved issues back. Two backends:

    - InMemoryDataPort  - ephemeral, for dev/testing
    - SupabaseDataPort  - persistent, via the Supabase PostgREST API

Usage:
    port = create_data_port(supabase_url, supabase_service_key)
    # Picks SupabaseDataPort if credentials are present,
    # otherwise falls back to InMemoryDataPort.

Tables used by SupabaseDataPort (shared with the admin dashboard):

    products      id, sku, name, cost_price, selling_price, current_stock, is_active
    transactions  id, product_id, quantity, unit_price, total_amount,
                  customer_location, transaction_time
    error_logs    id, error_type, description, product_id, expected_value,
                  actual_value, discrepancy_amount, severity, confidence,
                  resolved, resolved_by, resolved_at, created_at

    -- confidence is written by the engine
    ALTER TABLE error_logs ADD COLUMN IF NOT EXISTS confidence INTEGER DEFAULT 80;
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

import httpx
from pydantic import ValidationError as PydanticValidationError

from .errors import DataAccessError, IssueNotFound
from .models import (
    AdminResolver,
    Issue,
    IssueInput,
    IssueKind,
    OpenStatus,
    PolicyResolver,
    Product,
    ResolvedStatus,
    SaleEvent,
    Severity,
)

logger = logging.getLogger("monitor.data_port")


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------


class DataAccessPort(ABC):
    """Read/write interface the engine needs from the data store."""

    @abstractmethod
    def get_active_products(self) -> list[Product]: ...

    @abstractmethod
    def get_all_products(self) -> list[Product]: ...

    @abstractmethod
    def get_recent_sale_events(self, window: int) -> list[SaleEvent]:
        """Return at most ``window`` sale events, newest first."""
        ...

    @abstractmethod
    def get_open_issues(self) -> list[Issue]: ...

    @abstractmethod
    def list_issues(self) -> list[Issue]:
        """All issues, open and resolved, newest first."""
        ...

    @abstractmethod
    def get_issue(self, issue_id: str) -> Issue | None: ...

    @abstractmethod
    def create_issue(self, payload: IssueInput, *, created_at: datetime | None = None) -> Issue: ...

    @abstractmethod
    def resolve_issue(
        self,
        issue_id: str,
        by: AdminResolver | PolicyResolver,
        at: datetime,
        *,
        description: str | None = None,
    ) -> bool:
        """Mark an open issue resolved. No-op if it is already resolved.

        Returns:
            True if this call moved the issue from open to resolved.

        Raises:
            IssueNotFound: If the issue does not exist.
        """
        ...


# ---------------------------------------------------------------------------
# In-memory implementation (dev/testing)
# ---------------------------------------------------------------------------


class InMemoryDataPort(DataAccessPort):
    """Ephemeral in-memory store. Thread-safe; analyzers read from worker threads."""

    def __init__(
        self,
        products: list[Product] | None = None,
        sale_events: list[SaleEvent] | None = None,
        issues: list[Issue] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._products: dict[str, Product] = {p.id: p for p in products or []}
        self._events: list[SaleEvent] = list(sale_events or [])
        self._issues: dict[str, Issue] = {i.id: i for i in issues or []}

    # ----- seeding -----

    def add_product(self, product: Product) -> None:
        with self._lock:
            self._products[product.id] = product

    def add_sale_event(self, event: SaleEvent) -> None:
        with self._lock:
            self._events.append(event)

    def add_issue(self, issue: Issue) -> None:
        with self._lock:
            self._issues[issue.id] = issue

    # ----- port -----

    def get_active_products(self) -> list[Product]:
        with self._lock:
            return [p for p in self._products.values() if p.is_active]

    def get_all_products(self) -> list[Product]:
        with self._lock:
            return list(self._products.values())

    def get_recent_sale_events(self, window: int) -> list[SaleEvent]:
        with self._lock:
            events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:window]

    def get_open_issues(self) -> list[Issue]:
        return [i for i in self.list_issues() if i.is_open]

    def list_issues(self) -> list[Issue]:
        with self._lock:
            return sorted(self._issues.values(), key=lambda i: i.created_at, reverse=True)

    def get_issue(self, issue_id: str) -> Issue | None:
        with self._lock:
            return self._issues.get(issue_id)

    def create_issue(self, payload: IssueInput, *, created_at: datetime | None = None) -> Issue:
        issue = Issue(
            id=f"issue-{uuid4().hex[:12]}",
            kind=payload.kind,
            severity=payload.severity,
            product_id=payload.product_id,
            expected_value=payload.expected_value,
            actual_value=payload.actual_value,
            discrepancy=payload.discrepancy,
            confidence=payload.confidence,
            description=payload.description,
            created_at=created_at or datetime.now(UTC),
        )
        with self._lock:
            self._issues[issue.id] = issue
        logger.debug("InMemoryDataPort: issue created: %s", issue.id)
        return issue

    def resolve_issue(
        self,
        issue_id: str,
        by: AdminResolver | PolicyResolver,
        at: datetime,
        *,
        description: str | None = None,
    ) -> bool:
        with self._lock:
            issue = self._issues.get(issue_id)
            if issue is None:
                raise IssueNotFound(issue_id)
            if not issue.is_open:
                return False
            self._issues[issue_id] = issue.resolve(at, by, description)
        logger.debug("InMemoryDataPort: issue resolved: %s", issue_id)
        return True


# ---------------------------------------------------------------------------
# Supabase implementation (production)
# ---------------------------------------------------------------------------


class SupabaseDataPort(DataAccessPort):
    """Persistent store using the Supabase PostgREST API.

    Uses the service role key for server-side access (bypasses RLS).
    All operations are synchronous (httpx); the engine calls them from
    worker threads.
    """

    PRODUCTS = "products"
    TRANSACTIONS = "transactions"
    ISSUES = "error_logs"

    def __init__(
        self,
        url: str,
        service_key: str,
        *,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        if client is None:
            client = httpx.Client(base_url=f"{url}/rest/v1", headers=headers, timeout=timeout)
        else:
            client.headers.update(headers)
        self._client = client
        logger.info("SupabaseDataPort: initialized with %s", url)

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
    ) -> list[dict[str, Any]]:
        try:
            resp = self._client.request(method, f"/{table}", params=params, json=json)
        except httpx.HTTPError as exc:
            logger.error("SupabaseDataPort: %s %s failed: %s", method, table, exc)
            raise DataAccessError(f"{method} {table} failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.error(
                "SupabaseDataPort: %s %s returned %s: %s",
                method,
                table,
                resp.status_code,
                resp.text,
            )
            raise DataAccessError(
                f"{method} {table} returned {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            rows = resp.json()
        except ValueError as exc:
            raise DataAccessError(f"{method} {table} returned invalid JSON") from exc
        if not isinstance(rows, list):
            raise DataAccessError(f"{method} {table} returned {type(rows).__name__}, expected list")
        return rows

    # ----- row mapping -----

    @staticmethod
    def _product(row: dict[str, Any]) -> Product:
        return Product(
            id=str(row["id"]),
            sku=row.get("sku") or "",
            name=row.get("name") or "",
            cost_price=row["cost_price"],
            selling_price=row["selling_price"],
            current_stock=row["current_stock"],
            is_active=row.get("is_active", True),
        )

    @staticmethod
    def _sale_event(row: dict[str, Any]) -> SaleEvent:
        return SaleEvent(
            id=str(row["id"]),
            product_id=str(row["product_id"]),
            quantity=row["quantity"],
            unit_price=row["unit_price"],
            total_amount=row["total_amount"],
            location=row.get("customer_location") or "",
            timestamp=row["transaction_time"],
        )

    @staticmethod
    def _issue(row: dict[str, Any]) -> Issue:
        if row.get("resolved"):
            if not row.get("resolved_at"):
                raise ValueError(f"error_logs row {row.get('id')} is resolved without resolved_at")
            by = (
                AdminResolver(admin_id=str(row["resolved_by"]))
                if row.get("resolved_by")
                else PolicyResolver()
            )
            status: OpenStatus | ResolvedStatus = ResolvedStatus(at=row["resolved_at"], by=by)
        else:
            if row.get("resolved_at"):
                raise ValueError(f"error_logs row {row.get('id')} is open but has resolved_at")
            status = OpenStatus()

        expected = Decimal(str(row.get("expected_value") or 0))
        actual = Decimal(str(row.get("actual_value") or 0))
        discrepancy = row.get("discrepancy_amount")
        return Issue(
            id=str(row["id"]),
            kind=IssueKind.from_store_code(row["error_type"]),
            severity=Severity(str(row["severity"]).lower()),
            product_id=str(row["product_id"]) if row.get("product_id") else None,
            expected_value=expected,
            actual_value=actual,
            discrepancy=(
                abs(Decimal(str(discrepancy))) if discrepancy is not None else abs(expected - actual)
            ),
            confidence=row.get("confidence") if row.get("confidence") is not None else 80,
            status=status,
            description=row.get("description") or "",
            created_at=row["created_at"],
        )

    def _map(self, rows: list[dict[str, Any]], mapper) -> list:
        try:
            return [mapper(row) for row in rows]
        except (KeyError, TypeError, ValueError, InvalidOperation, PydanticValidationError) as exc:
            raise DataAccessError(f"Malformed row from store: {exc}") from exc

    # ----- port -----

    def get_active_products(self) -> list[Product]:
        rows = self._request("GET", self.PRODUCTS, params={"select": "*", "is_active": "eq.true"})
        return self._map(rows, self._product)

    def get_all_products(self) -> list[Product]:
        rows = self._request("GET", self.PRODUCTS, params={"select": "*", "order": "name.asc"})
        return self._map(rows, self._product)

    def get_recent_sale_events(self, window: int) -> list[SaleEvent]:
        rows = self._request(
            "GET",
            self.TRANSACTIONS,
            params={
                "select": "*",
                "order": "transaction_time.desc",
                "limit": str(window),
            },
        )
        return self._map(rows, self._sale_event)

    def get_open_issues(self) -> list[Issue]:
        rows = self._request(
            "GET",
            self.ISSUES,
            params={"select": "*", "resolved": "eq.false", "order": "created_at.desc"},
        )
        return self._map(rows, self._issue)

    def list_issues(self) -> list[Issue]:
        rows = self._request("GET", self.ISSUES, params={"select": "*", "order": "created_at.desc"})
        return self._map(rows, self._issue)

    def get_issue(self, issue_id: str) -> Issue | None:
        rows = self._request(
            "GET", self.ISSUES, params={"select": "*", "id": f"eq.{issue_id}", "limit": "1"}
        )
        issues = self._map(rows, self._issue)
        return issues[0] if issues else None

    def create_issue(self, payload: IssueInput, *, created_at: datetime | None = None) -> Issue:
        body = {
            "error_type": payload.kind.store_code,
            "description": payload.description,
            "product_id": payload.product_id,
            "expected_value": str(payload.expected_value),
            "actual_value": str(payload.actual_value),
            "discrepancy_amount": str(payload.discrepancy),
            "severity": payload.severity.value,
            "confidence": payload.confidence,
            "resolved": False,
            "created_at": (created_at or datetime.now(UTC)).isoformat(),
        }
        rows = self._request("POST", self.ISSUES, json=body)
        if not rows:
            raise DataAccessError("Insert into error_logs returned no row")
        issue = self._map(rows, self._issue)[0]
        logger.info("SupabaseDataPort: issue created: %s (%s)", issue.id, issue.kind.value)
        return issue

    def resolve_issue(
        self,
        issue_id: str,
        by: AdminResolver | PolicyResolver,
        at: datetime,
        *,
        description: str | None = None,
    ) -> bool:
        body: dict[str, Any] = {
            "resolved": True,
            "resolved_at": at.isoformat(),
            "resolved_by": by.admin_id if isinstance(by, AdminResolver) else None,
        }
        if description is not None:
            body["description"] = description

        # Conditional on resolved=false so a second resolve leaves the row untouched
        rows = self._request(
            "PATCH",
            self.ISSUES,
            params={"id": f"eq.{issue_id}", "resolved": "eq.false"},
            json=body,
        )
        if rows:
            logger.info("SupabaseDataPort: issue resolved: %s", issue_id)
            return True
        if self.get_issue(issue_id) is None:
            raise IssueNotFound(issue_id)
        return False


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_data_port(
    supabase_url: str = "",
    supabase_service_key: str = "",
) -> DataAccessPort:
    """Create a data port.

    Returns SupabaseDataPort if credentials are provided, InMemoryDataPort otherwise.
    """
    if supabase_url and supabase_service_key:
        logger.info("Using Supabase-backed data port")
        return SupabaseDataPort(supabase_url, supabase_service_key)

    logger.info("Using in-memory data port (non-persistent)")
    return InMemoryDataPort()
