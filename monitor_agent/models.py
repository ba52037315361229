"""Pydantic models for the monitoring engine.

Products and sale events are read-only snapshots of the data store.
Issues carry a tagged status (``open`` or ``resolved`` with a timestamp and
a resolver) so a resolved issue without a resolution time cannot be built.
Timestamps must carry a timezone; naive datetimes are rejected.

Money and measured values use ``Decimal``; floats never touch currency.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator


class IssueKind(str, Enum):
    """Kinds of anomaly the analyzers can report."""

    INVENTORY_DISCREPANCY = "InventoryDiscrepancy"
    PRICE_ANOMALY = "PriceAnomaly"
    SALES_PATTERN = "SalesPattern"

    @property
    def display_name(self) -> str:
        return {
            IssueKind.INVENTORY_DISCREPANCY: "Inventory Discrepancy",
            IssueKind.PRICE_ANOMALY: "Price Anomaly",
            IssueKind.SALES_PATTERN: "Sales Pattern",
        }[self]

    @property
    def remediation_hint(self) -> str:
        """Short next step shown alongside insights."""
        return {
            IssueKind.INVENTORY_DISCREPANCY: "Schedule cycle counts for the affected products",
            IssueKind.PRICE_ANOMALY: "Audit price overrides and catalog updates at checkout",
            IssueKind.SALES_PATTERN: "Check promotions, stock availability and data feeds",
        }[self]

    @property
    def store_code(self) -> str:
        """Value of the ``error_type`` column in the hosted store."""
        return {
            IssueKind.INVENTORY_DISCREPANCY: "stock_mismatch",
            IssueKind.PRICE_ANOMALY: "price_anomaly",
            IssueKind.SALES_PATTERN: "sales_pattern",
        }[self]

    @classmethod
    def from_store_code(cls, code: str) -> IssueKind:
        for kind in cls:
            if kind.store_code == code or kind.value == code:
                return kind
        raise ValueError(f"Unknown issue type: {code!r}")


class Severity(str, Enum):
    """Four-tier ordinal severity. Compare with ``rank``, not ``<``."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {
            Severity.LOW: 0,
            Severity.MEDIUM: 1,
            Severity.HIGH: 2,
            Severity.CRITICAL: 3,
        }[self]


class ScanTrigger(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"


# ---------------------------------------------------------------------------
# Store records (read-only to the engine)
# ---------------------------------------------------------------------------


class Product(BaseModel):
    """Catalog entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    sku: str
    name: str
    cost_price: Decimal
    selling_price: Decimal
    current_stock: int = Field(ge=0)
    is_active: bool = True

    @property
    def margin_pct(self) -> Decimal:
        """Gross margin as a fraction of selling price (0 when unpriced)."""
        if self.selling_price <= 0 or self.cost_price <= 0:
            return Decimal("0")
        return (self.selling_price - self.cost_price) / self.selling_price


class SaleEvent(BaseModel):
    """A single recorded transaction line."""

    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    quantity: int = Field(gt=0)
    unit_price: Decimal
    total_amount: Decimal
    location: str = ""
    timestamp: AwareDatetime


# ---------------------------------------------------------------------------
# Issue status (tagged variant)
# ---------------------------------------------------------------------------


class AdminResolver(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["admin"] = "admin"
    admin_id: str = Field(min_length=1)


class PolicyResolver(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["policy"] = "policy"


ResolvedBy = Annotated[Union[AdminResolver, PolicyResolver], Field(discriminator="kind")]


class OpenStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: Literal["open"] = "open"


class ResolvedStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: Literal["resolved"] = "resolved"
    at: AwareDatetime
    by: ResolvedBy


IssueStatus = Annotated[Union[OpenStatus, ResolvedStatus], Field(discriminator="state")]


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


class IssueInput(BaseModel):
    """Payload for creating an issue. Built from an analyzer finding."""

    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    severity: Severity
    product_id: str = Field(min_length=1)
    expected_value: Decimal
    actual_value: Decimal
    confidence: int = Field(ge=0, le=100)
    description: str = Field(min_length=1)

    @property
    def discrepancy(self) -> Decimal:
        return abs(self.expected_value - self.actual_value)


class Issue(BaseModel):
    """A recorded anomaly. Never deleted, only moved from open to resolved."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: IssueKind
    severity: Severity
    product_id: str | None = None
    expected_value: Decimal
    actual_value: Decimal
    discrepancy: Decimal
    confidence: int = Field(ge=0, le=100)
    status: IssueStatus = Field(default_factory=OpenStatus)
    description: str
    created_at: AwareDatetime

    @field_validator("discrepancy")
    @classmethod
    def _non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("discrepancy must be non-negative")
        return v

    @property
    def is_open(self) -> bool:
        return isinstance(self.status, OpenStatus)

    @property
    def resolved_at(self) -> datetime | None:
        return self.status.at if isinstance(self.status, ResolvedStatus) else None

    @property
    def resolved_by(self) -> AdminResolver | PolicyResolver | None:
        return self.status.by if isinstance(self.status, ResolvedStatus) else None

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    def resolve(
        self,
        at: datetime,
        by: AdminResolver | PolicyResolver,
        description: str | None = None,
    ) -> Issue:
        """Return the resolved copy of this issue. Already-resolved issues are returned as-is."""
        if not self.is_open:
            return self
        update: dict = {"status": ResolvedStatus(at=at, by=by)}
        if description is not None:
            update["description"] = description
        return self.model_copy(update=update)


class ScanCycleResult(BaseModel):
    """Outcome of one completed scan cycle. Reporting only."""

    model_config = ConfigDict(frozen=True)

    new_issues: int = Field(ge=0)
    auto_resolved: int = Field(ge=0)
    accuracy: float = Field(ge=0, le=100)
    skipped_findings: int = Field(default=0, ge=0)
    failed_resolutions: int = Field(default=0, ge=0)
    trigger: ScanTrigger = ScanTrigger.MANUAL
    started_at: AwareDatetime
    finished_at: AwareDatetime

    @property
    def elapsed_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)
