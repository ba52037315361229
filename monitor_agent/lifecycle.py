"""Issue Lifecycle Manager.

Creates issue records from analyzer findings and moves them from open to
resolved. Two transitions exist:

    open -> resolved(admin)   caller-initiated, always allowed, idempotent
    open -> resolved(policy)  engine-initiated auto-resolution

Auto-resolution only touches low-severity issues older than the minimum
age (24h by default), oldest first, and at most ``batch_size`` per call.
Auto-resolved issues get an audit marker appended to their description.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from .analyzers import Finding
from .data_port import DataAccessPort
from .errors import DataAccessError, IssueNotFound, ValidationError
from .models import AdminResolver, Issue, PolicyResolver, Severity

logger = logging.getLogger("monitor.lifecycle")

AUTO_RESOLVE_MARKER = " [Auto-resolved by policy]"

DEFAULT_BATCH_SIZE = 2
DEFAULT_MIN_AGE = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class CreationOutcome:
    created: list[Issue] = field(default_factory=list)
    skipped: int = 0


@dataclass
class AutoResolveOutcome:
    resolved: list[Issue] = field(default_factory=list)
    failed: int = 0


class IssueLifecycleManager:
    """Create and resolve issues through the data port.

    Usage:
        manager = IssueLifecycleManager(port)
        issue = manager.create_issue(finding)
        manager.resolve(issue.id, admin_id="admin-1")
    """

    def __init__(
        self,
        port: DataAccessPort,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        min_age: timedelta = DEFAULT_MIN_AGE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if batch_size < 0:
            raise ValueError("batch_size must be non-negative")
        self.port = port
        self.batch_size = batch_size
        self.min_age = min_age
        self.clock = clock

    # -----------------------------------------------------------------
    # Creation
    # -----------------------------------------------------------------

    def create_issue(self, finding: Finding, *, created_at: datetime | None = None) -> Issue:
        """Persist one finding as an open issue.

        Raises:
            ValidationError: If the finding does not form a valid issue.
            DataAccessError: If the store rejects the write.
        """
        try:
            payload = finding.to_issue_input()
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid {finding.kind.value} finding for product {finding.product_id!r}: "
                f"{exc.error_count()} validation error(s)"
            ) from exc
        return self.port.create_issue(payload, created_at=created_at or self.clock())

    def create_issues(
        self,
        findings: Iterable[Finding],
        *,
        created_at: datetime | None = None,
    ) -> CreationOutcome:
        """Persist findings one at a time, skipping (and counting) the ones that fail."""
        outcome = CreationOutcome()
        for finding in findings:
            try:
                outcome.created.append(self.create_issue(finding, created_at=created_at))
            except (ValidationError, DataAccessError) as exc:
                outcome.skipped += 1
                logger.warning(
                    "Skipped %s finding for product %r: %s",
                    finding.kind.value,
                    finding.product_id,
                    exc,
                )
        return outcome

    # -----------------------------------------------------------------
    # Manual resolution
    # -----------------------------------------------------------------

    def resolve(self, issue_id: str, admin_id: str, *, at: datetime | None = None) -> Issue:
        """Resolve an issue on behalf of an admin.

        Resolving an already-resolved issue is a no-op and returns it unchanged.

        Raises:
            IssueNotFound: If the issue does not exist.
        """
        issue = self.port.get_issue(issue_id)
        if issue is None:
            raise IssueNotFound(issue_id)
        if not issue.is_open:
            logger.debug("Issue %s already resolved; ignoring", issue_id)
            return issue

        self.port.resolve_issue(issue_id, AdminResolver(admin_id=admin_id), at or self.clock())
        logger.info("Issue %s resolved by admin %s", issue_id, admin_id)
        return self.port.get_issue(issue_id) or issue

    # -----------------------------------------------------------------
    # Auto-resolution
    # -----------------------------------------------------------------

    def is_auto_resolvable(self, issue: Issue, now: datetime) -> bool:
        return (
            issue.is_open
            and issue.severity == Severity.LOW
            and issue.age(now) > self.min_age
        )

    def auto_resolve_candidates(self, issues: Iterable[Issue], now: datetime) -> list[Issue]:
        """Eligible issues, oldest first."""
        eligible = [i for i in issues if self.is_auto_resolvable(i, now)]
        eligible.sort(key=lambda i: (i.created_at, i.id))
        return eligible

    def auto_resolve(self, issues: Iterable[Issue], now: datetime | None = None) -> AutoResolveOutcome:
        """Resolve up to ``batch_size`` eligible issues by policy.

        ``issues`` may be stale; candidates that were resolved in the meantime
        are skipped and do not use up the batch.
        """
        now = now or self.clock()
        outcome = AutoResolveOutcome()

        for issue in self.auto_resolve_candidates(issues, now):
            if len(outcome.resolved) + outcome.failed >= self.batch_size:
                break
            description = issue.description + AUTO_RESOLVE_MARKER
            try:
                changed = self.port.resolve_issue(
                    issue.id, PolicyResolver(), now, description=description
                )
            except DataAccessError as exc:
                outcome.failed += 1
                logger.warning("Auto-resolution of %s failed: %s", issue.id, exc)
                continue
            if not changed:
                logger.info("Auto-resolution of %s skipped: already resolved", issue.id)
                continue
            outcome.resolved.append(issue.resolve(now, PolicyResolver(), description))
            logger.info(
                "Auto-resolved %s (%s, age %.1fh)",
                issue.id,
                issue.kind.value,
                issue.age(now).total_seconds() / 3600,
            )

        return outcome
