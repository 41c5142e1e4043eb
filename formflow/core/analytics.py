"""Read-side aggregation over submissions.

The functions here are pure: they take ``SubmissionState`` values and
return plain data. ``AnalyticsService`` loads the states with tenant
scoping and feeds them through.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from formflow.core.approval.flow import ApprovalFlow
from formflow.core.approval.machine import SubmissionState
from formflow.core.approval.states import HistoryStatus, IN_PROGRESS_STATES, SubmissionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelStat:
    level: int
    approved_count: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return {"level": self.level, "approved": self.approved_count, "total": self.total}


@dataclass(frozen=True)
class LevelStats:
    """Per-template approval progress."""
    total: int
    approved: int
    pending: int
    rejected: int
    level_stats: List[LevelStat] = field(default_factory=list)
    completion_rate: int = 0
    avg_approval_duration: Optional[timedelta] = None

    @property
    def avg_approval_time(self) -> str:
        return format_duration(self.avg_approval_duration)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "approved": self.approved,
            "pending": self.pending,
            "rejected": self.rejected,
            "level_stats": [s.to_dict() for s in self.level_stats],
            "completion_rate": self.completion_rate,
            "avg_approval_time": self.avg_approval_time,
            "avg_approval_seconds": (
                self.avg_approval_duration.total_seconds()
                if self.avg_approval_duration is not None else None
            ),
        }


def format_duration(duration: Optional[timedelta]) -> str:
    """
    Render a duration as whole hours, or days and hours past a day.

    >>> format_duration(timedelta(hours=5, minutes=40))
    '5h'
    >>> format_duration(timedelta(days=2, hours=3))
    '2d 3h'
    """
    if not duration:
        return "N/A"
    hours = int(duration.total_seconds() // 3600)
    if hours < 24:
        return f"{hours}h"
    days, remaining = divmod(hours, 24)
    return f"{days}d {remaining}h" if remaining else f"{days}d"


def _approved_at_level(submission: SubmissionState, level: int) -> bool:
    return any(
        entry.level == level and entry.status == HistoryStatus.APPROVED
        for entry in submission.approval_history
    )


def compute_level_stats(submissions: Iterable[SubmissionState], flow: ApprovalFlow) -> LevelStats:
    """
    Aggregate approval progress for one template.

    A submission counts towards a level when its history holds an APPROVED
    entry at that level, whatever happened to it afterwards.
    """
    submissions = list(submissions)
    total = len(submissions)
    by_status = Counter(s.status for s in submissions)
    approved = by_status[SubmissionStatus.APPROVED]

    level_stats = [
        LevelStat(
            level=entry.level,
            approved_count=sum(1 for s in submissions if _approved_at_level(s, entry.level)),
            total=total,
        )
        for entry in flow
    ]

    durations = [
        s.approved_at - s.submitted_at
        for s in submissions
        if s.status == SubmissionStatus.APPROVED and s.approved_at and s.submitted_at
    ]
    average = sum(durations, timedelta()) / len(durations) if durations else None

    return LevelStats(
        total=total,
        approved=approved,
        pending=by_status[SubmissionStatus.PENDING_APPROVAL],
        rejected=by_status[SubmissionStatus.REJECTED],
        level_stats=level_stats,
        completion_rate=round(approved / total * 100) if total else 0,
        avg_approval_duration=average,
    )


def approvals_by_approver(
    submissions: Iterable[SubmissionState],
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Count APPROVED history entries per approver, busiest first."""
    counts: Counter = Counter()
    for submission in submissions:
        for entry in submission.approval_history:
            if entry.status != HistoryStatus.APPROVED:
                continue
            if since and entry.actioned_at < since:
                continue
            if until and entry.actioned_at > until:
                continue
            counts[str(entry.approver_id)] += 1
    return [
        {"approver_id": approver_id, "count": count}
        for approver_id, count in counts.most_common()
    ]


def submissions_per_day(submissions: Iterable[SubmissionState]) -> List[Dict[str, Any]]:
    """Submission counts grouped by calendar day of ``submitted_at``."""
    days = Counter(
        s.submitted_at.strftime("%Y-%m-%d") for s in submissions if s.submitted_at
    )
    return [{"date": day, "count": days[day]} for day in sorted(days)]


def decision_rates(submissions: Iterable[SubmissionState]) -> Dict[str, Any]:
    """Approval and rejection rates over decided submissions, in percent."""
    decided = [s for s in submissions if s.status in (SubmissionStatus.APPROVED, SubmissionStatus.REJECTED)]
    approved = sum(1 for s in decided if s.status == SubmissionStatus.APPROVED)
    rejected = len(decided) - approved
    total = len(decided)
    return {
        "total": total,
        "approved": approved,
        "rejected": rejected,
        "approval_rate": round(approved / total * 100, 2) if total else 0,
        "rejection_rate": round(rejected / total * 100, 2) if total else 0,
    }


def status_breakdown(submissions: Iterable[SubmissionState]) -> Dict[str, int]:
    """Count of submissions in every status, zeros included."""
    counts = Counter(s.status for s in submissions)
    return {status.value: counts[status] for status in SubmissionStatus}


def average_decision_days(submissions: Iterable[SubmissionState]) -> Dict[str, Any]:
    """Mean, min and max days from submission to the final decision."""
    days = []
    for s in submissions:
        decided_at = s.approved_at or s.rejected_at
        if decided_at and s.submitted_at:
            days.append((decided_at - s.submitted_at).total_seconds() / 86400)
    if not days:
        return {"average_days": 0, "min_days": 0, "max_days": 0, "total_processed": 0}
    return {
        "average_days": round(sum(days) / len(days), 2),
        "min_days": round(min(days), 2),
        "max_days": round(max(days), 2),
        "total_processed": len(days),
    }


def plant_summary(submissions: Iterable[SubmissionState]) -> Dict[str, Any]:
    """Status counts and mean decision time, in days, for one plant."""
    submissions = list(submissions)
    by_status = Counter(s.status for s in submissions)
    return {
        "total": len(submissions),
        "pending": sum(by_status[status] for status in IN_PROGRESS_STATES),
        "approved": by_status[SubmissionStatus.APPROVED],
        "rejected": by_status[SubmissionStatus.REJECTED],
        "avg_approval_days": average_decision_days(submissions)["average_days"],
    }


class AnalyticsService:
    """
    Dashboard aggregates for the submissions a user may see.
    """

    def __init__(self, db: Session):
        self.db = db

    def _load(self, user, *, days: Optional[int] = None, plant_id: Optional[UUID] = None) -> List[SubmissionState]:
        from formflow.core.approval.service import state_from_row
        from formflow.core.rbac import scope_to_tenant
        from formflow.db.models import FormSubmission

        query = scope_to_tenant(
            self.db.query(FormSubmission), FormSubmission, user, owner_column="submitted_by",
        )
        if plant_id:
            query = query.filter(FormSubmission.plant_id == plant_id)
        if days:
            query = query.filter(FormSubmission.submitted_at >= datetime.utcnow() - timedelta(days=days))
        return [state_from_row(row) for row in query.all()]

    def dashboard(self, user, *, days: int = 30, plant_id: Optional[UUID] = None) -> Dict[str, Any]:
        """All dashboard widgets in one payload."""
        states = self._load(user, days=days, plant_id=plant_id)
        since = datetime.utcnow() - timedelta(days=days)
        logger.debug("Dashboard over %d submissions for user %s", len(states), user.id)
        return {
            "period_days": days,
            "total": len(states),
            "status_breakdown": status_breakdown(states),
            "decision_rates": decision_rates(states),
            "average_decision_time": average_decision_days(states),
            "submissions_per_day": submissions_per_day(states),
            "approvals_by_approver": approvals_by_approver(states, since=since),
            "plant_stats": self.plant_stats(user, days=days, plant_id=plant_id),
        }

    def plant_stats(
        self,
        user,
        *,
        days: Optional[int] = None,
        company_id: Optional[UUID] = None,
        plant_id: Optional[UUID] = None,
    ) -> List[Dict[str, Any]]:
        """
        Per-plant summary over the active plants the user may see.

        Super admins may narrow to one company; company admins get their
        company's plants and everyone else their own plant.
        """
        from formflow.core.approval.service import state_from_row
        from formflow.core.rbac import Role
        from formflow.db.models import FormSubmission, Plant

        plants = self.db.query(Plant).filter(Plant.is_active == True)  # noqa: E712
        role = Role(user.role)
        if role == Role.SUPER_ADMIN:
            if company_id:
                plants = plants.filter(Plant.company_id == company_id)
        elif role == Role.COMPANY_ADMIN:
            plants = plants.filter(Plant.company_id == user.company_id)
        else:
            plants = plants.filter(Plant.id == user.plant_id)
        if plant_id:
            plants = plants.filter(Plant.id == plant_id)
        plants = plants.order_by(Plant.name).all()
        if not plants:
            return []

        query = self.db.query(FormSubmission).filter(
            FormSubmission.plant_id.in_([plant.id for plant in plants])
        )
        if days:
            query = query.filter(FormSubmission.submitted_at >= datetime.utcnow() - timedelta(days=days))
        by_plant = defaultdict(list)
        for row in query.all():
            by_plant[row.plant_id].append(state_from_row(row))

        return [
            {
                "plant_id": plant.id,
                "plant_name": plant.name,
                "plant_code": plant.code,
                "location": plant.location,
                "stats": plant_summary(by_plant[plant.id]),
            }
            for plant in plants
        ]
