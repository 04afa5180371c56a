"""
Derives scheduling issues (missing leaders, unfilled positions, volunteers
assigned while unavailable) from a resolved schedule.
"""

import enum
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..models import OccurrenceKind
from .occurrences import Occurrence, OccurrenceKey


class IssueKind(str, enum.Enum):
    LEADER_MISSING = 'leader_missing'
    POSITION_UNFILLED = 'position_unfilled'
    AVAILABILITY_CONFLICT = 'availability_conflict'


# Presentation order within one occurrence
KIND_ORDER = {
    IssueKind.LEADER_MISSING: 0,
    IssueKind.POSITION_UNFILLED: 1,
    IssueKind.AVAILABILITY_CONFLICT: 2,
}


@dataclass(frozen=True)
class Issue:
    occurrence: Occurrence
    service: Any
    kind: IssueKind
    detail: str
    position: Optional[str] = None
    user_id: Any = None


def _service_issues(occurrence, service, periods_by_user):
    issues = []
    if service.leader_id is None:
        issues.append(Issue(
            occurrence=occurrence,
            service=service,
            kind=IssueKind.LEADER_MISSING,
            detail=f"No leader assigned to {service.name}",
        ))

    assignments = service.assignments or {}
    for position in service.positions or []:
        if not assignments.get(position):
            issues.append(Issue(
                occurrence=occurrence,
                service=service,
                kind=IssueKind.POSITION_UNFILLED,
                position=position,
                detail=f"Position '{position}' is unfilled",
            ))

    seen = set()
    for position, user_id in assignments.items():
        if not user_id or str(user_id) in seen:
            continue
        seen.add(str(user_id))
        if any(period.covers(occurrence.occurrence_date) for period in periods_by_user.get(str(user_id), ())):
            issues.append(Issue(
                occurrence=occurrence,
                service=service,
                kind=IssueKind.AVAILABILITY_CONFLICT,
                position=position,
                user_id=user_id,
                detail=f"Volunteer {user_id} is unavailable on {occurrence.occurrence_date} ({position})",
            ))
    return issues


def detect(
    occurrences: Iterable[Occurrence],
    services_by_occurrence: Dict[OccurrenceKey, List[Any]],
    unavailability: Iterable[Any],
) -> List[Issue]:
    """
    Scan every non-cancelled occurrence and its services for issues.

    Issues come grouped by occurrence in chronological order, then by kind
    (leader, positions, availability). Stateless; safe to re-run after any
    change.
    """
    periods_by_user = defaultdict(list)
    for period in unavailability:
        periods_by_user[str(period.user_id)].append(period)

    issues = []
    for occurrence in sorted(occurrences, key=lambda occ: occ.start):
        if occurrence.kind == OccurrenceKind.CANCELLATION:
            continue
        found = []
        for service in services_by_occurrence.get(occurrence.key, []):
            found.extend(_service_issues(occurrence, service, periods_by_user))
        found.sort(key=lambda issue: KIND_ORDER[issue.kind])
        issues.extend(found)
    return issues
