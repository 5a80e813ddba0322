"""
Retention Policy Evaluator

Pure, read-only classification of evidence items: criticality, staleness,
destruction eligibility and court readiness.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional

from custody_service.core import custody_ledger
from custody_service.models.evidence import EvidenceItem, EvidenceStatus, EvidenceType
from custody_service.models.inputs import RetentionAssessment

CRITICAL_TYPES = frozenset({EvidenceType.BIOLOGICAL, EvidenceType.WEAPON})
INACTIVE_STATUSES = frozenset({EvidenceStatus.COURT, EvidenceStatus.DESTROYED, EvidenceStatus.RETURNED})
DESTROYABLE_STATUSES = frozenset({EvidenceStatus.STORED, EvidenceStatus.ANALYZED})


@dataclass(frozen=True)
class RetentionPolicy:
    """Policy parameters; windows are in days"""

    stale_window_days: int = 30
    retention_window_days: int = 730
    retention_windows_by_type: Dict[EvidenceType, int] = field(default_factory=dict)
    high_value_tags: FrozenSet[str] = frozenset({"critical", "high-value", "weapon"})

    def retention_window_for(self, evidence_type: EvidenceType) -> int:
        return self.retention_windows_by_type.get(evidence_type, self.retention_window_days)


def is_critical(item: EvidenceItem, policy: RetentionPolicy) -> bool:
    """Critical items require special handling"""
    if item.type in CRITICAL_TYPES:
        return True
    return bool({tag.lower() for tag in item.tags} & policy.high_value_tags)


def is_digital(item: EvidenceItem) -> bool:
    """Digital evidence has an attached file with a populated content hash"""
    return item.file_meta is not None and bool(item.file_meta.content_hash)


def age_in_days(item: EvidenceItem, now: datetime) -> int:
    return max((now - item.collected_date).days, 0)


def is_stale(item: EvidenceItem, policy: RetentionPolicy, now: datetime) -> bool:
    """Item sitting without status or custody progress beyond the stale window"""
    if item.status in INACTIVE_STATUSES:
        return False
    if age_in_days(item, now) <= policy.stale_window_days:
        return False
    last = custody_ledger.last_activity(item.custody_chain)
    window_start = now - timedelta(days=policy.stale_window_days)
    return last is None or last < window_start


def can_be_destroyed(
    item: EvidenceItem,
    policy: RetentionPolicy,
    case_closed: bool,
    now: datetime,
    retention_window: Optional[int] = None,
) -> bool:
    if item.status not in DESTROYABLE_STATUSES:
        return False
    if is_critical(item, policy) or not case_closed:
        return False
    window = retention_window if retention_window is not None else policy.retention_window_for(item.type)
    return age_in_days(item, now) > window


def court_readiness_issues(item: EvidenceItem, policy: RetentionPolicy, now: datetime) -> List[str]:
    issues = []
    if not item.is_sealed:
        issues.append("Evidence not sealed")
    if len(item.custody_chain) < 2:
        issues.append("Chain of custody has no verified transfer or access after collection")
    if is_stale(item, policy, now):
        issues.append("Evidence is stale")
    return issues


def is_ready_for_court(item: EvidenceItem, policy: RetentionPolicy, now: datetime) -> bool:
    return not court_readiness_issues(item, policy, now)


def assess(
    item: EvidenceItem,
    policy: RetentionPolicy,
    case_closed: bool,
    now: datetime,
    retention_window: Optional[int] = None,
) -> RetentionAssessment:
    """Evaluate every retention flag for one item"""
    issues = court_readiness_issues(item, policy, now)
    window = retention_window if retention_window is not None else policy.retention_window_for(item.type)
    return RetentionAssessment(
        evidence_id=item.id,
        age_in_days=age_in_days(item, now),
        is_critical=is_critical(item, policy),
        is_digital=is_digital(item),
        is_stale=is_stale(item, policy, now),
        can_be_destroyed=can_be_destroyed(item, policy, case_closed, now, window),
        is_ready_for_court=not issues,
        court_issues=issues,
        retention_window_days=window,
        case_closed=case_closed,
    )
