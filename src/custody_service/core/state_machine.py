"""
Evidence State Machine

Legal status transitions for evidence items. Status and custody are separate
concerns: a transition never appends a custody event.
"""

from typing import Dict, FrozenSet, Optional

from custody_service.core.errors import InvalidTransitionError, ValidationError
from custody_service.models.evidence import EvidenceItem, EvidenceStatus

TRANSITIONS: Dict[EvidenceStatus, FrozenSet[EvidenceStatus]] = {
    EvidenceStatus.COLLECTED: frozenset({EvidenceStatus.STORED}),
    EvidenceStatus.STORED: frozenset({
        EvidenceStatus.ANALYZED,
        EvidenceStatus.DESTROYED,
        EvidenceStatus.RETURNED,
    }),
    # re-shelved after analysis
    EvidenceStatus.ANALYZED: frozenset({EvidenceStatus.COURT, EvidenceStatus.STORED}),
    EvidenceStatus.COURT: frozenset({EvidenceStatus.RETURNED, EvidenceStatus.DESTROYED}),
    EvidenceStatus.RETURNED: frozenset(),
    EvidenceStatus.DESTROYED: frozenset(),
}


def allowed_targets(status: EvidenceStatus) -> FrozenSet[EvidenceStatus]:
    return TRANSITIONS[EvidenceStatus(status)]


def is_terminal(status: EvidenceStatus) -> bool:
    return not TRANSITIONS[EvidenceStatus(status)]


def check_transition(
    current: EvidenceStatus,
    target,
    reason: Optional[str] = None,
) -> EvidenceStatus:
    """
    Validate a status move

    Args:
        current: Status the item is in
        target: Requested status (enum or string value)
        reason: Justification; required when moving to destroyed

    Returns:
        The target as an EvidenceStatus

    Raises:
        ValidationError: Unknown target status or missing destruction reason
        InvalidTransitionError: Pair not in the transition table
    """
    current = EvidenceStatus(current)
    try:
        target = EvidenceStatus(target)
    except ValueError:
        allowed = ", ".join(s.value for s in EvidenceStatus)
        raise ValidationError(f"Invalid status '{target}' (allowed: {allowed})", field="status")

    if target not in TRANSITIONS[current]:
        if is_terminal(current):
            message = f"Evidence in terminal status '{current.value}' cannot change status"
        else:
            message = f"Cannot transition from {current.value} to {target.value}"
        raise InvalidTransitionError(current.value, target.value, message)

    if target == EvidenceStatus.DESTROYED and not (reason or "").strip():
        raise ValidationError("A reason is required to mark evidence as destroyed", field="reason")

    return target


def transition(item: EvidenceItem, target, now, reason: Optional[str] = None) -> EvidenceItem:
    """Return a copy of the item moved to the target status"""
    new_status = check_transition(item.status, target, reason)
    return item.model_copy(update={"status": new_status, "updated_at": now})
