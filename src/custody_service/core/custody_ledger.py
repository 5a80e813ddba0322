"""
Custody Ledger

Append-only chain of custody over an immutable tuple of events. Events are
ordered by append order only; the recorded timestamp is server time.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from custody_service.core.errors import ValidationError
from custody_service.models.evidence import CustodyAction, CustodyEvent, EvidenceItem, Officer

Chain = Tuple[CustodyEvent, ...]


def validate_officer(officer: Optional[Officer]) -> None:
    if officer is None:
        raise ValidationError("Acting officer is required", field="officer")
    for field in ("id", "name", "badge"):
        if not (getattr(officer, field) or "").strip():
            raise ValidationError(f"Acting officer {field} is required", field=f"officer.{field}")


def append_event(
    chain: Chain,
    action,
    location: str,
    officer: Officer,
    now: datetime,
    notes: Optional[str] = None,
) -> Tuple[Chain, int]:
    """
    Append a custody event at the tail of the chain

    Args:
        chain: Current chain
        action: CustodyAction or its string value
        location: Where the handling happened (required)
        officer: Acting officer
        now: Server time recorded on the event
        notes: Optional free text

    Returns:
        Tuple of (new chain, 1-based ordinal of the appended event)

    Raises:
        ValidationError: Unknown action, blank location or incomplete officer
    """
    try:
        action = CustodyAction(action)
    except ValueError:
        allowed = ", ".join(a.value for a in CustodyAction)
        raise ValidationError(f"Invalid custody action '{action}' (allowed: {allowed})", field="action")

    if not location or not location.strip():
        raise ValidationError("Custody location is required", field="location")

    validate_officer(officer)

    event = CustodyEvent(
        timestamp=now,
        action=action,
        location=location.strip(),
        officer_id=officer.id,
        officer_name=officer.name,
        officer_badge=officer.badge,
        notes=notes or None,
    )
    new_chain = tuple(chain) + (event,)
    return new_chain, len(new_chain)


def current_custodian(chain: Chain) -> Optional[Officer]:
    """Officer of the most recent event; the collector until anything else is logged"""
    if not chain:
        return None
    return chain[-1].officer


def transfer_count(chain: Chain) -> int:
    return sum(1 for event in chain if event.action == CustodyAction.TRANSFERRED)


def last_activity(chain: Chain) -> Optional[datetime]:
    return chain[-1].timestamp if chain else None


def handling_officers(chain: Chain) -> List[Officer]:
    """Distinct officers who handled the item, in first-seen order"""
    seen = {}
    for event in chain:
        if event.officer_id not in seen:
            seen[event.officer_id] = event.officer
    return list(seen.values())


def chain_as_text(chain: Chain) -> str:
    lines = []
    for index, event in enumerate(chain, start=1):
        line = (
            f"{index}. {event.action.value.upper()} by {event.officer_name} "
            f"({event.officer_badge}) at {event.location} on {event.timestamp.isoformat()}"
        )
        if event.notes:
            line += f" - {event.notes}"
        lines.append(line)
    return "\n".join(lines)


def verify_chain(item: EvidenceItem) -> List[str]:
    """Return the ways the chain breaks the collection invariant (empty when sound)"""
    problems = []
    if not item.custody_chain:
        return ["Chain of custody is empty"]

    first = item.custody_chain[0]
    if first.action != CustodyAction.COLLECTED:
        problems.append(f"First custody event is '{first.action.value}', expected 'collected'")
    if first.officer_id != item.collected_by:
        problems.append("First custody event was not recorded by the collecting officer")
    if first.timestamp != item.collected_date:
        problems.append("First custody event does not match the collection date")
    return problems
