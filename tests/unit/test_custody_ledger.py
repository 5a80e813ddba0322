"""Unit tests for the custody ledger

Append-only chain behaviour and the summaries built from it.
"""

from datetime import timedelta

import pytest

from custody_service.core import custody_ledger
from custody_service.core.errors import ValidationError
from custody_service.models import CustodyAction, Officer


@pytest.mark.unit
class TestAppendEvent:
    """Test appending custody events"""

    def test_append_returns_new_chain_and_ordinal(self, make_item, other_officer, clock):
        """Happy path: the event lands at the tail and the old chain is untouched"""
        item = make_item()
        chain, ordinal = custody_ledger.append_event(
            item.custody_chain, CustodyAction.TRANSFERRED, "Evidence Locker 3", other_officer, now=clock()
        )

        assert ordinal == 2
        assert len(chain) == 2
        assert len(item.custody_chain) == 1
        assert chain[:1] == item.custody_chain
        assert chain[-1].officer_id == other_officer.id
        assert chain[-1].location == "Evidence Locker 3"

    def test_append_accepts_action_string(self, officer, clock):
        chain, ordinal = custody_ledger.append_event((), "accessed", "Lab", officer, now=clock())
        assert ordinal == 1
        assert chain[0].action == CustodyAction.ACCESSED

    def test_arrival_order_is_kept_even_with_older_timestamp(self, make_item, officer, clock):
        """Events are ordered by append, not by timestamp"""
        item = make_item()
        chain, _ = custody_ledger.append_event(
            item.custody_chain, CustodyAction.ACCESSED, "Lab", officer, now=clock() - timedelta(days=1)
        )
        assert chain[-1].action == CustodyAction.ACCESSED
        assert chain[-1].timestamp < chain[0].timestamp

    def test_unknown_action_rejected(self, officer, clock):
        with pytest.raises(ValidationError) as exc_info:
            custody_ledger.append_event((), "borrowed", "Lab", officer, now=clock())
        assert exc_info.value.field == "action"

    def test_blank_location_rejected(self, officer, clock):
        with pytest.raises(ValidationError) as exc_info:
            custody_ledger.append_event((), CustodyAction.ACCESSED, "   ", officer, now=clock())
        assert exc_info.value.field == "location"

    def test_incomplete_officer_rejected(self, clock):
        officer = Officer(id="officer-3", name="Lee Park", badge="")
        with pytest.raises(ValidationError) as exc_info:
            custody_ledger.append_event((), CustodyAction.ACCESSED, "Lab", officer, now=clock())
        assert exc_info.value.field == "officer.badge"

    def test_missing_officer_rejected(self):
        with pytest.raises(ValidationError):
            custody_ledger.validate_officer(None)


@pytest.mark.unit
class TestChainSummaries:
    """Test derived chain information"""

    def _chain(self, make_item, officer, other_officer, clock):
        chain = make_item().custody_chain
        chain, _ = custody_ledger.append_event(
            chain, CustodyAction.TRANSFERRED, "Locker 3", other_officer, now=clock.advance(hours=1)
        )
        chain, _ = custody_ledger.append_event(
            chain, CustodyAction.ACCESSED, "Lab", officer, now=clock.advance(hours=1), notes="Photographed"
        )
        return chain

    def test_current_custodian_is_last_handler(self, make_item, officer, other_officer, clock):
        chain = self._chain(make_item, officer, other_officer, clock)
        assert custody_ledger.current_custodian(chain) == officer

    def test_current_custodian_of_fresh_item_is_collector(self, make_item, officer):
        assert custody_ledger.current_custodian(make_item().custody_chain) == officer

    def test_current_custodian_of_empty_chain(self):
        assert custody_ledger.current_custodian(()) is None

    def test_transfer_count(self, make_item, officer, other_officer, clock):
        chain = self._chain(make_item, officer, other_officer, clock)
        assert custody_ledger.transfer_count(chain) == 1

    def test_handling_officers_distinct_in_first_seen_order(self, make_item, officer, other_officer, clock):
        chain = self._chain(make_item, officer, other_officer, clock)
        assert custody_ledger.handling_officers(chain) == [officer, other_officer]

    def test_last_activity(self, make_item, officer, other_officer, clock):
        chain = self._chain(make_item, officer, other_officer, clock)
        assert custody_ledger.last_activity(chain) == clock.now
        assert custody_ledger.last_activity(()) is None

    def test_chain_as_text(self, make_item, officer, other_officer, clock):
        text = custody_ledger.chain_as_text(self._chain(make_item, officer, other_officer, clock))
        lines = text.splitlines()
        assert len(lines) == 3
        assert lines[0].startswith("1. COLLECTED by Dana Reyes (B-1007) at Apartment 4B")
        assert lines[2].endswith("- Photographed")


@pytest.mark.unit
class TestVerifyChain:
    """Test the collection invariant check"""

    def test_sound_chain(self, make_item):
        assert custody_ledger.verify_chain(make_item()) == []

    def test_empty_chain(self, make_item):
        assert custody_ledger.verify_chain(make_item(custody_chain=())) == ["Chain of custody is empty"]

    def test_wrong_first_event(self, make_item, other_officer, clock):
        chain, _ = custody_ledger.append_event((), CustodyAction.TRANSFERRED, "Locker", other_officer, now=clock())
        problems = custody_ledger.verify_chain(make_item(custody_chain=chain))
        assert any("expected 'collected'" in p for p in problems)
        assert any("collecting officer" in p for p in problems)
