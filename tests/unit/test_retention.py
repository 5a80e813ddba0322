"""Unit tests for the retention policy evaluator"""

from datetime import timedelta

import pytest

from custody_service.core import custody_ledger, retention
from custody_service.core.retention import RetentionPolicy
from custody_service.models import CustodyAction, EvidenceStatus, EvidenceType, FileMeta

POLICY = RetentionPolicy(stale_window_days=30, retention_window_days=365)


@pytest.mark.unit
class TestCriticality:
    @pytest.mark.parametrize("evidence_type", [EvidenceType.WEAPON, EvidenceType.BIOLOGICAL])
    def test_critical_types(self, make_item, evidence_type):
        assert retention.is_critical(make_item(type=evidence_type), POLICY)

    def test_high_value_tag_case_insensitive(self, make_item):
        assert retention.is_critical(make_item(tags=frozenset({"High-Value"})), POLICY)

    def test_plain_document_not_critical(self, make_item):
        assert not retention.is_critical(make_item(), POLICY)

    def test_digital_requires_hash(self, make_item):
        meta = FileMeta(url="k", name="a.pdf", size_bytes=3, mime_type="application/pdf", content_hash="ab")
        assert retention.is_digital(make_item(file_meta=meta))
        assert not retention.is_digital(make_item(file_meta=meta.model_copy(update={"content_hash": None})))
        assert not retention.is_digital(make_item())


@pytest.mark.unit
class TestStaleness:
    def test_fresh_item_not_stale(self, make_item, clock):
        assert not retention.is_stale(make_item(), POLICY, clock.advance(days=10))

    def test_untouched_item_goes_stale(self, make_item, clock):
        item = make_item(status=EvidenceStatus.STORED)
        assert retention.is_stale(item, POLICY, clock.advance(days=45))

    def test_recent_custody_event_keeps_item_fresh(self, make_item, officer, clock):
        item = make_item()
        chain, _ = custody_ledger.append_event(
            item.custody_chain, CustodyAction.ACCESSED, "Lab", officer, now=clock.advance(days=40)
        )
        item = item.model_copy(update={"custody_chain": chain})
        assert not retention.is_stale(item, POLICY, clock.advance(days=5))

    @pytest.mark.parametrize("status", [EvidenceStatus.COURT, EvidenceStatus.RETURNED, EvidenceStatus.DESTROYED])
    def test_inactive_statuses_never_stale(self, make_item, clock, status):
        assert not retention.is_stale(make_item(status=status), POLICY, clock.advance(days=400))


@pytest.mark.unit
class TestDestruction:
    def test_old_stored_item_of_closed_case(self, make_item, clock):
        item = make_item(status=EvidenceStatus.STORED)
        assert retention.can_be_destroyed(item, POLICY, True, clock.advance(days=400))

    def test_open_case_blocks(self, make_item, clock):
        item = make_item(status=EvidenceStatus.STORED)
        assert not retention.can_be_destroyed(item, POLICY, False, clock.advance(days=400))

    def test_critical_blocks(self, make_item, clock):
        item = make_item(status=EvidenceStatus.STORED, type=EvidenceType.WEAPON)
        assert not retention.can_be_destroyed(item, POLICY, True, clock.advance(days=400))

    def test_within_window(self, make_item, clock):
        item = make_item(status=EvidenceStatus.ANALYZED)
        assert not retention.can_be_destroyed(item, POLICY, True, clock.advance(days=200))

    def test_explicit_window_overrides_policy(self, make_item, clock):
        item = make_item(status=EvidenceStatus.ANALYZED)
        assert retention.can_be_destroyed(item, POLICY, True, clock.advance(days=200), retention_window=100)

    def test_per_type_window(self, make_item, clock):
        policy = RetentionPolicy(retention_window_days=365, retention_windows_by_type={EvidenceType.FINANCIAL: 3650})
        item = make_item(status=EvidenceStatus.STORED, type=EvidenceType.FINANCIAL)
        assert not retention.can_be_destroyed(item, policy, True, clock.advance(days=400))

    @pytest.mark.parametrize("status", [EvidenceStatus.COLLECTED, EvidenceStatus.COURT])
    def test_status_blocks(self, make_item, clock, status):
        assert not retention.can_be_destroyed(make_item(status=status), POLICY, True, clock.advance(days=400))


@pytest.mark.unit
class TestCourtReadiness:
    def test_unsealed_single_event_item(self, make_item, clock):
        issues = retention.court_readiness_issues(make_item(), POLICY, clock())
        assert "Evidence not sealed" in issues
        assert len(issues) == 2

    def test_ready_item(self, make_item, other_officer, clock):
        item = make_item(is_sealed=True, sealed_by="officer-7", sealed_at=clock())
        chain, _ = custody_ledger.append_event(
            item.custody_chain, CustodyAction.TRANSFERRED, "Court clerk", other_officer, now=clock.advance(days=1)
        )
        item = item.model_copy(update={"custody_chain": chain})
        assert retention.is_ready_for_court(item, POLICY, clock())

    def test_assess(self, make_item, clock):
        item = make_item(status=EvidenceStatus.STORED)
        result = retention.assess(item, POLICY, True, clock.now + timedelta(days=400))
        assert result.age_in_days == 400
        assert result.can_be_destroyed
        assert result.is_stale
        assert not result.is_ready_for_court
        assert result.retention_window_days == 365
        assert result.case_closed
