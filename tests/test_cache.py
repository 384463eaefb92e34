"""Tests for client cache invalidation keys."""

from uuid import uuid4

import pytest

from pipevault.services.cache import MutationKind, invalidation_keys


class TestInvalidationKeys:
    """Tests for invalidation_keys."""

    def test_every_mutation_has_keys(self) -> None:
        """Test that no mutation kind maps to an empty key set."""
        for kind in MutationKind:
            assert invalidation_keys(kind)

    def test_approval_invalidates_yards(self) -> None:
        """Test that approving a request refreshes rack occupancy views."""
        assert "yards" in invalidation_keys(MutationKind.REQUEST_APPROVED)

    def test_rack_adjustment_is_yard_only(self) -> None:
        """Test that a manual rack adjustment only touches yard views."""
        company_id = uuid4()
        assert invalidation_keys(MutationKind.RACK_ADJUSTED, company_id) == ("yards",)

    def test_company_scoped_keys(self) -> None:
        """Test that company detail keys are added when the company is known."""
        company_id = uuid4()
        keys = invalidation_keys(MutationKind.REQUEST_REJECTED, company_id)

        assert f"projectSummaries:company:{company_id}" in keys
        assert f"companies:details:{company_id}" in keys

    def test_load_completion_matches_delivery(self) -> None:
        """Test that receiving a booked load refreshes the same views as a delivery."""
        company_id = uuid4()
        assert invalidation_keys(MutationKind.LOAD_COMPLETED, company_id) == invalidation_keys(
            MutationKind.DELIVERY_RECORDED, company_id
        )

    def test_load_status_change_skips_inventory(self) -> None:
        """Test that approving or rejecting a booking leaves inventory views alone."""
        keys = invalidation_keys(MutationKind.LOAD_STATUS_CHANGED)
        assert "truckLoads" in keys
        assert "inventory" not in keys

    def test_keys_are_sorted(self) -> None:
        """Test that the key tuple is deterministic."""
        keys = invalidation_keys("pickup_recorded", "c1")
        assert list(keys) == sorted(keys)

    def test_unknown_kind(self) -> None:
        """Test that unknown mutation kinds are rejected."""
        with pytest.raises(ValueError):
            invalidation_keys("request_archived")
