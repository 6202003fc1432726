"""Tests for store deadlines and the configured time budget."""

import pytest
from settlement.exceptions import PersistenceFailure, StoreTimeout
from settlement.store import NO_DEADLINE, deadline_for, default_timeout
from settlement.store.port import Deadline


class TestDeadline:
    def test_no_deadline_never_expires(self):
        NO_DEADLINE.check("anything")
        assert NO_DEADLINE.remaining() is None

    def test_spent_budget_raises_store_timeout(self):
        deadline = Deadline.after(0)
        with pytest.raises(StoreTimeout) as exc_info:
            deadline.check("create_order")
        assert exc_info.value.details["operation"] == "create_order"

    def test_store_timeout_is_retryable_persistence_failure(self):
        assert issubclass(StoreTimeout, PersistenceFailure)

    def test_remaining_is_bounded_below(self):
        assert Deadline.after(0).remaining() == 0.0
        assert 0 < Deadline.after(60).remaining() <= 60


class TestConfiguredTimeout:
    def test_default(self, monkeypatch):
        monkeypatch.delenv("SETTLEMENT_STORE_TIMEOUT", raising=False)
        assert default_timeout() == 10.0

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("SETTLEMENT_STORE_TIMEOUT", "2.5")
        assert default_timeout() == 2.5

    def test_zero_disables_budget(self, monkeypatch):
        monkeypatch.setenv("SETTLEMENT_STORE_TIMEOUT", "0")
        assert default_timeout() is None
        assert deadline_for() is NO_DEADLINE

    def test_explicit_timeout_overrides_default(self, monkeypatch):
        monkeypatch.setenv("SETTLEMENT_STORE_TIMEOUT", "0")
        with pytest.raises(StoreTimeout):
            deadline_for(0).check("update_order_status")
