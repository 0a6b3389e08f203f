"""Integration tests for versioned society settings"""

import pytest
from datetime import datetime
from decimal import Decimal
from coop_ledger.domain.exceptions import AuthorizationError, InvariantViolation, ValidationError
from coop_ledger.infrastructure.database.repositories import SettingsRepository
from coop_ledger.services.society_settings import SettingsStore


def test_defaults_before_first_version(db):
    snapshot = SettingsStore(db).current()

    assert snapshot.version is None
    assert snapshot.loan_interest_rate == Decimal("1.5")
    assert snapshot.standard_loan_term_months == 12
    assert snapshot.new_member_loan_eligibility_months == 6
    assert snapshot.loan_to_shares_savings_ratio == Decimal("2")


def test_update_appends_version_and_carries_fields(db, admin):
    store = SettingsStore(db)

    first = store.update(admin, {"loan_interest_rate": "2.0"}, now=datetime(2025, 1, 1))
    second = store.update(admin, {"standard_loan_term_months": 18}, now=datetime(2025, 2, 1))

    assert second.version > first.version
    assert second.loan_interest_rate == Decimal("2.0")
    assert second.standard_loan_term_months == 18
    assert second.updated_by == "admin-1"
    assert second.last_updated == datetime(2025, 2, 1)
    assert store.current() == second


def test_member_cannot_update(db, member_actor):
    with pytest.raises(AuthorizationError):
        SettingsStore(db).update(member_actor, {"loan_interest_rate": "2.0"})


def test_invalid_values_rejected(db, admin):
    store = SettingsStore(db)

    with pytest.raises(ValidationError):
        store.update(admin, {"loan_interest_rate": "0"})
    with pytest.raises(ValidationError):
        store.update(admin, {"new_member_loan_eligibility_months": -1})

    assert SettingsRepository(db).latest() is None


def test_saved_versions_are_immutable(db, admin):
    SettingsStore(db).update(admin, {"loan_interest_rate": "2.0"}, now=datetime(2025, 1, 1))
    version = SettingsRepository(db).latest()

    version.loan_interest_rate = Decimal("9.9")
    with pytest.raises(InvariantViolation):
        db.flush()
    db.rollback()
