"""Settings snapshot store - append-only versions with author and timestamp"""

import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Union
from sqlalchemy.orm import Session

from coop_ledger.config import settings as config
from coop_ledger.domain.lifecycle import require_reviewer
from coop_ledger.domain.models import Actor
from coop_ledger.infrastructure.database.models import SettingsVersion
from coop_ledger.infrastructure.database.repositories import SettingsRepository
from coop_ledger.infrastructure.database.session import atomic
from coop_ledger.schemas import SettingsSnapshot, SettingsUpdate, parse_input
from coop_ledger.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


def default_snapshot() -> SettingsSnapshot:
    """Configured defaults, used until the first version is saved"""
    return SettingsSnapshot(
        loan_interest_rate=config.default_loan_interest_rate,
        standard_loan_term_months=config.default_standard_loan_term_months,
        new_member_loan_eligibility_months=config.default_new_member_loan_eligibility_months,
        loan_to_shares_savings_ratio=config.default_loan_to_shares_savings_ratio,
    )


def to_snapshot(version: SettingsVersion) -> SettingsSnapshot:
    return SettingsSnapshot(
        version=version.id,
        loan_interest_rate=version.loan_interest_rate,
        standard_loan_term_months=version.standard_loan_term_months,
        new_member_loan_eligibility_months=version.new_member_loan_eligibility_months,
        loan_to_shares_savings_ratio=version.loan_to_shares_savings_ratio,
        last_updated=version.last_updated,
        updated_by=version.updated_by,
    )


class SettingsStore:
    """Reads the current settings snapshot and appends new versions"""

    def __init__(self, db: Session):
        self.db = db
        self.versions = SettingsRepository(db)

    def current(self) -> SettingsSnapshot:
        latest = self.versions.latest()
        return to_snapshot(latest) if latest else default_snapshot()

    def update(
        self,
        actor: Actor,
        changes: Union[SettingsUpdate, Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> SettingsSnapshot:
        """
        Save a new settings version; omitted fields carry over.

        Already-posted transactions and rates fixed on disbursed loans are not
        touched: they keep the values copied at the time.
        """
        require_reviewer(actor)
        update = parse_input(SettingsUpdate, changes)
        now = now or utcnow()

        with atomic(self.db):
            merged = self.current().model_dump(exclude={"version", "last_updated", "updated_by"})
            merged.update(update.model_dump(exclude_none=True))
            version = self.versions.append(
                SettingsVersion(last_updated=now, updated_by=actor.user_id, **merged)
            )

        logger.info(
            "Settings updated",
            extra={"step": "settings_update", "version": version.id, "actor_id": actor.user_id},
        )
        return to_snapshot(version)
