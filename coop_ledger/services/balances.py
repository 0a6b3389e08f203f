"""Balance projector - balances derived from the ledger and reconciled against the cache"""

import logging
from typing import List
from sqlalchemy.orm import Session

from coop_ledger.domain.exceptions import BalanceMismatchError, MemberNotFoundError
from coop_ledger.domain.ledger import replay
from coop_ledger.domain.models import BalanceKind, Balances
from coop_ledger.infrastructure.database.repositories import (
    LedgerRepository, MemberRepository, member_balances, to_entry,
)

logger = logging.getLogger(__name__)


class BalanceProjector:
    """Replays a member's ledger; the member row only caches the result"""

    def __init__(self, db: Session):
        self.db = db
        self.members = MemberRepository(db)
        self.transactions = LedgerRepository(db)

    def current_balances(self, member_id: str) -> Balances:
        """Balances as the running fold of the member's transactions"""
        self._require_member(member_id)
        balances, _ = replay(to_entry(t) for t in self.transactions.list_by_member(member_id))
        return balances

    def cached_balances(self, member_id: str) -> Balances:
        return member_balances(self._require_member(member_id))

    def verify(self, member_id: str) -> Balances:
        """
        Recompute from scratch and compare with the cache and the audit snapshots.

        Raises:
            BalanceMismatchError: a cached balance differs from the replay, or an
                entry's balance_after breaks the running chain
        """
        member = self._require_member(member_id)
        replayed, problems = replay(to_entry(t) for t in self.transactions.list_by_member(member_id))
        cached = member_balances(member)

        mismatches: List[str] = list(problems)
        for kind in BalanceKind:
            if cached.get(kind) != replayed.get(kind):
                mismatches.append(f"{kind.value}: cached {cached.get(kind)}, ledger {replayed.get(kind)}")

        if mismatches:
            logger.error(
                "Balance reconciliation failed",
                extra={"member_id": member_id, "step": "verify", "mismatches": mismatches},
            )
            raise BalanceMismatchError(member_id, mismatches)

        return replayed

    def _require_member(self, member_id: str):
        member = self.members.get(member_id)
        if member is None:
            raise MemberNotFoundError(f"Member {member_id} not found")
        return member
