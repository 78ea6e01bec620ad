"""
Database Query Services for the Query API.

Pure read projections over the bounty index.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, desc
from sqlalchemy.orm import Session

from database.models import Bounty, Claim
from database.persistence import get_sync_value
from event_sync.cursor import CURSOR_KEY


class BountyQueryService:
    def __init__(self, session: Session):
        self.session = session

    def _winners_count(self):
        return (
            select(func.count(Claim.id))
            .where(Claim.bounty_address == Bounty.address)
            .correlate(Bounty)
            .scalar_subquery()
            .label("winners_count")
        )

    @staticmethod
    def _bounty_row(bounty: Bounty, winners_count: int) -> Dict[str, Any]:
        row = bounty.to_dict()
        row["winners_count"] = winners_count
        return row

    # =======================
    # 1. BOUNTIES
    # =======================
    def list_bounties(self) -> List[Dict[str, Any]]:
        rows = self.session.execute(
            select(Bounty, self._winners_count()).order_by(desc(Bounty.id))
        ).all()
        return [self._bounty_row(b, count) for b, count in rows]

    def get_bounty(self, bounty_id: int) -> Optional[Dict[str, Any]]:
        row = self.session.execute(
            select(Bounty, self._winners_count()).where(Bounty.id == bounty_id)
        ).first()
        if row is None:
            return None
        bounty, count = row
        return self._bounty_row(bounty, count)

    # =======================
    # 2. CLAIMS
    # =======================
    def claims_for_bounty(self, bounty_id: int) -> Optional[List[Dict[str, Any]]]:
        """Claims of a bounty, newest first. None if the bounty is unknown."""
        address = self.session.execute(
            select(Bounty.address).where(Bounty.id == bounty_id)
        ).scalar_one_or_none()
        if address is None:
            return None

        claims = self.session.execute(
            select(Claim)
            .where(Claim.bounty_address == address)
            .order_by(desc(Claim.created_at), desc(Claim.id))
        ).scalars().all()
        return [c.to_dict() for c in claims]

    def claims_for_wallet(self, wallet: str) -> List[Dict[str, Any]]:
        claims = self.session.execute(
            select(Claim)
            .where(Claim.executor == wallet.lower())
            .order_by(desc(Claim.created_at), desc(Claim.id))
        ).scalars().all()
        return [c.to_dict() for c in claims]

    # =======================
    # 3. SYNC
    # =======================
    def get_cursor(self) -> Optional[int]:
        value = get_sync_value(self.session, CURSOR_KEY)
        return int(value) if value is not None else None
