"""
Database Persistence Functions.

============================================================
IDEMPOTENT PERSISTENCE OPERATIONS
============================================================

Every function:
- Performs REAL database writes inside the caller's session
- Treats an already-present row as a no-op, never an error
- Logs structured output: "Persist table_name: inserted=N ignored=N"
- Raises DatabasePersistenceError on any other failure

Callers own the transaction (see engine.transaction_scope).

============================================================
"""

import logging
from typing import List, Dict, Any, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .models import (
    ProofType,
    Bounty,
    Claim,
    Withdrawal,
    SyncState,
    IdSequence,
)
from .engine import DatabasePersistenceError

logger = logging.getLogger(__name__)

BOUNTY_SEQUENCE = "bounties"


# =============================================================
# HELPER FUNCTIONS
# =============================================================

def _log_persistence(table_name: str, inserted: int, ignored: int) -> None:
    """Log persistence result in structured format."""
    if inserted or ignored:
        logger.info(f"Persist {table_name}: inserted={inserted} ignored={ignored}")
    else:
        logger.debug(f"Persist {table_name}: inserted=0 (empty input)")


def _lower(value: str) -> str:
    return value.lower()


# =============================================================
# ID SEQUENCES
# =============================================================

def next_sequence_value(session: Session, name: str) -> int:
    """
    Take the next value of a named sequence.

    The first use of a sequence seeds it from the current
    contents of its table, so stores created before the
    sequence existed continue numbering where they left off.
    Must run inside the transaction that consumes the value.
    """
    sequence = session.execute(
        select(IdSequence).where(IdSequence.name == name).with_for_update()
    ).scalar_one_or_none()

    if sequence is None:
        seed = 0
        if name == BOUNTY_SEQUENCE:
            max_id = session.execute(select(func.max(Bounty.id))).scalar()
            seed = 0 if max_id is None else max_id + 1
        sequence = IdSequence(name=name, next_value=seed)
        session.add(sequence)

    value = sequence.next_value
    sequence.next_value = value + 1
    session.flush()
    return value


# =============================================================
# 1. BOUNTIES
# =============================================================

def insert_bounty(session: Session, row: Dict[str, Any]) -> Optional[int]:
    """
    Insert a bounty unless its address is already indexed.

    Args:
        session: Database session
        row: Bounty fields (address, creator, title_hash, proof_type,
             reward_amount, deadline, block_number, tx_hash)

    Returns:
        The assigned id, or None if the bounty already existed
    """
    address = _lower(row["address"])
    proof_type = int(row["proof_type"])

    existing = session.execute(
        select(Bounty.id).where(Bounty.address == address)
    ).scalar_one_or_none()
    if existing is not None:
        return None

    try:
        ProofType(proof_type)
    except ValueError:
        logger.warning(f"Bounty {address}: unknown proof type {proof_type}, stored as is")

    try:
        # Sequence bump and insert share one savepoint: a lost race
        # rolls both back and no id is consumed
        with session.begin_nested():
            bounty_id = next_sequence_value(session, BOUNTY_SEQUENCE)
            session.add(Bounty(
                id=bounty_id,
                address=address,
                creator=_lower(row["creator"]),
                title_hash=row["title_hash"],
                proof_type=proof_type,
                reward_amount=str(row["reward_amount"]),
                deadline=int(row["deadline"]),
                block_number=int(row["block_number"]),
                tx_hash=row["tx_hash"],
            ))
        return bounty_id
    except IntegrityError:
        return None


def persist_bounties(session: Session, rows: List[Dict[str, Any]]) -> Tuple[int, int]:
    """
    Persist BountyCreated rows in order.

    Returns:
        (inserted, ignored)
    """
    inserted = ignored = 0
    try:
        for row in rows:
            if insert_bounty(session, row) is None:
                ignored += 1
            else:
                inserted += 1
    except SQLAlchemyError as e:
        logger.error(f"Failed to persist bounties: {e}")
        raise DatabasePersistenceError(f"bounties persistence failed: {e}") from e

    _log_persistence("bounties", inserted, ignored)
    return inserted, ignored


# =============================================================
# 2. CLAIMS
# =============================================================

def insert_claim(session: Session, row: Dict[str, Any]) -> bool:
    """
    Insert a claim unless (bounty_address, executor) already exists.

    Returns:
        True if a row was written
    """
    bounty_address = _lower(row["bounty_address"])
    executor = _lower(row["executor"])

    existing = session.execute(
        select(Claim.id).where(
            Claim.bounty_address == bounty_address,
            Claim.executor == executor,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return False

    try:
        with session.begin_nested():
            session.add(Claim(
                bounty_address=bounty_address,
                executor=executor,
                payout=str(row["payout"]),
                block_number=int(row["block_number"]),
                tx_hash=row["tx_hash"],
            ))
        return True
    except IntegrityError:
        return False


def persist_claims(session: Session, rows: List[Dict[str, Any]]) -> Tuple[int, int]:
    """
    Persist BountyClaimed rows in order.

    Returns:
        (inserted, ignored)
    """
    inserted = ignored = 0
    try:
        for row in rows:
            if insert_claim(session, row):
                inserted += 1
            else:
                ignored += 1
    except SQLAlchemyError as e:
        logger.error(f"Failed to persist claims: {e}")
        raise DatabasePersistenceError(f"claims persistence failed: {e}") from e

    _log_persistence("claims", inserted, ignored)
    return inserted, ignored


# =============================================================
# 3. WITHDRAWALS
# =============================================================

def insert_withdrawal(session: Session, row: Dict[str, Any]) -> bool:
    """
    Insert a withdrawal unless its log (tx_hash, log_index) is stored.

    A bounty may be withdrawn from more than once, also several
    times in one transaction with equal amounts; only a replay
    of the same log is skipped.

    Returns:
        True if a row was written
    """
    tx_hash = row["tx_hash"].lower()
    log_index = int(row["log_index"])

    existing = session.execute(
        select(Withdrawal.id).where(
            Withdrawal.tx_hash == tx_hash,
            Withdrawal.log_index == log_index,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return False

    try:
        with session.begin_nested():
            session.add(Withdrawal(
                bounty_address=_lower(row["bounty_address"]),
                creator=_lower(row["creator"]),
                amount=str(row["amount"]),
                block_number=int(row["block_number"]),
                tx_hash=tx_hash,
                log_index=log_index,
            ))
        return True
    except IntegrityError:
        return False


def persist_withdrawals(session: Session, rows: List[Dict[str, Any]]) -> Tuple[int, int]:
    """
    Persist BountyWithdrawn rows in order.

    Returns:
        (inserted, ignored)
    """
    inserted = ignored = 0
    try:
        for row in rows:
            if insert_withdrawal(session, row):
                inserted += 1
            else:
                ignored += 1
    except SQLAlchemyError as e:
        logger.error(f"Failed to persist withdrawals: {e}")
        raise DatabasePersistenceError(f"withdrawals persistence failed: {e}") from e

    _log_persistence("withdrawals", inserted, ignored)
    return inserted, ignored


# =============================================================
# 4. SYNC STATE
# =============================================================

def get_sync_value(session: Session, key: str) -> Optional[str]:
    """Read a sync_state value, None if absent."""
    return session.execute(
        select(SyncState.value).where(SyncState.key == key)
    ).scalar_one_or_none()


def set_sync_value(session: Session, key: str, value: str) -> None:
    """Insert or overwrite a sync_state value."""
    try:
        state = session.get(SyncState, key)
        if state is None:
            session.add(SyncState(key=key, value=value))
        else:
            state.value = value
        session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Failed to persist sync_state[{key}]: {e}")
        raise DatabasePersistenceError(f"sync_state persistence failed: {e}") from e


__all__ = [
    "BOUNTY_SEQUENCE",
    "next_sequence_value",
    "insert_bounty",
    "insert_claim",
    "insert_withdrawal",
    "persist_bounties",
    "persist_claims",
    "persist_withdrawals",
    "get_sync_value",
    "set_sync_value",
]
