"""
Database ORM Models - Bounty Index Tables.

============================================================
BOUNTY INDEX SCHEMA
============================================================

bounties       one row per BountyCreated (factory events)
claims         one row per (bounty, executor)
withdrawals    one row per BountyWithdrawn log (tx_hash, log_index)
sync_state     key/value, holds the ingestion cursor
id_sequences   storage-owned counters for bounty ids

Addresses are stored lower-cased. Token amounts are decimal
strings: uint256 values never pass through float or a
fixed-width integer column.

============================================================
"""

import enum

from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Index,
    UniqueConstraint, text,
)

from .engine import Base


# =============================================================
# ENUMS
# =============================================================

class ProofType(enum.IntEnum):
    """How a bounty's completion is proven on-chain."""
    TX_EVENT = 0
    STATE_PREDICATE = 1
    EAS_ATTESTATION = 2


# UTC 'YYYY-MM-DD HH:MM:SS' text, same as SQLite datetime('now')
CREATED_AT_DEFAULT = text("CURRENT_TIMESTAMP")


# =============================================================
# 1. BOUNTIES TABLE
# =============================================================

class Bounty(Base):
    """
    Bounty escrow created by the factory.

    Source: BountyCreated (factory address only)
    Identity fields are immutable once inserted.
    """
    __tablename__ = "bounties"

    # Assigned from id_sequences, not autoincrement
    id = Column(Integer, primary_key=True, autoincrement=False)
    address = Column(String(42), nullable=False, unique=True)
    creator = Column(String(42), nullable=False, index=True)
    title_hash = Column(String(66), nullable=False)
    proof_type = Column(Integer, nullable=False)
    reward_amount = Column(Text, nullable=False)
    deadline = Column(BigInteger, nullable=False)
    block_number = Column(BigInteger, nullable=False)
    tx_hash = Column(String(66), nullable=False)
    created_at = Column(Text, nullable=False, server_default=CREATED_AT_DEFAULT)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "address": self.address,
            "creator": self.creator,
            "title_hash": self.title_hash,
            "proof_type": self.proof_type,
            "reward_amount": self.reward_amount,
            "deadline": self.deadline,
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return f"<Bounty(id={self.id}, address={self.address})>"


# =============================================================
# 2. CLAIMS TABLE
# =============================================================

class Claim(Base):
    """
    Executor payout for a bounty.

    Source: BountyClaimed (any bounty clone)
    bounty_address is a logical reference, not a foreign key:
    a claim can be ingested before its bounty in the same cycle.
    """
    __tablename__ = "claims"
    __table_args__ = (
        UniqueConstraint("bounty_address", "executor", name="uq_claims_bounty_executor"),
        Index("ix_claims_executor", "executor"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    bounty_address = Column(String(42), nullable=False)
    executor = Column(String(42), nullable=False)
    payout = Column(Text, nullable=False)
    block_number = Column(BigInteger, nullable=False)
    tx_hash = Column(String(66), nullable=False)
    created_at = Column(Text, nullable=False, server_default=CREATED_AT_DEFAULT)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bounty_address": self.bounty_address,
            "executor": self.executor,
            "payout": self.payout,
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
            "created_at": self.created_at,
        }

    def __repr__(self) -> str:
        return f"<Claim(bounty={self.bounty_address}, executor={self.executor})>"


# =============================================================
# 3. WITHDRAWALS TABLE
# =============================================================

class Withdrawal(Base):
    """
    Creator reclaiming escrowed funds.

    Source: BountyWithdrawn (any bounty clone)
    Several rows per bounty are allowed, even within one
    transaction; a log is identified by (tx_hash, log_index).
    """
    __tablename__ = "withdrawals"
    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_withdrawals_tx_log"),
        Index("ix_withdrawals_bounty_address", "bounty_address"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    bounty_address = Column(String(42), nullable=False)
    creator = Column(String(42), nullable=False)
    amount = Column(Text, nullable=False)
    block_number = Column(BigInteger, nullable=False)
    tx_hash = Column(String(66), nullable=False)
    log_index = Column(Integer, nullable=False)
    created_at = Column(Text, nullable=False, server_default=CREATED_AT_DEFAULT)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bounty_address": self.bounty_address,
            "creator": self.creator,
            "amount": self.amount,
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
            "log_index": self.log_index,
            "created_at": self.created_at,
        }


# =============================================================
# 4. SYNC STATE TABLE
# =============================================================

class SyncState(Base):
    """Key/value store for ingestion progress."""
    __tablename__ = "sync_state"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=False)


# =============================================================
# 5. ID SEQUENCES TABLE
# =============================================================

class IdSequence(Base):
    """
    Named counter owned by the storage layer.

    next_value is read and bumped inside the same transaction
    as the row that consumes it.
    """
    __tablename__ = "id_sequences"

    name = Column(String(64), primary_key=True)
    next_value = Column(BigInteger, nullable=False, default=0)


__all__ = [
    "ProofType",
    "Bounty",
    "Claim",
    "Withdrawal",
    "SyncState",
    "IdSequence",
]
