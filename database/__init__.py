"""
Database Package Initialization.

============================================================
BOUNTY INDEX PERSISTENCE LAYER
============================================================

Persistent store for the bounty index: four tables written
only by the event sync engine, plus the id sequence table.

REQUIRED:
- Every insert is idempotent (replaying a log is a no-op)
- Every write is logged with structured format
- Every failure raises hard exceptions
- All transactions are explicit with commit/rollback

============================================================
"""

# Core engine and session management
from .engine import (
    # Declarative base
    Base,

    # Engine creation
    create_database_engine,
    get_engine,
    reset_engine,

    # Session management
    get_session,
    get_session_factory,
    transaction_scope,

    # Database initialization
    initialize_database,
    verify_required_tables,
    get_table_row_counts,

    # Constants
    DEFAULT_DATABASE_URL,
    REQUIRED_TABLES,

    # Exceptions
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)

# ORM Models
from .models import (
    ProofType,
    Bounty,
    Claim,
    Withdrawal,
    SyncState,
    IdSequence,
)

# Idempotent persistence functions
from .persistence import (
    next_sequence_value,
    insert_bounty,
    insert_claim,
    insert_withdrawal,
    persist_bounties,
    persist_claims,
    persist_withdrawals,
    get_sync_value,
    set_sync_value,
)


# =============================================================
# PACKAGE VERSION
# =============================================================

__version__ = "1.0.0"


# =============================================================
# ALL EXPORTS
# =============================================================

__all__ = [
    # Engine
    "Base",
    "create_database_engine",
    "get_engine",
    "reset_engine",
    "get_session",
    "get_session_factory",
    "transaction_scope",
    "initialize_database",
    "verify_required_tables",
    "get_table_row_counts",
    "DEFAULT_DATABASE_URL",
    "REQUIRED_TABLES",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",

    # Models
    "ProofType",
    "Bounty",
    "Claim",
    "Withdrawal",
    "SyncState",
    "IdSequence",

    # Persistence
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
