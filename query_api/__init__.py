"""
Query API.

Read-only HTTP views over the bounty index. The sync engine is the
only writer; this package never opens a write transaction.
"""
from query_api.main import create_app

__all__ = ["create_app"]
