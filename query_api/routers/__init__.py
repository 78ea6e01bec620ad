"""
Query API Routers.
"""
from . import bounties, claims, health

__all__ = ["bounties", "claims", "health"]
