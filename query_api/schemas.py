"""
Pydantic schemas for Query API responses.

Token amounts stay decimal strings; uint256 values do not fit a
JSON number safely.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict

# =======================
# 1. BOUNTIES
# =======================

class BountyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    address: str
    creator: str
    title_hash: str
    proof_type: int
    reward_amount: str
    deadline: int
    block_number: int
    tx_hash: str
    created_at: str
    winners_count: int

# =======================
# 2. CLAIMS
# =======================

class ClaimResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    bounty_address: str
    executor: str
    payout: str
    block_number: int
    tx_hash: str
    created_at: str

# =======================
# 3. HEALTH
# =======================

class HealthResponse(BaseModel):
    ok: bool
    cursor: Optional[int] = None
    sync_enabled: bool = False
    sync: Optional[Dict[str, Any]] = None

class ErrorResponse(BaseModel):
    error: str
