from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from query_api.routers.deps import get_db
from query_api.services import BountyQueryService
from query_api.schemas import ClaimResponse

router = APIRouter(prefix="/claims", tags=["Claims"])

@router.get("/{wallet}", response_model=List[ClaimResponse])
def get_wallet_claims(wallet: str, db: Session = Depends(get_db)):
    """
    Claims paid to a wallet (address match is case-insensitive).
    """
    return BountyQueryService(db).claims_for_wallet(wallet)
