from typing import List

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session

from query_api.routers.deps import get_db
from query_api.services import BountyQueryService
from query_api.schemas import BountyResponse, ClaimResponse, ErrorResponse

router = APIRouter(prefix="/bounties", tags=["Bounties"])

NOT_FOUND = {404: {"model": ErrorResponse}}

@router.get("", response_model=List[BountyResponse])
def list_bounties(db: Session = Depends(get_db)):
    """
    All bounties, newest first, with their winner counts.
    """
    return BountyQueryService(db).list_bounties()

@router.get("/{bounty_id}", response_model=BountyResponse, responses=NOT_FOUND)
def get_bounty(bounty_id: int, db: Session = Depends(get_db)):
    bounty = BountyQueryService(db).get_bounty(bounty_id)
    if bounty is None:
        raise HTTPException(status_code=404, detail="Not found")
    return bounty

@router.get("/{bounty_id}/claims", response_model=List[ClaimResponse], responses=NOT_FOUND)
def get_bounty_claims(bounty_id: int, db: Session = Depends(get_db)):
    """
    Claims for one bounty, newest first.
    """
    claims = BountyQueryService(db).claims_for_bounty(bounty_id)
    if claims is None:
        raise HTTPException(status_code=404, detail="Bounty not found")
    return claims
