import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from query_api.routers.deps import get_db
from query_api.services import BountyQueryService
from query_api.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("", response_model=HealthResponse)
def get_health(request: Request, db: Session = Depends(get_db)):
    """
    Liveness plus sync progress when the sync engine runs in-process.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    return HealthResponse(
        ok=True,
        cursor=BountyQueryService(db).get_cursor(),
        sync_enabled=scheduler is not None,
        sync=scheduler.status() if scheduler is not None else None,
    )
