"""Branch directory routes."""

from fastapi import APIRouter, Request
from sqlalchemy import select

from florist_ledger.core.config import settings
from florist_ledger.core.rate_limit import limiter
from florist_ledger.core.responses import list_response
from florist_ledger.db.session import DbSession
from florist_ledger.models.branch import Branch
from florist_ledger.schemas.stats import BranchResponse

router = APIRouter()


@router.get("")
@limiter.limit(settings.rate_limit_reads)
def list_branches(request: Request, db: DbSession, include_inactive: bool = False):
    stmt = select(Branch).order_by(Branch.name)
    if not include_inactive:
        stmt = stmt.where(Branch.active.is_(True))
    branches = db.scalars(stmt).all()
    return list_response([BranchResponse.model_validate(b).model_dump() for b in branches])
