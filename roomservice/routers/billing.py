from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from roomservice.core.database import get_db
from roomservice.core.errors import LifecycleError
from roomservice.deps import require_admin, to_http_exception
from roomservice.services.billing import get_billing_rows, get_unbilled_summary

router = APIRouter(prefix="/api/admin/billing", tags=["billing"], dependencies=[Depends(require_admin)])


@router.get("/summary")
def billing_summary(db: Session = Depends(get_db)):
    return [asdict(summary) for summary in get_unbilled_summary(db)]


@router.get("/rows")
def billing_rows(status: Optional[str] = None, db: Session = Depends(get_db)):
    try:
        rows = get_billing_rows(db, status=status)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [asdict(row) for row in rows]
