from typing import Annotated

from fastapi import APIRouter, Depends
from sqlmodel import Session

from gatekeeper.db import models
from gatekeeper.db.crud import audit as audit_crud
from gatekeeper.db.crud.audit import AuditLog
from gatekeeper.utils import convert_dates_to_range
from gatekeeper.utils.dependencies import (
    AuditQueryParams,
    get_audit_log,
    get_current_identity,
    get_session,
)

router = APIRouter(
    prefix="/log",
    tags=["log"],
    responses={401: {"description": "Not authenticated"}},
)


@router.get("/")
def get_audit_entries(
    identity: Annotated[models.TokenPayload, Depends(get_current_identity)],
    session: Annotated[Session, Depends(get_session)],
    audit: Annotated[AuditLog, Depends(get_audit_log)],
    params: Annotated[AuditQueryParams, Depends()],
) -> models.AuditResponse:
    """
    Search the audit trail.

    Dates are whole UTC days. A start date alone covers that single day.
    The search itself is audited.
    """
    start, end = convert_dates_to_range(params.start_date, params.end_date)
    levels = ", ".join(level.value for level in params.level)
    audit.record(
        models.AuditLevel.INFO,
        f"Audit search by {identity.username}: levels {levels}, "
        f"from {params.start_date or '-'} to {params.end_date or '-'}",
        "AuditSearch",
        user=identity.username,
    )
    entries = audit_crud.get_entries(
        session=session,
        start=start,
        end=end,
        levels=params.level,
        offset=params.offset,
        limit=params.limit,
    )
    return models.AuditResponse(entries=list(entries), count=len(entries))
