import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, desc, select

from gatekeeper.db.models import AuditEntry, AuditLevel
from gatekeeper.utils.clock import Clock
from gatekeeper.utils.config import Settings

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    AuditLevel.DEBUG: logging.DEBUG,
    AuditLevel.INFO: logging.INFO,
    AuditLevel.WARN: logging.WARNING,
    AuditLevel.ERROR: logging.ERROR,
}


class AuditLog:
    """
    Authentication audit trail.

    Every entry goes to the regular logger and to the audit_entry table.
    Recording is fire-and-forget: a failed write is logged and dropped, it
    never reaches the operation being audited.
    """

    def __init__(self, session: Session, settings: Settings, clock: Clock):
        self.session = session
        self.settings = settings
        self.clock = clock

    def record(
        self,
        level: AuditLevel,
        message: str,
        context: str,
        user: str | None = None,
    ) -> None:
        logger.log(LOG_LEVELS[level], "[%s] %s", context, message)
        now = self.clock.now()
        expiration = self.settings.log_expiration
        entry = AuditEntry(
            level=level,
            message=message,
            context=context,
            user=user,
            timestamp=now,
            expires_at=now + expiration if expiration else None,
        )
        try:
            self.session.add(entry)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning("Could not persist audit entry: %s", e)


def purge_expired_entries(session: Session, now: datetime) -> int:
    """Delete audit entries whose retention has run out."""
    statement = delete(AuditEntry).where(
        AuditEntry.expires_at.is_not(None),  # type: ignore[union-attr]
        AuditEntry.expires_at <= now,  # type: ignore[operator]
    )
    result = session.connection().execute(statement)
    session.commit()
    return result.rowcount


def get_entries(
    session: Session,
    start: datetime | None = None,
    end: datetime | None = None,
    levels: Sequence[AuditLevel] | None = None,
    offset: int = 0,
    limit: int = 100,
) -> Sequence[AuditEntry]:
    """Audit entries within [start, end] at the given levels, newest first."""
    statement = select(AuditEntry)
    if start:
        statement = statement.where(AuditEntry.timestamp >= start)
    if end:
        statement = statement.where(AuditEntry.timestamp <= end)
    if levels:
        statement = statement.where(AuditEntry.level.in_(levels))  # type: ignore[attr-defined]
    statement = statement.order_by(desc(AuditEntry.timestamp)).offset(offset).limit(limit)
    return session.exec(statement).all()
