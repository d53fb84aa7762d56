from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Header, Query, Request
from sqlmodel import Session

from gatekeeper.db.crud.audit import AuditLog
from gatekeeper.db.crud.token import RedisTokenStore, SqlTokenStore, TokenStore
from gatekeeper.db.crud.user import SqlUserDirectory
from gatekeeper.db.models import AuditLevel, TokenPayload
from gatekeeper.db.session import get_engine
from gatekeeper.utils.auth import CredentialVerifier, TokenIssuer
from gatekeeper.utils.clock import Clock, SystemClock
from gatekeeper.utils.config import Settings, get_settings
from gatekeeper.utils.errors import AuthFailure, raise_for_failure
from gatekeeper.utils.guard import AccessGuard
from gatekeeper.utils.redis_client import get_redis_client
from gatekeeper.utils.rotation import RefreshRotator
from gatekeeper.utils.tokens import TokenCodec


def get_session() -> Generator[Session]:
    with Session(get_engine()) as session:
        yield session


def get_clock() -> Clock:
    return SystemClock()


def build_token_store(session: Session, settings: Settings) -> TokenStore:
    if settings.TOKEN_STORE == "redis":
        return RedisTokenStore(get_redis_client(settings), default_ttl=settings.refresh_ttl)
    return SqlTokenStore(session)


def build_token_issuer(
    session: Session,
    settings: Settings,
    clock: Clock,
    store: TokenStore | None = None,
) -> TokenIssuer:
    return TokenIssuer(
        verifier=CredentialVerifier(SqlUserDirectory(session)),
        codec=TokenCodec(settings, clock),
        store=store if store is not None else build_token_store(session, settings),
        audit=AuditLog(session, settings, clock),
        settings=settings,
        clock=clock,
    )


def build_refresh_rotator(
    session: Session,
    settings: Settings,
    clock: Clock,
    store: TokenStore | None = None,
) -> RefreshRotator:
    return RefreshRotator(build_token_issuer(session, settings, clock, store))


def get_token_store(
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TokenStore:
    return build_token_store(session, settings)


def get_token_codec(
    settings: Annotated[Settings, Depends(get_settings)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> TokenCodec:
    return TokenCodec(settings, clock)


def get_token_issuer(
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    clock: Annotated[Clock, Depends(get_clock)],
    store: Annotated[TokenStore, Depends(get_token_store)],
) -> TokenIssuer:
    return build_token_issuer(session, settings, clock, store)


def get_access_guard(
    codec: Annotated[TokenCodec, Depends(get_token_codec)],
) -> AccessGuard:
    return AccessGuard(codec)


def get_current_identity(
    request: Request,
    guard: Annotated[AccessGuard, Depends(get_access_guard)],
    authorization: Annotated[str | None, Header()] = None,
) -> TokenPayload:
    """
    Gate a route behind a valid access token.

    The decoded payload is also left on `request.state` so the refresh
    middleware can renew the caller's token once the handler is done.
    """
    result = guard.authorize(authorization)
    if isinstance(result, AuthFailure):
        raise_for_failure(result)
    request.state.identity = result
    return result


def get_audit_log(
    session: Annotated[Session, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> AuditLog:
    return AuditLog(session, settings, clock)


class AuditQueryParams:
    """Filters for searching the audit trail."""

    def __init__(
        self,
        start_date: Annotated[
            str | None,
            Query(description="Start date filter", pattern=r"^\d{4}-\d{2}-\d{2}$"),
        ] = None,
        end_date: Annotated[
            str | None,
            Query(description="End date filter", pattern=r"^\d{4}-\d{2}-\d{2}$"),
        ] = None,
        level: Annotated[list[AuditLevel], Query()] = [  # noqa: B006
            AuditLevel.INFO,
            AuditLevel.WARN,
            AuditLevel.ERROR,
        ],
        offset: int = 0,
        limit: Annotated[int, Query(le=1000)] = 100,
    ):
        self.start_date = start_date
        self.end_date = end_date
        self.level = level
        self.offset = offset
        self.limit = limit
