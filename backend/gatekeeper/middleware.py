import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any, Callable

from fastapi import Request, Response
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from gatekeeper.db.crud.token import TokenStore
from gatekeeper.db.models import TokenPayload
from gatekeeper.utils.clock import Clock
from gatekeeper.utils.config import Settings
from gatekeeper.utils.dependencies import (
    build_refresh_rotator,
    build_token_store,
    get_clock,
    get_session,
    get_settings,
    get_token_store,
)
from gatekeeper.utils.rotation import Rotated, RotationOutcome, Skipped, set_access_cookie

logger = logging.getLogger(__name__)


def _override(request: Request, dependency: Callable[..., Any]) -> Callable[..., Any] | None:
    return request.app.dependency_overrides.get(dependency)


def _resolve(request: Request, dependency: Callable[[], Any]) -> Any:
    # Honour app.dependency_overrides outside of FastAPI's own injection
    return (_override(request, dependency) or dependency)()


@contextmanager
def _session_scope(request: Request) -> Iterator[Session]:
    provided = _resolve(request, get_session)
    if not isinstance(provided, Generator):
        yield provided
        return
    try:
        yield next(provided)
    finally:
        provided.close()


def _token_store(request: Request, session: Session, settings: Settings) -> TokenStore:
    # An override of get_token_store receives the same arguments as the original
    factory = _override(request, get_token_store) or build_token_store
    return factory(session=session, settings=settings)


class RefreshTokenMiddleware(BaseHTTPMiddleware):
    """
    Renews the access token of every authenticated request.

    Runs once the handler is done, whether it returned a response, an error
    response or raised, as long as the access guard accepted the caller. The
    new token travels in the `access_token` cookie when there is a response
    to carry it. Rotation problems are logged and the handler's response goes
    out unchanged.

    Session, token store, settings and clock come from the same dependencies
    the routes use, including any `app.dependency_overrides`.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            response = await call_next(request)
        except Exception:
            identity = getattr(request.state, "identity", None)
            if identity is not None:
                await self._renew(request, identity)
            raise

        identity = getattr(request.state, "identity", None)
        if identity is None:
            return response

        outcome = await self._renew(request, identity)
        if isinstance(outcome, Rotated):
            set_access_cookie(response, outcome.token, _resolve(request, get_settings))
        return response

    async def _renew(self, request: Request, identity: TokenPayload) -> RotationOutcome:
        try:
            outcome = await run_in_threadpool(self._rotate, request, identity)
        except Exception as e:
            outcome = Skipped(str(e))
        if isinstance(outcome, Skipped):
            logger.info(
                "Access token for %s not renewed: %s", identity.username, outcome.reason
            )
        return outcome

    @staticmethod
    def _rotate(request: Request, identity: TokenPayload) -> RotationOutcome:
        settings: Settings = _resolve(request, get_settings)
        clock: Clock = _resolve(request, get_clock)
        with _session_scope(request) as session:
            store = _token_store(request, session, settings)
            return build_refresh_rotator(session, settings, clock, store).rotate(identity)
