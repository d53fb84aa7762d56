import logging
from dataclasses import dataclass

from fastapi import Response

from gatekeeper.db.models import TokenPayload
from gatekeeper.utils.auth import TokenIssuer
from gatekeeper.utils.config import Settings
from gatekeeper.utils.errors import AuthFailure

logger = logging.getLogger(__name__)

ACCESS_COOKIE_NAME = "access_token"


@dataclass(frozen=True)
class Rotated:
    token: str


@dataclass(frozen=True)
class Skipped:
    reason: str


RotationOutcome = Rotated | Skipped


class RefreshRotator:
    """
    Best-effort renewal of the caller's access token after a request.

    `rotate` never raises. Whatever goes wrong is logged and reported as
    `Skipped`, and the response it decorates is left alone.
    """

    def __init__(self, issuer: TokenIssuer):
        self.issuer = issuer

    def rotate(self, identity: TokenPayload) -> RotationOutcome:
        username = identity.username
        try:
            record = self.issuer.store.find(username)
            if record is None or record.refresh_token is None:
                return Skipped(f"no stored refresh token for {username}")
            result = self.issuer.rotate_access(username, record.refresh_token)
        except Exception as e:
            logger.warning("Access token rotation failed for %s: %s", username, e)
            return Skipped(str(e))
        if isinstance(result, AuthFailure):
            return Skipped(result.detail or result.kind.value)
        return Rotated(result.access_token)


def set_access_cookie(response: Response, access_token: str, settings: Settings) -> None:
    response.set_cookie(
        key=ACCESS_COOKIE_NAME,
        value=access_token,
        max_age=int(settings.access_ttl.total_seconds()),
        path=settings.ACCESS_COOKIE_PATH,
        httponly=True,
        secure=True,
        samesite="strict",
    )
