import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError

from gatekeeper.db.models import TokenPayload
from gatekeeper.utils.clock import Clock
from gatekeeper.utils.config import Settings
from gatekeeper.utils.errors import AuthErrorKind, AuthFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedToken:
    token: str
    expires_at: datetime


class TokenCodec:
    """
    Signs and verifies JWTs carrying a `TokenPayload`.

    Expiry is checked against the injected clock rather than PyJWT's own,
    so the embedded claim and the stored expiry instant share one notion of
    "now".
    """

    def __init__(self, settings: Settings, clock: Clock):
        self.settings = settings
        self.clock = clock

    def sign(self, payload: TokenPayload, ttl: timedelta) -> SignedToken:
        """
        Create a signed token for `payload` that expires after `ttl`.

        Args:
            payload (TokenPayload): Claims to embed. `iat` and `exp` are overwritten.
            ttl (timedelta): Lifetime of the token.
        Returns:
            SignedToken: The encoded token and its expiry instant, to be stored
            as the authoritative expiry.
        """
        now = self.clock.now()
        expires_at = now + ttl
        claims = payload.model_dump(mode="json", exclude={"iat", "exp"})
        claims["iat"] = int(now.timestamp())
        claims["exp"] = int(expires_at.timestamp())
        token = jwt.encode(
            claims,
            key=self.settings.get_signing_key(),
            algorithm=self.settings.ALGORITHM,
        )
        return SignedToken(token=token, expires_at=expires_at)

    def verify(self, token: str) -> TokenPayload | AuthFailure:
        """
        Check the signature and structure of `token`, then its expiry claim.

        Signature or shape problems are reported as MALFORMED_TOKEN before the
        expiry is looked at, so a tampered expired token is malformed, not
        expired.
        """
        try:
            claims = jwt.decode(
                token,
                self.settings.get_verification_key(),
                algorithms=[self.settings.ALGORITHM],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["sub", "type", "exp"],
                },
            )
            payload = TokenPayload.model_validate(claims)
        except (InvalidTokenError, ValidationError) as e:
            logger.debug("Rejected malformed token: %s", e)
            return AuthFailure(AuthErrorKind.MALFORMED_TOKEN, str(e))
        if payload.exp is None or payload.exp <= self.clock.now().timestamp():
            return AuthFailure(
                AuthErrorKind.EXPIRED_TOKEN, f"Token for {payload.username} expired"
            )
        return payload
