import logging

from gatekeeper.db.models import TokenKind, TokenPayload
from gatekeeper.utils.errors import AuthErrorKind, AuthFailure
from gatekeeper.utils.tokens import TokenCodec

logger = logging.getLogger(__name__)


class AccessGuard:
    """
    Per-request check of the Authorization header.

    Purely in-memory: parses the bearer header, verifies the token and makes
    sure it is an access token. Any doubt rejects the request.
    """

    def __init__(self, codec: TokenCodec):
        self.codec = codec

    def authorize(self, header_value: str | None) -> TokenPayload | AuthFailure:
        if not header_value:
            logger.warning("Access attempt without an authentication token.")
            return AuthFailure(AuthErrorKind.MISSING_TOKEN)

        parts = header_value.split(" ")
        if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
            logger.warning("Malformed Authorization header.")
            return AuthFailure(AuthErrorKind.MALFORMED_TOKEN, "expected 'Bearer <token>'")

        payload = self.codec.verify(parts[1])
        if isinstance(payload, AuthFailure):
            logger.warning("Rejected token: %s", payload.detail)
            return payload

        if payload.type is TokenKind.REFRESH:
            logger.warning("Refresh token presented as access token by %s", payload.username)
            return AuthFailure(AuthErrorKind.WRONG_TOKEN_TYPE, payload.username)
        if payload.type is not TokenKind.ACCESS:
            return AuthFailure(AuthErrorKind.WRONG_TOKEN_TYPE, payload.username)

        logger.debug("Authenticated %s", payload.username)
        return payload
