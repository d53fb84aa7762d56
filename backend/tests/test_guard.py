from datetime import timedelta

import pytest

from gatekeeper.db.models import TokenKind, TokenPayload
from gatekeeper.utils.config import Settings
from gatekeeper.utils.errors import AuthErrorKind, AuthFailure
from gatekeeper.utils.guard import AccessGuard
from gatekeeper.utils.tokens import TokenCodec
from tests.utils import FrozenClock


def sign(codec: TokenCodec, kind: TokenKind, ttl: timedelta = timedelta(minutes=15)) -> str:
    payload = TokenPayload(sub="user-1", username="alice", group="admissions", type=kind)
    return codec.sign(payload, ttl).token


class TestAccessGuard:
    @pytest.mark.parametrize("header", [None, ""])
    def test_missing_header(self, codec: TokenCodec, header: str | None) -> None:
        result = AccessGuard(codec).authorize(header)
        assert isinstance(result, AuthFailure)
        assert result.kind is AuthErrorKind.MISSING_TOKEN

    @pytest.mark.parametrize(
        "header",
        ["Token abc", "Bearer", "Bearer ", "bearer abc", "Bearer abc def", "Bearer  abc"],
    )
    def test_malformed_header(self, codec: TokenCodec, header: str) -> None:
        result = AccessGuard(codec).authorize(header)
        assert isinstance(result, AuthFailure)
        assert result.kind is AuthErrorKind.MALFORMED_TOKEN

    def test_garbage_token(self, codec: TokenCodec) -> None:
        result = AccessGuard(codec).authorize("Bearer garbage")
        assert isinstance(result, AuthFailure)
        assert result.kind is AuthErrorKind.MALFORMED_TOKEN

    def test_expired_token(self, settings: Settings) -> None:
        clock = FrozenClock()
        codec = TokenCodec(settings, clock)
        clock.advance(timedelta(hours=-1))
        token = sign(codec, TokenKind.ACCESS, timedelta(minutes=15))
        clock.advance(timedelta(hours=1))

        result = AccessGuard(codec).authorize(f"Bearer {token}")
        assert isinstance(result, AuthFailure)
        assert result.kind is AuthErrorKind.EXPIRED_TOKEN

    def test_refresh_token_is_rejected(self, codec: TokenCodec) -> None:
        token = sign(codec, TokenKind.REFRESH, timedelta(hours=1))
        # The codec alone is happy with it
        assert isinstance(codec.verify(token), TokenPayload)

        result = AccessGuard(codec).authorize(f"Bearer {token}")
        assert isinstance(result, AuthFailure)
        assert result.kind is AuthErrorKind.WRONG_TOKEN_TYPE

    def test_access_token_is_authorized(self, codec: TokenCodec) -> None:
        token = sign(codec, TokenKind.ACCESS)
        result = AccessGuard(codec).authorize(f"Bearer {token}")
        assert isinstance(result, TokenPayload)
        assert result.username == "alice"
        assert result.type is TokenKind.ACCESS
