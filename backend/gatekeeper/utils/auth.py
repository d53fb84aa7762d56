import logging
import secrets
from datetime import datetime
from functools import cache
from typing import TYPE_CHECKING, Protocol

from pwdlib import PasswordHash
from pwdlib.exceptions import UnknownHashError
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from gatekeeper.db import models
from gatekeeper.db.models import AuditLevel, TokenKind
from gatekeeper.utils.clock import Clock
from gatekeeper.utils.config import Settings
from gatekeeper.utils.errors import AuthErrorKind, AuthFailure
from gatekeeper.utils.tokens import SignedToken, TokenCodec

if TYPE_CHECKING:
    from gatekeeper.db.crud.audit import AuditLog
    from gatekeeper.db.crud.token import TokenStore

logger = logging.getLogger(__name__)

password_hash = PasswordHash.recommended()
STORAGE_ERRORS = (SQLAlchemyError, RedisError)
AUDIT_CONTEXT = "TokenIssuer"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hashed version."""
    try:
        return password_hash.verify(plain_password, hashed_password)
    except UnknownHashError:
        return False


def get_password_hash(password: str) -> str:
    """Hash the given password."""
    return password_hash.hash(password)


@cache
def _dummy_hash() -> str:
    return get_password_hash(secrets.token_urlsafe(32))


class UserDirectory(Protocol):
    def find_by_username(self, username: str) -> models.User | None: ...


class CredentialVerifier:
    def __init__(self, directory: UserDirectory):
        self.directory = directory

    def authenticate(self, username: str, password: str) -> models.User | AuthFailure:
        """
        Authenticate user by username and password.

        Unknown users, disabled users and wrong passwords all produce the same
        INVALID_CREDENTIALS failure. Unknown users still pay for a hash
        verification so the failure paths take the same time.
        """
        user = self.directory.find_by_username(username)
        if user is None:
            verify_password(password, _dummy_hash())
            return AuthFailure(AuthErrorKind.INVALID_CREDENTIALS, "unknown user")
        if not verify_password(password, user.hashed_password):
            return AuthFailure(AuthErrorKind.INVALID_CREDENTIALS, "wrong password")
        if user.is_disabled:
            return AuthFailure(AuthErrorKind.INVALID_CREDENTIALS, "user is disabled")
        return user


class TokenIssuer:
    """
    Mints, persists and rotates access/refresh token pairs.

    A user has one active session: a refresh token is honoured only while it
    verifies, matches the stored copy exactly and is within the stored expiry
    instant, so a new login ends the previous session.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        codec: TokenCodec,
        store: "TokenStore",
        audit: "AuditLog",
        settings: Settings,
        clock: Clock,
    ):
        self.verifier = verifier
        self.codec = codec
        self.store = store
        self.audit = audit
        self.settings = settings
        self.clock = clock

    def mint(
        self, subject: str, username: str, group: str, kind: TokenKind
    ) -> SignedToken:
        if kind is TokenKind.ACCESS:
            ttl = self.settings.access_ttl
        elif kind is TokenKind.REFRESH:
            ttl = self.settings.refresh_ttl
        else:
            raise ValueError("Invalid token type")
        payload = models.TokenPayload(sub=subject, username=username, group=group, type=kind)
        return self.codec.sign(payload, ttl)

    def login(self, username: str, password: str) -> models.TokenPair | AuthFailure:
        """
        Verify credentials and issue a fresh access/refresh pair.

        Args:
            username (str): The presented username.
            password (str): The presented password.
        Returns:
            models.TokenPair | AuthFailure: The new tokens, or INVALID_CREDENTIALS
            / STORAGE_FAILURE.
        """
        try:
            result = self.verifier.authenticate(username, password)
        except STORAGE_ERRORS as e:
            return self._storage_failure(username, "login", e)
        if isinstance(result, AuthFailure):
            self.audit.record(
                AuditLevel.WARN,
                f"Failed login for {username}: {result.detail}",
                AUDIT_CONTEXT,
                user=username,
            )
            return result

        user = result
        access = self.mint(user.user_id, user.username, user.group_id, TokenKind.ACCESS)
        refresh = self.mint(user.user_id, user.username, user.group_id, TokenKind.REFRESH)
        try:
            self.store.upsert(
                user.username,
                access_token=access.token,
                expires_at_access=access.expires_at,
                refresh_token=refresh.token,
                expires_at_refresh=refresh.expires_at,
                group=user.group_id,
            )
        except STORAGE_ERRORS as e:
            return self._storage_failure(user.username, "login", e)

        self.audit.record(
            AuditLevel.INFO,
            f"User {user.username} authenticated and assigned to group {user.group_id}",
            AUDIT_CONTEXT,
            user=user.username,
        )
        return models.TokenPair(access_token=access.token, refresh_token=refresh.token)

    def rotate_access(
        self, username: str, presented_refresh: str
    ) -> models.AccessToken | AuthFailure:
        """
        Issue a new access token from the stored refresh token.

        The refresh fields of the record are left untouched.
        """
        payload = self.codec.verify(presented_refresh)
        if isinstance(payload, AuthFailure):
            return self._reject_refresh(username, payload.detail)
        if payload.type is not TokenKind.REFRESH:
            return self._reject_refresh(username, "presented token is not a refresh token")
        if payload.username != username:
            return self._reject_refresh(username, "refresh token belongs to another user")

        try:
            record = self.store.find(username)
        except STORAGE_ERRORS as e:
            return self._reject_refresh(username, f"token store unavailable: {e}")
        if record is None:
            return self._reject_refresh(username, "no stored session")
        # Only the latest refresh token is accepted, and only until its stored expiry
        if not self.is_current(record, TokenKind.REFRESH, presented_refresh):
            return self._reject_refresh(
                username, "refresh token is not the active one or has expired"
            )

        access = self.mint(
            payload.sub, username, record.group or payload.group, TokenKind.ACCESS
        )
        try:
            self.store.upsert(
                username,
                access_token=access.token,
                expires_at_access=access.expires_at,
            )
        except STORAGE_ERRORS as e:
            return self._reject_refresh(username, f"token store unavailable: {e}")

        self.audit.record(
            AuditLevel.INFO, f"Access token renewed for {username}", AUDIT_CONTEXT, user=username
        )
        return models.AccessToken(access_token=access.token)

    def logout(self, username: str) -> bool | AuthFailure:
        """Drop the stored session for `username`."""
        try:
            removed = self.store.delete(username)
        except STORAGE_ERRORS as e:
            return self._storage_failure(username, "logout", e)
        if not removed:
            self.audit.record(
                AuditLevel.WARN,
                f"No stored session to close for {username}",
                AUDIT_CONTEXT,
                user=username,
            )
            return AuthFailure(AuthErrorKind.TOKEN_NOT_FOUND, username)
        self.audit.record(
            AuditLevel.INFO, f"Session closed for {username}", AUDIT_CONTEXT, user=username
        )
        return True

    def is_current(self, record: models.TokenRecord, kind: TokenKind, token: str) -> bool:
        """
        Whether `token` is the latest token of `kind` in `record` and its stored
        expiry has not passed.

        Refresh tokens are held to this on every rotation. Access tokens are
        not: the guard accepts any validly signed access token, since each
        authorized request replaces the stored copy. For ACCESS this only
        reports whether the token is still the most recent one.
        """
        if kind is TokenKind.ACCESS:
            stored, expires_at = record.access_token, record.expires_at_access
        elif kind is TokenKind.REFRESH:
            stored, expires_at = record.refresh_token, record.expires_at_refresh
        else:
            raise ValueError("Invalid token type")
        if stored is None or not secrets.compare_digest(stored, token):
            return False
        return self._before(expires_at)

    def _before(self, expires_at: datetime | None) -> bool:
        return expires_at is not None and self.clock.now() < expires_at

    def _reject_refresh(self, username: str, reason: str) -> AuthFailure:
        self.audit.record(
            AuditLevel.WARN,
            f"Token renewal failed for {username}: {reason}",
            AUDIT_CONTEXT,
            user=username,
        )
        return AuthFailure(AuthErrorKind.INVALID_REFRESH, reason)

    def _storage_failure(self, username: str, action: str, error: Exception) -> AuthFailure:
        logger.error("Token store failure during %s for %s: %s", action, username, error)
        self.audit.record(
            AuditLevel.ERROR,
            f"Token store failure during {action} for {username}",
            AUDIT_CONTEXT,
            user=username,
        )
        return AuthFailure(AuthErrorKind.STORAGE_FAILURE, str(error))
