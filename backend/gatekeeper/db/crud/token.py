"""
Persistence of token records.

One record per username, written only through upserts. Neither backend takes
application-level locks: the SQL backend relies on a single
``INSERT ... ON CONFLICT`` statement and the Redis backend on a ``MULTI``
pipeline, so concurrent writers for the same user converge on the last write
and never leave a partial record.
"""

from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Protocol

import redis
from sqlalchemy import delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from gatekeeper.db.models import TokenRecord
from gatekeeper.utils import ensure_utc

TOKEN_FIELDS = (
    "access_token",
    "refresh_token",
    "expires_at_access",
    "expires_at_refresh",
    "group",
)
DATETIME_FIELDS = ("expires_at_access", "expires_at_refresh")
REDIS_KEY_PREFIX = "token_record:"


class TokenStore(Protocol):
    def upsert(self, username: str, **fields: Any) -> None: ...

    def find(self, username: str) -> TokenRecord | None: ...

    def delete(self, username: str) -> bool: ...


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - set(TOKEN_FIELDS)
    if unknown:
        raise ValueError(f"Unknown token record fields: {sorted(unknown)}")


def _build_record(username: str, values: dict[str, Any]) -> TokenRecord:
    data = {name: values.get(name) for name in TOKEN_FIELDS}
    for name in DATETIME_FIELDS:
        data[name] = ensure_utc(data[name])
    return TokenRecord(username=username, **data)


###
# SQL
###
def _dialect_insert(session: Session) -> Callable:
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert
    if dialect == "postgresql":
        return postgresql.insert
    raise NotImplementedError(f"Token record upsert is not supported on {dialect}")


class SqlTokenStore:
    def __init__(self, session: Session):
        self.session = session

    def upsert(self, username: str, **fields: Any) -> None:
        """Merge `fields` into the record for `username`, creating it if absent."""
        _check_fields(fields)
        insert = _dialect_insert(self.session)
        statement = insert(TokenRecord).values(username=username, **fields)
        if fields:
            statement = statement.on_conflict_do_update(
                index_elements=["username"], set_=fields
            )
        else:
            statement = statement.on_conflict_do_nothing(index_elements=["username"])
        try:
            self.session.connection().execute(statement)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def find(self, username: str) -> TokenRecord | None:
        statement = (
            select(TokenRecord)
            .where(TokenRecord.username == username)
            .execution_options(populate_existing=True)
        )
        record = self.session.exec(statement).one_or_none()
        if record is None:
            return None
        return _build_record(username, record.model_dump())

    def delete(self, username: str) -> bool:
        statement = delete(TokenRecord).where(TokenRecord.username == username)
        try:
            result = self.session.connection().execute(statement)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return result.rowcount > 0


###
# Redis
###
def _encode(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class RedisTokenStore:
    """
    Token records kept as one Redis hash per username.

    The key expires together with the refresh token, which is the longest
    lived part of the record. A key created by a write that carries no refresh
    expiry expires with its access token, or after `default_ttl` when that is
    missing too. The client must be created with ``decode_responses=True``.
    """

    def __init__(self, client: redis.Redis, default_ttl: timedelta = timedelta(hours=168)):
        self.client = client
        self.default_ttl = default_ttl

    @staticmethod
    def _key(username: str) -> str:
        return f"{REDIS_KEY_PREFIX}{username}"

    def upsert(self, username: str, **fields: Any) -> None:
        _check_fields(fields)
        key = self._key(username)
        mapping = {"username": username}
        mapping.update(
            {name: _encode(value) for name, value in fields.items() if value is not None}
        )
        cleared = [name for name, value in fields.items() if value is None]

        def write(pipe: redis.client.Pipeline) -> None:
            existed = pipe.exists(key)
            pipe.multi()
            pipe.hset(key, mapping=mapping)
            if cleared:
                pipe.hdel(key, *cleared)
            if fields.get("expires_at_refresh") is not None:
                pipe.expireat(key, fields["expires_at_refresh"])
            elif not existed:
                expires_at = fields.get("expires_at_access")
                pipe.expireat(key, expires_at or datetime.now(UTC) + self.default_ttl)

        # WATCH the key so a concurrent delete between EXISTS and MULTI retries the write
        self.client.transaction(write, key)

    def find(self, username: str) -> TokenRecord | None:
        data = self.client.hgetall(self._key(username))
        if not data:
            return None
        values: dict[str, Any] = dict(data)
        for name in DATETIME_FIELDS:
            if values.get(name):
                values[name] = datetime.fromisoformat(values[name])
        return _build_record(username, values)

    def delete(self, username: str) -> bool:
        return self.client.delete(self._key(username)) > 0
