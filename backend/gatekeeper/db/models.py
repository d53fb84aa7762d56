import enum
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel

###
# Utility Models
###


class ApplicationInfo(SQLModel):
    app_name: str
    version: str


class HealthCheck(SQLModel):
    status: str
    timestamp: datetime


class MessageResponse(SQLModel):
    message: str


###
# Token
###
class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class Token(SQLModel):
    token_type: str = "bearer"


class AccessToken(Token):
    access_token: str


class TokenPair(AccessToken):
    refresh_token: str


class LoginRequest(SQLModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshRequest(SQLModel):
    username: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)


class TokenPayload(SQLModel):
    """
    Claims carried by every signed token.

    `type` is the only thing telling an access token from a refresh token,
    both are signed with the same key.
    """

    sub: str
    username: str
    group: str = ""
    type: TokenKind
    jti: str = Field(default_factory=lambda: str(uuid4()))
    iat: int | None = None
    exp: int | None = None


class TokenRecord(SQLModel, table=True):
    """
    The stored session for one user.

    This is the class representing the token_record table in the database.
    Exactly one row per username; it is only ever written through an upsert.

    - username
    - access_token
    - refresh_token
    - expires_at_access
    - expires_at_refresh
    - group
    """

    __tablename__ = "token_record"

    username: str = Field(primary_key=True, index=True)
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at_access: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    expires_at_refresh: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    group: str | None = None


###
# User
###
class UserBase(SQLModel):
    username: str = Field(unique=True, index=True)
    group_id: str = ""


class UserState(SQLModel):
    is_disabled: bool = Field(default=False)


class UserCreate(UserBase, UserState):
    # username
    # group_id
    # is_disabled
    password: str


class User(UserBase, UserState, table=True):
    """
    Directory entry used to verify credentials.

    This should never be part of a serialized response.

    - user_id
    - username
    - group_id
    - is_disabled
    - hashed_password
    """

    user_id: str = Field(
        default_factory=lambda: str(uuid4()), primary_key=True, index=True
    )
    hashed_password: str


###
# Audit
###
class AuditLevel(str, enum.Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class AuditEntry(SQLModel, table=True):
    __tablename__ = "audit_entry"

    id: int | None = Field(default=None, primary_key=True)
    level: AuditLevel
    message: str
    context: str | None = None
    user: str | None = Field(default=None, index=True)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(DateTime(timezone=True), index=True),
    )
    expires_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


class AuditResponse(SQLModel):
    entries: list[AuditEntry]
    count: int
