import os
from collections.abc import Generator

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE", "test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("FIRST_USER", "admin")
os.environ.setdefault("FIRST_USER_PASS", "adminpass")

import fakeredis  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from gatekeeper.db.crud.audit import AuditLog  # noqa: E402
from gatekeeper.db.crud.token import SqlTokenStore  # noqa: E402
from gatekeeper.db.session import get_engine  # noqa: E402
from gatekeeper.initial_data import init  # noqa: E402
from gatekeeper.main import app  # noqa: E402
from gatekeeper.utils.auth import TokenIssuer  # noqa: E402
from gatekeeper.utils.config import Settings, get_settings  # noqa: E402
from gatekeeper.utils.dependencies import build_token_issuer  # noqa: E402
from gatekeeper.utils.tokens import TokenCodec  # noqa: E402
from tests.utils import FrozenClock  # noqa: E402
from tests.utils.auth import get_user_headers  # noqa: E402


@pytest.fixture(scope="module")
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def session() -> Generator[Session]:
    with Session(get_engine()) as db_session:
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise
        finally:
            db_session.close()


@pytest.fixture(scope="module")
def client() -> Generator:
    with TestClient(app) as c:
        yield c


# Fresh tables for each test class
@pytest.fixture(autouse=True, scope="class")
def setup() -> Generator:
    engine = get_engine()
    SQLModel.metadata.create_all(engine)
    init()
    yield
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def codec(settings: Settings, clock: FrozenClock) -> TokenCodec:
    return TokenCodec(settings, clock)


@pytest.fixture
def issuer(session: Session, settings: Settings, clock: FrozenClock) -> TokenIssuer:
    return build_token_issuer(session, settings, clock)


@pytest.fixture
def sql_store(session: Session) -> SqlTokenStore:
    return SqlTokenStore(session)


@pytest.fixture
def audit(session: Session, settings: Settings, clock: FrozenClock) -> AuditLog:
    return AuditLog(session, settings, clock)


@pytest.fixture
def redis_client() -> Generator:
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def user_headers(client: TestClient, session: Session) -> dict[str, str]:
    return get_user_headers(client=client, session=session)
