from sqlmodel import Session, select

from gatekeeper.db.models import User, UserCreate
from gatekeeper.utils import auth


def create_user(session: Session, user: UserCreate) -> User:
    db_user = User.model_validate(
        user, update={"hashed_password": auth.get_password_hash(user.password)}
    )
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    return db_user


def get_user_by_username(session: Session, username: str) -> User | None:
    return session.exec(select(User).where(User.username == username)).one_or_none()


class SqlUserDirectory:
    """Read-only view of the user table used for credential checks."""

    def __init__(self, session: Session):
        self.session = session

    def find_by_username(self, username: str) -> User | None:
        return get_user_by_username(self.session, username)
