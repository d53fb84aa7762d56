import logging

from sqlmodel import Session

from gatekeeper.db.crud import user as user_crud
from gatekeeper.db.models import UserCreate
from gatekeeper.db.session import create_db_and_tables, get_engine
from gatekeeper.utils.config import get_settings

logger = logging.getLogger(__name__)


def init_user(session: Session) -> None:
    settings = get_settings()
    if not user_crud.get_user_by_username(session=session, username=settings.FIRST_USER):
        user_in = UserCreate(
            username=settings.FIRST_USER,
            password=settings.FIRST_USER_PASS,
            group_id=settings.FIRST_USER_GROUP,
        )
        user_crud.create_user(session=session, user=user_in)
        logger.info("Created directory user %s", settings.FIRST_USER)


def init() -> None:
    engine = get_engine()
    create_db_and_tables(engine)
    with Session(engine) as session:
        init_user(session)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    logger.info("Creating initial data")
    init()
    logger.info("Initial data created")


if __name__ == "__main__":
    main()
