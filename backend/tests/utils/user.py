from sqlmodel import Session

from gatekeeper.db import models
from gatekeeper.db.crud import user as user_crud
from tests.utils import random_lower_string

TEST_USERS = {
    "alice": {"group_id": "admissions", "is_disabled": False},
    "bob": {"group_id": "records", "is_disabled": False},
    "coco": {"group_id": "records", "is_disabled": True},
}


def create_random_user(
    session: Session,
    username: str | None = None,
    password: str | None = None,
    group_id: str = "staff",
    is_disabled: bool = False,
) -> models.User:
    user_in = models.UserCreate(
        username=username or random_lower_string(),
        password=password or random_lower_string(),
        group_id=group_id,
        is_disabled=is_disabled,
    )
    return user_crud.create_user(session=session, user=user_in)


def create_test_user(session: Session, username: str, password: str) -> models.User:
    user_data = TEST_USERS[username]
    return create_random_user(
        session=session,
        username=username,
        password=password,
        group_id=user_data["group_id"],
        is_disabled=user_data["is_disabled"],
    )
