from functools import lru_cache

import sqlalchemy.exc as exc
from sqlalchemy import Engine
from sqlmodel import SQLModel, create_engine

from gatekeeper.utils.config import get_settings


@lru_cache
def get_engine() -> Engine:
    url = get_settings().database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    try:
        return create_engine(url, pool_pre_ping=True, connect_args=connect_args)
    except exc.ArgumentError:
        print("Error creating engine:", url)
        raise


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)
