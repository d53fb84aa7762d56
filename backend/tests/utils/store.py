from typing import Any

from sqlalchemy.exc import OperationalError

from gatekeeper.db.models import TokenRecord


class BrokenStore:
    """Token store whose backend is down."""

    def upsert(self, username: str, **fields: Any) -> None:
        raise OperationalError("UPSERT", {}, Exception("database is locked"))

    def find(self, username: str) -> TokenRecord | None:
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    def delete(self, username: str) -> bool:
        raise OperationalError("DELETE", {}, Exception("database is locked"))
