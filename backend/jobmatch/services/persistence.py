from typing import Any

from sqlalchemy.orm import Session

from ..utils.error_handlers import PersistenceError


def dialect_insert(db: Session, model: Any) -> tuple[str, Any]:
    """
    Dialect-specific INSERT so upserts can be issued as a single conflict-aware statement.

    Returns ("sqlite" | "postgresql" | "mysql", insert_stmt).
    """
    name = db.get_bind().dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif name in {"mysql", "mariadb"}:
        from sqlalchemy.dialects.mysql import insert

        name = "mysql"
    else:
        raise PersistenceError(f"Atomic upsert is not supported on {name}")
    return name, insert(model)
