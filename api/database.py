from __future__ import annotations

from typing import Generator

from sqlalchemy.orm import Session

from ingestion.db.models import Base
from ingestion.db.session import get_engine, session_scope
from ingestion.repositories.platforms import seed_platforms


def init_db() -> None:
    # Local runs and tests; deployments apply the Alembic migrations.
    Base.metadata.create_all(bind=get_engine())
    with session_scope() as session:
        seed_platforms(session)


def session_dependency() -> Generator[Session, None, None]:
    with session_scope() as session:
        yield session
