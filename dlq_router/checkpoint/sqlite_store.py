"""SQLite-backed checkpoint store."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..exceptions import CheckpointStoreError
from .schema import Base, Checkpoint

logger = logging.getLogger(__name__)


def init_database(db_path: str) -> sessionmaker[Any]:
    """Initialize the checkpoint database and return a session factory."""
    engine_kwargs: dict[str, Any] = {}
    if db_path == ":memory:":
        # One shared connection, otherwise every session sees a fresh database.
        engine_kwargs["poolclass"] = StaticPool
    else:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
        **engine_kwargs,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """Commit on success, roll back on any exception."""
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


class SqliteCheckpointStore:
    """Stores one row per output in a local SQLite database.

    Each ``put`` runs in its own transaction, so a returned call means the
    offset is on disk.
    """

    def __init__(self, session_factory: sessionmaker[Any]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_path(cls, db_path: str) -> "SqliteCheckpointStore":
        try:
            session_factory = init_database(db_path)
        except SQLAlchemyError as e:
            raise CheckpointStoreError(f"Cannot open checkpoint database {db_path}: {e}") from e
        logger.info("Using SQLite checkpoint store at %s", db_path)
        return cls(session_factory)

    def get(self, key: str) -> Optional[int]:
        try:
            with self._session_factory() as session:
                row = session.get(Checkpoint, key)
                return row.offset if row is not None else None
        except SQLAlchemyError as e:
            raise CheckpointStoreError(f"Failed to read checkpoint for {key}: {e}") from e

    def put(self, key: str, value: int) -> None:
        try:
            with self._session_factory() as session, transaction(session):
                row = session.get(Checkpoint, key)
                if row is None:
                    session.add(Checkpoint(output_name=key, offset=value))
                else:
                    row.offset = value
        except SQLAlchemyError as e:
            raise CheckpointStoreError(f"Failed to write checkpoint for {key}: {e}") from e
