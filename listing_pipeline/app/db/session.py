from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from listing_pipeline.app.db.models import Base


class Database:
    """Engine and session factory for one database URL."""

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.engine = create_engine(url, future=True, echo=echo, pool_pre_ping=True, connect_args=connect_args)
        self.SessionLocal = sessionmaker(
            bind=self.engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(settings.database_url)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_session(self) -> Generator[Session, None, None]:
        session = self.SessionLocal()
        try:
            yield session
        finally:
            session.close()
