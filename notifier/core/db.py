from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


Base = declarative_base()


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create the SQLAlchemy engine shared by the job store and subscribers."""

    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite:"):
        # Store calls run in worker threads via asyncio.to_thread.
        connect_args = {"check_same_thread": False}
        if database_url in {"sqlite://", "sqlite:///:memory:"}:
            # One shared connection, otherwise every thread sees an empty DB.
            kwargs["poolclass"] = StaticPool

    return create_engine(
        database_url,
        future=True,
        echo=echo,
        pool_pre_ping=True,
        connect_args=connect_args,
        **kwargs,
    )


def build_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


def init_db(engine: Engine) -> None:
    """Create missing tables; models must be imported beforehand."""

    if engine.url.get_backend_name() == "sqlite" and engine.url.database:
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(engine)
