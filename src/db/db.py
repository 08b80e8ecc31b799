from __future__ import annotations

from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from db.models import Base


def create_session_factory(database_url: str, *, echo: bool = False, reset: bool = False) -> sessionmaker[Session]:
    url = make_url(database_url)
    if reset and url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        path = Path(url.database)
        if path.exists():
            path.unlink()

    engine: Engine = create_engine(url, echo=echo)
    Base.metadata.create_all(engine)
    return sessionmaker(engine)


def init_db(database_url: str, *, echo: bool = False, reset: bool = False) -> Session:
    return create_session_factory(database_url, echo=echo, reset=reset)()
