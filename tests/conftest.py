from typing import Generator

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base
from domain.money import Currency
from services.ledger_service import LedgerService
from tests.constants import MEMBERS
from tests.helpers.random_activity import RandomActivityGenerator

engine: Engine = create_engine(
    "sqlite:///:memory:", connect_args={"check_same_thread": False}, poolclass=StaticPool
)
session_factory = sessionmaker(engine)


@pytest.fixture(scope="function")
def test_session() -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture(scope="function", autouse=True)
def reset_db() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session_factory() -> sessionmaker[Session]:
    return session_factory


@pytest.fixture(scope="function")
def ledger_service(test_session_factory: sessionmaker[Session]) -> LedgerService:
    return LedgerService(test_session_factory, default_currency=Currency.EUR)


@pytest.fixture(scope="function")
def activity_generator() -> RandomActivityGenerator:
    return RandomActivityGenerator(members=MEMBERS, seed=3)
