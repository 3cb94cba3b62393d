"""Shared fixtures: in-memory SQLite with foreign keys, and a clean session."""

from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from balizas.database import enable_sqlite_foreign_keys, init_db
from balizas.models.report_models import BeaconReport

NOW = datetime(2025, 1, 15, 12, 0, 0)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


def make_report(beacon_id: str = "B-1", **overrides) -> BeaconReport:
    fields = dict(
        id=beacon_id,
        lat=40.4168,
        lon=-3.7038,
        status="active",
        carretera="A-1",
        pk="12.5",
        sentido="positive",
        orientacion="positive",
        comunidad="Comunidad de Madrid",
        provincia="Madrid",
        municipio="Madrid",
        first_seen=NOW,
        last_seen=NOW,
    )
    fields.update(overrides)
    return BeaconReport(**fields)
