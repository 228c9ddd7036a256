"""
PostGIS fixtures for the place search integration tests.

Each test runs inside one outer transaction on a private schema, so the
tables it creates and the rows it inserts disappear on rollback. Tests are
skipped unless TEST_DATABASE_URL points at a PostgreSQL server with PostGIS.
"""

from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from placesearch.core.config import settings
from placesearch.repositories.region_boundary_repository import RegionBoundaryRepository

SCHEMA = "placesearch_it"

PLACES_DDL = f"""
CREATE TABLE {SCHEMA}.places (
    id text PRIMARY KEY,
    name text NOT NULL,
    description text,
    type text NOT NULL DEFAULT 'poi',
    parent_id text,
    location geography(Point, 4326),
    bounds geography(Polygon, 4326),
    street_address text,
    city text,
    state text,
    country text,
    postal_code text,
    created_by text,
    category text[],
    tags text[],
    average_rating numeric(3, 2),
    rating_count integer NOT NULL DEFAULT 0,
    privacy text NOT NULL DEFAULT 'public',
    status text NOT NULL DEFAULT 'active',
    created_at timestamptz NOT NULL DEFAULT now(),
    updated_at timestamptz NOT NULL DEFAULT now()
)
"""

REGION_BOUNDARIES_DDL = f"""
CREATE TABLE {SCHEMA}.region_boundaries (
    id text PRIMARY KEY,
    region_name text NOT NULL,
    boundary geometry(MultiPolygon, 4326)
)
"""


@pytest.fixture(scope="session")
def engine():
    url = settings.test_database_url
    if not url or not url.startswith("postgresql"):
        pytest.skip("PostGIS required")
    engine = create_engine(url, pool_pre_ping=True)
    try:
        with engine.connect() as conn:
            has_postgis = RegionBoundaryRepository(Session(bind=conn)).has_postgis()
    except SQLAlchemyError:
        has_postgis = False
    if not has_postgis:
        engine.dispose()
        pytest.skip("PostGIS required")
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Iterator[Session]:
    connection = engine.connect()
    outer = connection.begin()
    connection.execute(text(f"CREATE SCHEMA {SCHEMA}"))
    connection.execute(text(f"SET LOCAL search_path TO {SCHEMA}, public"))
    connection.execute(text(PLACES_DDL))
    session = Session(bind=connection, join_transaction_mode="create_savepoint")
    try:
        yield session
    finally:
        session.close()
        outer.rollback()
        connection.close()


@pytest.fixture
def with_region_boundaries(db: Session) -> Session:
    db.execute(text(REGION_BOUNDARIES_DDL))
    return db
