"""
Pytest configuration and fixtures
"""

import os

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy import MetaData, Table
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator

from models.base import Base
from schemas.catalog import CatalogItem, Listing

# Point at Postgres to run the integration suite against the production dialect
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine with the ORM tables in place"""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'price_sync_test.db'}"
    engine = create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def charizard():
    """Pokemon catalog item"""
    return CatalogItem(
        id="base1-4",
        category="pokemon",
        name="Charizard",
        set_name="Base Set",
        number="4",
    )


@pytest.fixture
def jordan_rookie():
    """Sports catalog item"""
    return CatalogItem(
        id="sc-1986-57",
        category="sports",
        player="Michael Jordan",
        set_name="Fleer",
        number="57",
        year=1986,
        team="Chicago Bulls",
        sport="Basketball",
    )


@pytest.fixture
def charizard_listings():
    """Mixed listing batch for the Charizard item"""
    return [
        Listing(title="Charizard 4/102 Base Set Holo Pokemon", total_price_minor_units=30000,
                url="https://market.example.com/itm/1"),
        Listing(title="Charizard 4/102 Base Set Holo Rare Pokemon NM", total_price_minor_units=32000,
                url="https://market.example.com/itm/2"),
        Listing(title="PSA 9 Charizard #4 Base Set Holo", total_price_minor_units=250000,
                url="https://market.example.com/itm/3"),
        Listing(title="Charizard Base Set", total_price_minor_units=15000,
                url="https://market.example.com/itm/4"),
        Listing(title="Base Set Booster Pack Charizard?", total_price_minor_units=90000,
                url="https://market.example.com/itm/5"),
        Listing(title="Charizard #4 Base Set pre-order", total_price_minor_units=29000,
                url="https://market.example.com/itm/6"),
    ]


@pytest_asyncio.fixture(scope="function")
async def create_tables(test_engine):
    """Create ad-hoc destination/catalog tables for one test and drop them afterwards"""
    metadata = MetaData()

    async def _create(*tables: Table):
        for table in tables:
            table.to_metadata(metadata)
        async with test_engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    yield _create

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
