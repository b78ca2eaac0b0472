"""Tests for the Alembic schema migration."""

import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from data.database import Base
import data.models  # noqa: F401

MIGRATION = Path(__file__).parent.parent / "migrations" / "versions" / "001_initial_schema.py"


@pytest.fixture
def migration():
    module_spec = importlib.util.spec_from_file_location("initial_schema", MIGRATION)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'migrated.db'}")
    yield engine
    engine.dispose()


def run(engine, step):
    with engine.begin() as connection:
        context = MigrationContext.configure(connection)
        with Operations.context(context):
            step()


def test_upgrade_matches_orm_models(migration, engine):
    run(engine, migration.upgrade)

    inspector = inspect(engine)
    assert set(inspector.get_table_names()) == set(Base.metadata.tables)
    for name, table in Base.metadata.tables.items():
        migrated = {column["name"] for column in inspector.get_columns(name)}
        assert migrated == {column.name for column in table.columns}, name

    unique_indexes = {
        index["name"] for index in inspector.get_indexes("appointment") if index["unique"]
    }
    assert "ix_appointment_remote_id" in unique_indexes


def test_downgrade_drops_everything(migration, engine):
    run(engine, migration.upgrade)
    run(engine, migration.downgrade)

    assert inspect(engine).get_table_names() == []
