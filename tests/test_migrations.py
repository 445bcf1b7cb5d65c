"""
Runs the initial migration against a scratch SQLite database.
"""
import importlib.util
from pathlib import Path

import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

MIGRATION = Path(__file__).parent.parent / "migrations" / "versions" / "001_create_chat_tables.py"


@pytest.fixture()
def migration():
    spec = importlib.util.spec_from_file_location("migration_001", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def run(engine, migration, step):
    with engine.begin() as conn:
        migration.op = Operations(MigrationContext.configure(conn))
        getattr(migration, step)()


def test_upgrade_creates_chat_tables(tmp_path, migration):
    engine = create_engine(f"sqlite:///{tmp_path / 'migrate.db'}")

    run(engine, migration, "upgrade")

    inspector = inspect(engine)
    assert set(inspector.get_table_names()) >= {
        "users", "conversations", "messages", "files", "image_references",
    }
    message_fks = inspector.get_foreign_keys("messages")
    assert message_fks[0]["referred_table"] == "conversations"
    assert {"idx_msg_conv_seq", "idx_msg_user"} <= {i["name"] for i in inspector.get_indexes("messages")}
    engine.dispose()


def test_downgrade_drops_everything(tmp_path, migration):
    engine = create_engine(f"sqlite:///{tmp_path / 'migrate.db'}")

    run(engine, migration, "upgrade")
    run(engine, migration, "downgrade")

    assert inspect(engine).get_table_names() == []
    engine.dispose()
