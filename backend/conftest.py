from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"

from opsledger.database import Base  # noqa: E402
from opsledger.apps.audit import models as audit_models  # noqa: E402
from opsledger.apps.finance import models as finance_models  # noqa: E402
from opsledger.apps.inventory import models as inventory_models  # noqa: E402

LEDGER_TABLES = [
    inventory_models.StockItem.__table__,
    inventory_models.StockMovement.__table__,
    finance_models.PostingEntry.__table__,
    audit_models.AuditEvent.__table__,
]


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine, tables=LEDGER_TABLES)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def file_session_factory(tmp_path):
    """
    Session factory over a file-backed SQLite database.

    In-memory SQLite gives each connection its own database, so tests that
    use several threads need a real file.
    """
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine, tables=LEDGER_TABLES)
    factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    try:
        yield factory
    finally:
        engine.dispose()
