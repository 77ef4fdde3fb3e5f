from __future__ import annotations

import importlib
from datetime import datetime, timedelta, timezone

import pytest

from opsledger.apps.audit import models, schemas, services

audit_router = importlib.import_module("opsledger.apps.audit.router")


def test_log_event_records_and_lists_by_entity(db_session):
    services.log_event(
        db_session,
        actor_id="storekeeper",
        entity_type="StockMovement",
        entity_id="1",
        action="inbound",
        after={"balance": 5},
        metadata={"item_code": "BRK-7"},
        critical=True,
    )
    services.log_event(
        db_session,
        actor_id="accountant",
        entity_type="PostingEntry",
        entity_id="abc",
        action="post",
    )
    db_session.commit()

    movements = services.list_audit_events(db_session, entity_type="StockMovement")
    assert [event.action for event in movements] == ["inbound"]
    assert movements[0].metadata_json == {"item_code": "BRK-7"}

    window = services.list_audit_events(
        db_session,
        start=datetime.now(timezone.utc) - timedelta(minutes=5),
        end=datetime.now(timezone.utc) + timedelta(minutes=5),
    )
    assert len(window) == 2


def test_non_critical_failure_is_logged_and_skipped(db_session, monkeypatch):
    def broken(db, *, data):
        raise RuntimeError("audit store down")

    monkeypatch.setattr(services, "create_audit_event", broken)

    assert services.log_event(
        db_session, actor_id=None, entity_type="StockItem", entity_id="1", action="register"
    ) is None
    with pytest.raises(RuntimeError):
        services.log_event(
            db_session,
            actor_id=None,
            entity_type="StockMovement",
            entity_id="1",
            action="inbound",
            critical=True,
        )
    assert db_session.query(models.AuditEvent).count() == 0


def test_audit_route_serializes_events(db_session):
    services.log_event(
        db_session,
        actor_id="storekeeper",
        entity_type="StockItem",
        entity_id="7",
        action="register",
        metadata={"code": "BRK-7"},
    )
    db_session.commit()

    events = audit_router.list_audit_events(
        entity_type="StockItem", entity_id="7", start=None, end=None, db=db_session
    )
    read = schemas.AuditEventRead.model_validate(events[0])

    assert read.action == "register"
    assert read.metadata == {"code": "BRK-7"}
