"""
Tests for the PostgreSQL repository and collaborators against a mocked connection.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from matterdesk.models.entities import Matter, MatterStatus, TenantScope
from matterdesk.services.collaborators import (
    IdempotencyStore,
    OutboxNotificationDispatcher,
    PostgresConversationStore,
    PostgresPaymentSettings,
)
from matterdesk.services.database import DatabaseConnection
from matterdesk.services.matter_repository import MatterRepository
from matterdesk.utils.errors import ForbiddenError, InfrastructureError, NotFoundError

NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)
SCOPE = TenantScope.of("org-1")


def _row(**overrides):
    row = {
        "id": "m-1",
        "organization_id": "org-1",
        "status": "lead",
        "matter_number": "MAT-2025-001",
        "title": "Lead: Jane",
        "custom_fields": {},
        "created_at": NOW,
        "updated_at": NOW,
        "closed_at": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def db():
    return MagicMock()


@pytest.mark.parametrize(
    "status,expect_closed",
    [(MatterStatus.ARCHIVED, True), (MatterStatus.COMPLETED, True), (MatterStatus.OPEN, False)],
)
def test_update_status_sets_closed_at_with_status(db, status, expect_closed):
    db.execute_query.return_value = {"id": "m-1"}

    assert MatterRepository(db).update_matter_status(SCOPE, "m-1", status, NOW) is True

    query, params = db.execute_query.call_args[0]
    assert "organization_id = %s" in query
    assert params == (status.value, NOW, NOW if expect_closed else None, "m-1", "org-1")


def test_update_status_reports_zero_rows(db):
    db.execute_query.return_value = None
    assert MatterRepository(db).update_matter_status(SCOPE, "m-1", MatterStatus.OPEN, NOW) is False


def test_get_matter_checks_tenant(db):
    repo = MatterRepository(db)

    db.execute_query.return_value = _row(organization_id="org-2")
    with pytest.raises(ForbiddenError):
        repo.get_matter(SCOPE, "m-1")

    db.execute_query.return_value = None
    with pytest.raises(NotFoundError):
        repo.get_matter(SCOPE, "m-1")

    db.execute_query.return_value = _row()
    assert repo.get_matter(SCOPE, "m-1").status is MatterStatus.LEAD


def test_conversation_insert_falls_back_to_existing_row(db):
    db.execute_query.side_effect = [None, _row(id="m-existing", custom_fields={"conversationId": "conv-1"})]
    matter = Matter(id="m-new", organization_id="org-1", status=MatterStatus.LEAD, created_at=NOW, updated_at=NOW)

    stored, created = MatterRepository(db).insert_matter_for_conversation(SCOPE, matter, "conv-1")

    assert created is False
    assert stored.id == "m-existing"
    insert_query = db.execute_query.call_args_list[0][0][0]
    assert "ON CONFLICT (organization_id, (custom_fields->>'conversationId'))" in insert_query
    assert "DO NOTHING" in insert_query


def test_conversation_insert_sets_conversation_id(db):
    db.execute_query.return_value = _row(custom_fields={"conversationId": "conv-1"})
    matter = Matter(id="m-1", organization_id="org-1", status=MatterStatus.LEAD, created_at=NOW, updated_at=NOW)

    stored, created = MatterRepository(db).insert_matter_for_conversation(SCOPE, matter, "conv-1")

    assert created is True
    params = db.execute_query.call_args[0][1]
    assert params["custom_fields"].adapted == {"conversationId": "conv-1"}


def test_attach_matter_returns_existing_link_on_zero_rows(db):
    db.execute_query.side_effect = [
        None,
        {"id": "conv-1", "organization_id": "org-1", "matter_id": "m-other", "user_info": {}},
    ]

    assert PostgresConversationStore(db).attach_matter(SCOPE, "conv-1", "m-new") == "m-other"
    assert "matter_id IS NULL" in db.execute_query.call_args_list[0][0][0]


def test_system_message_is_scoped_to_conversation_organization(db):
    message_id = PostgresConversationStore(db).send_system_message(
        SCOPE, "conv-1", "Payment received.", metadata={"intakeUuid": "i-1"}
    )

    query, params = db.execute_query.call_args[0]
    assert "INSERT INTO conversation_messages" in query
    assert "'system'" in query
    assert params[0] == message_id
    assert params[1:4] == ("conv-1", "org-1", "Payment received.")
    assert params[4].adapted == {"intakeUuid": "i-1"}
    assert params[-2:] == ("conv-1", "org-1")


@pytest.mark.parametrize("row,expected", [(None, None), ({"practice_name": " Roe Law "}, "Roe Law"), ({"practice_name": ""}, None)])
def test_practice_name(db, row, expected):
    db.execute_query.return_value = row
    assert PostgresPaymentSettings(db).practice_name(SCOPE) == expected


def test_outbox_reports_duplicate(db):
    db.execute_query.return_value = None
    dispatcher = OutboxNotificationDispatcher(db)

    queued = dispatcher.notify(SCOPE, "matter", "matter", "m-1", "New lead", "body", dedupe_key="lead:m-1")

    assert queued is False


@pytest.mark.parametrize("row,expected", [(None, False), ({"payment_link_enabled": True}, True), ({"payment_link_enabled": False}, False)])
def test_requires_payment(db, row, expected):
    db.execute_query.return_value = row
    assert PostgresPaymentSettings(db).requires_payment(SCOPE) is expected


def test_idempotency_store_decodes_text_response(db):
    db.execute_query.return_value = {"response": '{"success": true}'}
    assert IdempotencyStore(db).get(SCOPE, "k") == {"success": True}


def test_driver_errors_become_infrastructure_errors():
    with patch("matterdesk.services.database.pool.ThreadedConnectionPool") as pool_class:
        conn = MagicMock()
        conn.closed = 0
        conn.cursor.return_value.__enter__.return_value.execute.side_effect = psycopg2.OperationalError("gone")
        pool_class.return_value.getconn.return_value = conn

        db = DatabaseConnection(database="matterdesk_test")
        db.pool_manager._last_health_check = datetime.now()

        with pytest.raises(InfrastructureError) as exc_info:
            db.execute_query("SELECT 1", fetch_one=True)

    assert exc_info.value.retryable is True
    conn.rollback.assert_called_once()
    pool_class.return_value.putconn.assert_called_with(conn, close=False)
