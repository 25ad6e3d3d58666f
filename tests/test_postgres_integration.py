"""
Concurrency tests against a real PostgreSQL database.

Skipped unless MATTERDESK_TEST_DATABASE names a database the test user may create and
reset, e.g. MATTERDESK_TEST_DATABASE=matterdesk_test pytest -m integration
"""

import os
import uuid
from concurrent.futures import ThreadPoolExecutor

import pytest
from psycopg2.extras import Json

from matterdesk.config.settings import TestingConfig
from matterdesk.models.entities import ContactSubmission, MatterStatus, TenantScope
from matterdesk.services.container import build_services
from matterdesk.services.database import create_database_connection
from scripts.database_setup import PostgreSQLSetup

TEST_DATABASE = os.getenv("MATTERDESK_TEST_DATABASE")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not TEST_DATABASE, reason="MATTERDESK_TEST_DATABASE not set"),
]


@pytest.fixture(scope="module")
def pg_services():
    setup = PostgreSQLSetup.from_config(TestingConfig)
    setup.connection_params["database"] = TEST_DATABASE
    setup.setup_database(drop_tables=True)

    db = create_database_connection(TestingConfig, database=TEST_DATABASE)
    services = build_services(db, TestingConfig)
    yield services
    services.close()


@pytest.fixture
def scope():
    return TenantScope.of(f"org-{uuid.uuid4().hex[:8]}")


def test_concurrent_counter_allocation(pg_services, scope):
    with ThreadPoolExecutor(max_workers=10) as pool:
        numbers = list(pool.map(lambda _: pg_services.counters.next_matter_number(scope, 2025), range(40)))

    assert len(set(numbers)) == 40
    assert sorted(int(n.rsplit("-", 1)[1]) for n in numbers) == list(range(1, 41))


def test_concurrent_intake_confirmation_creates_one_matter(pg_services, scope):
    db = pg_services.db
    conversation_id = str(uuid.uuid4())
    intake_uuid = str(uuid.uuid4())
    db.execute_query(
        "INSERT INTO conversations (id, organization_id, user_info) VALUES (%s, %s, %s)",
        (conversation_id, scope.organization_id, Json({"name": "Sam Lee"})),
        fetch_all=False,
    )
    db.execute_query(
        "INSERT INTO intakes (uuid, organization_id, status) VALUES (%s, %s, %s)",
        (intake_uuid, scope.organization_id, "succeeded"),
        fetch_all=False,
    )

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(
            pool.map(
                lambda _: pg_services.intake_gate.confirm_intake_lead(scope, intake_uuid, conversation_id), range(6)
            )
        )

    assert len({r.matter_id for r in results}) == 1
    rows = db.execute_query(
        "SELECT id FROM matters WHERE organization_id = %s AND custom_fields->>'conversationId' = %s",
        (scope.organization_id, conversation_id),
    )
    assert len(rows) == 1


def test_accept_then_archive_round_trip(pg_services, scope):
    created = pg_services.lead_intake.create_lead_from_contact_form(
        ContactSubmission(
            organization_id=scope.organization_id,
            email="jane@example.com",
            phone_number="+1 555-010-2000",
            matter_details="Deposit dispute",
        )
    )

    pg_services.lifecycle.accept_lead(scope, created.matter_id, "user-7")
    pg_services.lifecycle.transition_status(scope, created.matter_id, "archived", "user-7")

    matter = pg_services.matters.get_matter(scope, created.matter_id)
    assert matter.status is MatterStatus.ARCHIVED
    assert matter.closed_at is not None
    events = pg_services.db.execute_query(
        "SELECT event_type FROM matter_events WHERE matter_id = %s ORDER BY event_date, created_at",
        (created.matter_id,),
    )
    assert [e["event_type"] for e in events] == ["matter_created", "accept", "status_change"]
