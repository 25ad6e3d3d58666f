"""
Pytest configuration and fixtures for the matterdesk tests.

The services run against in-memory fakes of the storage collaborators; the fakes keep the
same tenant checks and conditional-write semantics as the PostgreSQL implementations.
"""

import threading
import time
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from matterdesk import create_app
from matterdesk.config.settings import TestingConfig
from matterdesk.models.entities import (
    CLOSED_STATUSES,
    ActivityEvent,
    Conversation,
    IntakeRecord,
    Matter,
    MatterStatus,
    TenantScope,
)
from matterdesk.services.collaborators import (
    ActivityRecorder,
    ConversationStore,
    NotificationDispatcher,
    PaymentSettingsProvider,
)
from matterdesk.services.container import assemble_services
from matterdesk.services.counters import CounterAllocator
from matterdesk.services.side_effects import BestEffortRunner
from matterdesk.utils.errors import ForbiddenError, InfrastructureError, NotFoundError
from matterdesk.utils.logging_config import structured_logger

# Keep log output in pytest's capture instead of logs/app.log
structured_logger.configure(log_file="", enable_console=False, log_level="DEBUG")

FIXED_NOW = datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)
ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"


class FakeCounterDb:
    """Answers the counter upsert the way PostgreSQL does, one row per (organization, name)"""

    def __init__(self):
        self.values = {}
        self.calls = 0
        self.fail = False
        self._lock = threading.Lock()

    def execute_query(self, query, params=None, fetch_one=False, fetch_all=True):
        if self.fail:
            raise InfrastructureError("Database query failed")
        with self._lock:
            self.calls += 1
            key = tuple(params)
            self.values[key] = self.values.get(key, 0) + 1
            return {"next_value": self.values[key]}


class FakeMatterRepository:
    def __init__(self):
        self.rows = {}
        self._lock = threading.Lock()
        self.update_returns_false = False

    def insert_matter(self, scope, matter):
        with self._lock:
            stored = replace(matter, organization_id=scope.organization_id, custom_fields=dict(matter.custom_fields))
            self.rows[stored.id] = stored
            return replace(stored)

    def insert_matter_for_conversation(self, scope, matter, conversation_id):
        with self._lock:
            for row in self.rows.values():
                if (
                    row.organization_id == scope.organization_id
                    and row.custom_fields.get("conversationId") == conversation_id
                ):
                    return replace(row), False
            custom_fields = dict(matter.custom_fields)
            custom_fields["conversationId"] = conversation_id
            stored = replace(matter, organization_id=scope.organization_id, custom_fields=custom_fields)
            self.rows[stored.id] = stored
            return replace(stored), True

    def get_matter(self, scope, matter_id):
        row = self.rows.get(matter_id)
        if row is None:
            raise NotFoundError("Matter not found", details={"matterId": matter_id})
        if row.organization_id != scope.organization_id:
            raise ForbiddenError("Matter does not belong to this organization", details={"matterId": matter_id})
        return replace(row)

    def update_matter_status(self, scope, matter_id, next_status, now):
        if self.update_returns_false:
            return False
        with self._lock:
            row = self.rows.get(matter_id)
            if row is None or row.organization_id != scope.organization_id:
                return False
            self.rows[matter_id] = replace(
                row,
                status=next_status,
                updated_at=now,
                closed_at=now if next_status in CLOSED_STATUSES else None,
            )
            return True

    def _find(self, scope, key, value):
        for row in sorted(self.rows.values(), key=lambda r: r.created_at or FIXED_NOW):
            if row.organization_id == scope.organization_id and row.custom_fields.get(key) == value:
                return replace(row)
        return None

    def find_by_conversation(self, scope, conversation_id):
        return self._find(scope, "conversationId", conversation_id)

    def find_by_intake(self, scope, intake_uuid):
        return self._find(scope, "intakeUuid", intake_uuid)


class FakeActivityRecorder(ActivityRecorder):
    def __init__(self):
        self.events = []
        self.fail = False
        self.delay = 0.0

    def create_event(self, event: ActivityEvent, organization_id: str) -> str:
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise RuntimeError("activity store down")
        self.events.append((event, organization_id))
        return f"evt-{len(self.events)}"

    def of_type(self, event_type):
        return [event for event, _ in self.events if event.event_type == event_type]


class FakeNotificationDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent = []
        self._keys = set()
        self._lock = threading.Lock()

    def notify(self, scope, category, entity_type, entity_id, title, body, dedupe_key=None, conversation_id=None):
        with self._lock:
            key = (scope.organization_id, dedupe_key)
            if dedupe_key and key in self._keys:
                return False
            self._keys.add(key)
            self.sent.append(
                {
                    "organization_id": scope.organization_id,
                    "category": category,
                    "entity_id": entity_id,
                    "title": title,
                    "dedupe_key": dedupe_key,
                    "conversation_id": conversation_id,
                }
            )
            return True


class FakeConversationStore(ConversationStore):
    def __init__(self):
        self.conversations = {}
        self.messages = []
        self.fail_messages = False
        self._lock = threading.Lock()

    def add(self, conversation_id, organization_id=ORG_ID, matter_id=None, user_info=None):
        self.conversations[conversation_id] = Conversation(
            id=conversation_id, organization_id=organization_id, matter_id=matter_id, user_info=user_info or {}
        )

    def get_conversation(self, scope, conversation_id):
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if conversation.organization_id != scope.organization_id:
            raise ForbiddenError("Conversation does not belong to this organization")
        return replace(conversation)

    def attach_matter(self, scope, conversation_id, matter_id):
        with self._lock:
            conversation = self.conversations[conversation_id]
            if conversation.matter_id is None:
                conversation.matter_id = matter_id
            return conversation.matter_id

    def send_system_message(self, scope, conversation_id, content, metadata=None):
        if self.fail_messages:
            raise RuntimeError("message store down")
        self.messages.append(
            {
                "organization_id": scope.organization_id,
                "conversation_id": conversation_id,
                "content": content,
                "metadata": metadata,
            }
        )
        return f"msg-{len(self.messages)}"


class FakePaymentSettings(PaymentSettingsProvider):
    def __init__(self):
        self.required = {}
        self.intakes = {}
        self.names = {}

    def add_intake(self, intake_uuid, status=None, organization_id=ORG_ID, metadata=None):
        self.intakes[intake_uuid] = IntakeRecord(
            uuid=intake_uuid,
            organization_id=organization_id,
            status=status,
            amount=7500,
            currency="usd",
            metadata=metadata or {},
        )

    def requires_payment(self, scope):
        return self.required.get(scope.organization_id, False)

    def get_intake(self, scope, intake_uuid):
        intake = self.intakes.get(intake_uuid)
        if intake is None or intake.organization_id != scope.organization_id:
            return None
        return intake

    def practice_name(self, scope):
        return self.names.get(scope.organization_id)


class FakeIdempotencyStore:
    def __init__(self):
        self.responses = {}

    def get(self, scope, key):
        return self.responses.get((scope.organization_id, key))

    def put(self, scope, key, response):
        self.responses[(scope.organization_id, key)] = response


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def side_effects():
    runner = BestEffortRunner(timeout_seconds=1.0, max_workers=4)
    yield runner
    runner.shutdown()


@pytest.fixture
def counter_db():
    return FakeCounterDb()


@pytest.fixture
def services(counter_db, side_effects, clock):
    return assemble_services(
        matters=FakeMatterRepository(),
        counters=CounterAllocator(counter_db, clock=clock),
        activity=FakeActivityRecorder(),
        notifications=FakeNotificationDispatcher(),
        conversations=FakeConversationStore(),
        payments=FakePaymentSettings(),
        side_effects=side_effects,
        idempotency=FakeIdempotencyStore(),
        clock=clock,
    )


@pytest.fixture
def seed_matter(services):
    """Insert a matter directly in the given status and return its id."""
    counter = {"n": 0}

    def _seed(status=MatterStatus.LEAD, organization_id=ORG_ID, client_name="Jane Doe"):
        counter["n"] += 1
        matter = Matter(
            id=f"matter-{counter['n']}",
            organization_id=organization_id,
            status=status,
            matter_number=f"MAT-2025-{counter['n']:03d}",
            title=f"Lead: {client_name}",
            client_name=client_name,
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
            closed_at=FIXED_NOW if status in CLOSED_STATUSES else None,
        )
        services.matters.insert_matter(TenantScope.of(organization_id), matter)
        return matter.id

    return _seed


@pytest.fixture
def app(services):
    """Create application for testing."""
    app = create_app(TestingConfig, services=services)
    app.config.update({
        "TESTING": True,
    })

    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create test CLI runner."""
    return app.test_cli_runner()
