"""
Collaborators consumed by the lifecycle services.

The abstract classes describe the narrow interfaces the services depend on; the Postgres
classes are the implementations wired by the service container.
"""

import json
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from psycopg2.extras import Json

from matterdesk.models.entities import ActivityEvent, Conversation, IntakeRecord, TenantScope
from matterdesk.utils.errors import ForbiddenError, NotFoundError
from matterdesk.utils.logging_config import get_logger, log_database_operation


class ActivityRecorder(ABC):
    """Append-only audit log of domain events"""

    @abstractmethod
    def create_event(self, event: ActivityEvent, organization_id: str) -> str:
        """Persist the event and return its id"""


class NotificationDispatcher(ABC):
    """Best-effort outbound notification to practice members"""

    @abstractmethod
    def notify(
        self,
        scope: TenantScope,
        category: str,
        entity_type: str,
        entity_id: str,
        title: str,
        body: str,
        dedupe_key: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> bool:
        """Queue a notification; returns False when the dedupe key was already used"""


class ConversationStore(ABC):
    @abstractmethod
    def get_conversation(self, scope: TenantScope, conversation_id: str) -> Conversation:
        """Fetch a conversation, raising NotFoundError/ForbiddenError"""

    @abstractmethod
    def attach_matter(self, scope: TenantScope, conversation_id: str, matter_id: str) -> str:
        """Link the matter unless another one is already linked; return the linked matter id"""

    @abstractmethod
    def send_system_message(
        self, scope: TenantScope, conversation_id: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """Post a system-authored message into the conversation and return its id"""


class PaymentSettingsProvider(ABC):
    @abstractmethod
    def requires_payment(self, scope: TenantScope) -> bool:
        """Whether the practice requires payment before intake confirmation"""

    @abstractmethod
    def get_intake(self, scope: TenantScope, intake_uuid: str) -> Optional[IntakeRecord]:
        """Fetch the intake capture, or None if unknown"""

    @abstractmethod
    def practice_name(self, scope: TenantScope) -> Optional[str]:
        """Display name used when addressing the client"""


class PostgresActivityRecorder(ActivityRecorder):
    def __init__(self, db):
        self.db = db

    def create_event(self, event: ActivityEvent, organization_id: str) -> str:
        event_id = str(uuid.uuid4())
        query = """
        INSERT INTO matter_events (
            id, organization_id, matter_id, type, event_type, title, description,
            event_date, actor_type, actor_id, metadata
        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        self.db.execute_query(
            query,
            (
                event_id,
                organization_id,
                event.metadata.get("matterId"),
                event.type,
                event.event_type,
                event.title,
                event.description,
                event.event_date,
                event.actor_type,
                event.actor_id,
                Json(event.metadata),
            ),
            fetch_all=False,
        )
        log_database_operation("insert", "matter_events", event_type=event.event_type, event_id=event_id)
        return event_id


class OutboxNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to an outbox table drained by the delivery worker"""

    def __init__(self, db):
        self.db = db
        self.logger = get_logger("services.notifications")

    def notify(
        self,
        scope: TenantScope,
        category: str,
        entity_type: str,
        entity_id: str,
        title: str,
        body: str,
        dedupe_key: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> bool:
        query = """
        INSERT INTO notification_outbox (
            id, organization_id, category, entity_type, entity_id, conversation_id,
            title, body, dedupe_key, created_at
        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (organization_id, dedupe_key) DO NOTHING
        RETURNING id
        """
        row = self.db.execute_query(
            query,
            (
                str(uuid.uuid4()),
                scope.organization_id,
                category,
                entity_type,
                entity_id,
                conversation_id,
                title,
                body,
                dedupe_key,
                datetime.now(timezone.utc),
            ),
            fetch_one=True,
        )
        queued = row is not None
        if not queued:
            self.logger.info(
                "Duplicate notification suppressed",
                extra={"event": "notification_deduplicated", "dedupe_key": dedupe_key},
            )
        return queued


class PostgresConversationStore(ConversationStore):
    def __init__(self, db):
        self.db = db

    def get_conversation(self, scope: TenantScope, conversation_id: str) -> Conversation:
        row = self.db.execute_query(
            "SELECT id, organization_id, matter_id, user_info FROM conversations WHERE id = %s",
            (conversation_id,),
            fetch_one=True,
        )
        if not row:
            raise NotFoundError("Conversation not found", details={"conversationId": conversation_id})
        if row["organization_id"] != scope.organization_id:
            raise ForbiddenError(
                "Conversation does not belong to this organization", details={"conversationId": conversation_id}
            )
        return Conversation.from_row(row)

    def attach_matter(self, scope: TenantScope, conversation_id: str, matter_id: str) -> str:
        query = """
        UPDATE conversations
           SET matter_id = %s, updated_at = %s
         WHERE id = %s
           AND organization_id = %s
           AND matter_id IS NULL
        RETURNING matter_id
        """
        row = self.db.execute_query(
            query, (matter_id, datetime.now(timezone.utc), conversation_id, scope.organization_id), fetch_one=True
        )
        if row:
            log_database_operation("attach_matter", "conversations", conversation_id=conversation_id, matter_id=matter_id)
            return str(row["matter_id"])

        current = self.get_conversation(scope, conversation_id)
        if not current.matter_id:
            raise NotFoundError("Conversation not found", details={"conversationId": conversation_id})
        return current.matter_id

    def send_system_message(
        self, scope: TenantScope, conversation_id: str, content: str, metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        message_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        query = """
        WITH message AS (
            INSERT INTO conversation_messages (
                id, conversation_id, organization_id, sender_user_id, role, content,
                message_type, metadata, created_at
            ) VALUES (%s, %s, %s, NULL, 'system', %s, 'system', %s, %s)
            RETURNING id
        )
        UPDATE conversations
           SET last_message_at = %s, updated_at = %s
         WHERE id = %s
           AND organization_id = %s
           AND EXISTS (SELECT 1 FROM message)
        """
        self.db.execute_query(
            query,
            (
                message_id,
                conversation_id,
                scope.organization_id,
                content,
                Json(metadata) if metadata else None,
                now,
                now,
                now,
                conversation_id,
                scope.organization_id,
            ),
            fetch_all=False,
        )
        log_database_operation("insert", "conversation_messages", conversation_id=conversation_id, message_id=message_id)
        return message_id


class PostgresPaymentSettings(PaymentSettingsProvider):
    def __init__(self, db):
        self.db = db

    def requires_payment(self, scope: TenantScope) -> bool:
        row = self.db.execute_query(
            "SELECT payment_link_enabled FROM practice_intake_settings WHERE organization_id = %s",
            (scope.organization_id,),
            fetch_one=True,
        )
        return bool(row and row.get("payment_link_enabled") is True)

    def get_intake(self, scope: TenantScope, intake_uuid: str) -> Optional[IntakeRecord]:
        row = self.db.execute_query(
            """
            SELECT uuid, organization_id, status, amount, currency, metadata
              FROM intakes
             WHERE uuid = %s AND organization_id = %s
            """,
            (intake_uuid, scope.organization_id),
            fetch_one=True,
        )
        return IntakeRecord.from_row(row) if row else None

    def practice_name(self, scope: TenantScope) -> Optional[str]:
        row = self.db.execute_query(
            "SELECT practice_name FROM practice_intake_settings WHERE organization_id = %s",
            (scope.organization_id,),
            fetch_one=True,
        )
        name = (row or {}).get("practice_name")
        if not isinstance(name, str):
            return None
        return name.strip() or None


class IdempotencyStore:
    """Stored responses for Idempotency-Key replays of the contact form"""

    def __init__(self, db, ttl_seconds: int = 24 * 60 * 60):
        self.db = db
        self.ttl_seconds = ttl_seconds

    def get(self, scope: TenantScope, key: str) -> Optional[Dict[str, Any]]:
        row = self.db.execute_query(
            """
            SELECT response FROM idempotency_keys
             WHERE organization_id = %s AND key = %s AND expires_at > %s
            """,
            (scope.organization_id, key, datetime.now(timezone.utc)),
            fetch_one=True,
        )
        if not row:
            return None
        response = row["response"]
        return json.loads(response) if isinstance(response, str) else response

    def put(self, scope: TenantScope, key: str, response: Dict[str, Any]) -> None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds)
        self.db.execute_query(
            """
            INSERT INTO idempotency_keys (organization_id, key, response, expires_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (organization_id, key)
            DO UPDATE SET response = EXCLUDED.response, expires_at = EXCLUDED.expires_at
            """,
            (scope.organization_id, key, Json(response), expires_at),
            fetch_all=False,
        )
