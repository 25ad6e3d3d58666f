"""
Persistence boundary for matter rows.

Every method takes a TenantScope; reads verify ownership and writes are filtered by
organization so a mismatched tenant never touches another organization's rows.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from psycopg2.extras import Json

from matterdesk.models.entities import CLOSED_STATUSES, Matter, MatterStatus, TenantScope
from matterdesk.utils.errors import ForbiddenError, NotFoundError
from matterdesk.utils.logging_config import get_logger, log_database_operation

MATTER_COLUMNS = """
id, organization_id, status, title, client_name, client_email, client_phone, matter_type,
description, priority, lead_source, matter_number, custom_fields, created_at, updated_at, closed_at
"""

INSERT_MATTER_SQL = f"""
INSERT INTO matters (
    id, organization_id, client_name, client_email, client_phone, matter_type, title,
    description, status, priority, lead_source, matter_number, custom_fields, created_at, updated_at
) VALUES (
    %(id)s, %(organization_id)s, %(client_name)s, %(client_email)s, %(client_phone)s, %(matter_type)s,
    %(title)s, %(description)s, %(status)s, %(priority)s, %(lead_source)s, %(matter_number)s,
    %(custom_fields)s, %(created_at)s, %(updated_at)s
)
"""

# Relies on idx_matters_org_conversation_unique (see scripts/database_setup.py)
CONVERSATION_CONFLICT_CLAUSE = """
ON CONFLICT (organization_id, (custom_fields->>'conversationId'))
WHERE custom_fields->>'conversationId' IS NOT NULL
DO NOTHING
"""


class MatterRepository:
    """Matter rows in PostgreSQL"""

    def __init__(self, db):
        self.db = db
        self.logger = get_logger("services.matter_repository")

    @staticmethod
    def _insert_params(scope: TenantScope, matter: Matter) -> Dict[str, Any]:
        return {
            "id": matter.id,
            "organization_id": scope.organization_id,
            "client_name": matter.client_name,
            "client_email": matter.client_email,
            "client_phone": matter.client_phone,
            "matter_type": matter.matter_type,
            "title": matter.title,
            "description": matter.description,
            "status": matter.status.value,
            "priority": matter.priority,
            "lead_source": matter.lead_source,
            "matter_number": matter.matter_number,
            "custom_fields": Json(matter.custom_fields),
            "created_at": matter.created_at,
            "updated_at": matter.updated_at,
        }

    def insert_matter(self, scope: TenantScope, matter: Matter) -> Matter:
        """Insert a new matter row and return it as stored"""
        query = f"{INSERT_MATTER_SQL} RETURNING {MATTER_COLUMNS}"
        row = self.db.execute_query(query, self._insert_params(scope, matter), fetch_one=True)
        log_database_operation("insert", "matters", matter_id=matter.id, organization_id=scope.organization_id)
        return Matter.from_row(row)

    def insert_matter_for_conversation(
        self, scope: TenantScope, matter: Matter, conversation_id: str
    ) -> Tuple[Matter, bool]:
        """
        Insert a matter bound to a conversation unless one already exists.

        Returns:
            (matter, created) where created is False when an existing row won
        """
        custom_fields = dict(matter.custom_fields)
        custom_fields["conversationId"] = conversation_id
        matter.custom_fields = custom_fields

        query = f"{INSERT_MATTER_SQL} {CONVERSATION_CONFLICT_CLAUSE} RETURNING {MATTER_COLUMNS}"
        row = self.db.execute_query(query, self._insert_params(scope, matter), fetch_one=True)
        if row:
            log_database_operation("insert", "matters", matter_id=matter.id, conversation_id=conversation_id)
            return Matter.from_row(row), True

        existing = self.find_by_conversation(scope, conversation_id)
        if existing is None:
            raise NotFoundError(
                "Matter for conversation disappeared after conflict",
                details={"conversationId": conversation_id},
            )
        self.logger.info(
            "Conversation already has a matter; reusing it",
            extra={"event": "matter_insert_conflict", "conversation_id": conversation_id, "matter_id": existing.id},
        )
        return existing, False

    def get_matter(self, scope: TenantScope, matter_id: str) -> Matter:
        """
        Fetch a matter and verify it belongs to the scope's organization.

        Raises:
            NotFoundError: No matter with this id
            ForbiddenError: The matter belongs to another organization
        """
        query = f"SELECT {MATTER_COLUMNS} FROM matters WHERE id = %s"
        row = self.db.execute_query(query, (matter_id,), fetch_one=True)
        if not row:
            raise NotFoundError("Matter not found", details={"matterId": matter_id})

        if row["organization_id"] != scope.organization_id:
            self.logger.warning(
                "Cross-organization matter access rejected",
                extra={
                    "event": "matter_tenant_mismatch",
                    "matter_id": matter_id,
                    "organization_id": scope.organization_id,
                },
            )
            raise ForbiddenError("Matter does not belong to this organization", details={"matterId": matter_id})

        return Matter.from_row(row)

    def update_matter_status(
        self, scope: TenantScope, matter_id: str, next_status: MatterStatus, now: datetime
    ) -> bool:
        """
        Set status, updated_at and closed_at in one statement.

        closed_at is stamped for completed/archived and cleared otherwise. The update is
        filtered by organization as well as id, so a wrong tenant changes zero rows.

        Returns:
            True if a row was updated
        """
        closed_at = now if next_status in CLOSED_STATUSES else None
        query = """
        UPDATE matters
           SET status = %s,
               updated_at = %s,
               closed_at = %s
         WHERE id = %s
           AND organization_id = %s
        RETURNING id
        """
        row = self.db.execute_query(
            query, (next_status.value, now, closed_at, matter_id, scope.organization_id), fetch_one=True
        )
        log_database_operation(
            "update_status", "matters", matter_id=matter_id, status=next_status.value, updated=row is not None
        )
        return row is not None

    def find_by_conversation(self, scope: TenantScope, conversation_id: str) -> Optional[Matter]:
        query = f"""
        SELECT {MATTER_COLUMNS} FROM matters
         WHERE organization_id = %s
           AND custom_fields->>'conversationId' = %s
         ORDER BY created_at
         LIMIT 1
        """
        row = self.db.execute_query(query, (scope.organization_id, conversation_id), fetch_one=True)
        return Matter.from_row(row) if row else None

    def find_by_intake(self, scope: TenantScope, intake_uuid: str) -> Optional[Matter]:
        query = f"""
        SELECT {MATTER_COLUMNS} FROM matters
         WHERE organization_id = %s
           AND custom_fields->>'intakeUuid' = %s
         ORDER BY created_at
         LIMIT 1
        """
        row = self.db.execute_query(query, (scope.organization_id, intake_uuid), fetch_one=True)
        return Matter.from_row(row) if row else None

