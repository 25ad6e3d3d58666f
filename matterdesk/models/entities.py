"""
Data models and entities for matterdesk.

This module defines the matter status machine and the data structures passed between the
repository, the lifecycle services and the HTTP layer.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from matterdesk.utils.errors import InvalidStatusValueError, ValidationError


class MatterStatus(str, Enum):
    """Lifecycle status of a matter"""

    LEAD = "lead"
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, value: Any) -> "MatterStatus":
        """Normalise a raw status string from storage or a request into the enum."""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidStatusValueError(
                f"Unsupported matter status: {value if value else 'unknown'}",
                details={"status": value},
            ) from None

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


# lead is the only initial state; there is no terminal state
STATUS_TRANSITIONS: Dict[MatterStatus, FrozenSet[MatterStatus]] = {
    MatterStatus.LEAD: frozenset({MatterStatus.OPEN, MatterStatus.ARCHIVED}),
    MatterStatus.OPEN: frozenset({MatterStatus.IN_PROGRESS, MatterStatus.ARCHIVED}),
    MatterStatus.IN_PROGRESS: frozenset({MatterStatus.OPEN, MatterStatus.COMPLETED, MatterStatus.ARCHIVED}),
    MatterStatus.COMPLETED: frozenset({MatterStatus.ARCHIVED, MatterStatus.IN_PROGRESS}),
    MatterStatus.ARCHIVED: frozenset({MatterStatus.OPEN}),
}

CLOSED_STATUSES = frozenset({MatterStatus.COMPLETED, MatterStatus.ARCHIVED})


def can_transition(current: MatterStatus, target: MatterStatus) -> bool:
    """Check whether the status machine allows current -> target"""
    return target in STATUS_TRANSITIONS.get(current, frozenset())


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class TenantScope:
    """Organization handle required by every repository call"""

    organization_id: str

    def __post_init__(self):
        if not isinstance(self.organization_id, str) or not self.organization_id.strip():
            raise ValidationError("organizationId is required", "organizationId", "REQUIRED")
        object.__setattr__(self, "organization_id", self.organization_id.strip())

    @classmethod
    def of(cls, organization_id: Any) -> "TenantScope":
        if isinstance(organization_id, TenantScope):
            return organization_id
        return cls(organization_id)


@dataclass
class Matter:
    """Matter entity model"""

    id: str
    organization_id: str
    status: MatterStatus
    matter_number: Optional[str] = None
    title: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    matter_type: Optional[str] = None
    description: Optional[str] = None
    priority: str = "normal"
    lead_source: Optional[str] = None
    custom_fields: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Matter":
        """Build a Matter from a database row, validating the stored status."""
        custom_fields = row.get("custom_fields") or {}
        if isinstance(custom_fields, str):
            custom_fields = json.loads(custom_fields)

        return cls(
            id=str(row["id"]),
            organization_id=row["organization_id"],
            status=MatterStatus.parse(row.get("status")),
            matter_number=row.get("matter_number"),
            title=row.get("title"),
            client_name=row.get("client_name"),
            client_email=row.get("client_email"),
            client_phone=row.get("client_phone"),
            matter_type=row.get("matter_type"),
            description=row.get("description"),
            priority=row.get("priority") or "normal",
            lead_source=row.get("lead_source"),
            custom_fields=dict(custom_fields),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            closed_at=row.get("closed_at"),
        )

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "organizationId": self.organization_id,
            "status": self.status.value,
            "matterNumber": self.matter_number,
            "title": self.title,
            "clientName": self.client_name,
            "clientEmail": self.client_email,
            "clientPhone": self.client_phone,
            "matterType": self.matter_type,
            "description": self.description,
            "priority": self.priority,
            "leadSource": self.lead_source,
            "customFields": self.custom_fields,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
            "closedAt": isoformat(self.closed_at),
        }


@dataclass(frozen=True)
class ActivityEvent:
    """Immutable audit record handed to the activity recorder"""

    type: str
    event_type: str
    title: str
    description: str
    event_date: datetime
    actor_type: str
    actor_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "eventType": self.event_type,
            "title": self.title,
            "description": self.description,
            "eventDate": isoformat(self.event_date),
            "actorType": self.actor_type,
            "actorId": self.actor_id,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class AcceptedBy:
    user_id: str
    accepted_at: datetime


@dataclass(frozen=True)
class StatusTransitionResult:
    """Outcome of accept/reject/transition"""

    matter_id: str
    status: MatterStatus
    previous_status: MatterStatus
    updated_at: datetime
    accepted_by: Optional[AcceptedBy] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "matterId": self.matter_id,
            "status": self.status.value,
            "previousStatus": self.previous_status.value,
            "updatedAt": isoformat(self.updated_at),
        }
        if self.accepted_by:
            result["acceptedBy"] = {
                "userId": self.accepted_by.user_id,
                "acceptedAt": isoformat(self.accepted_by.accepted_at),
            }
        return result


@dataclass(frozen=True)
class ContactSubmission:
    """Contact form / chat submission that becomes a lead"""

    organization_id: str
    email: str
    phone_number: str
    matter_details: str = ""
    name: Optional[str] = None
    session_id: Optional[str] = None
    lead_source: Optional[str] = None


@dataclass(frozen=True)
class LeadCreationResult:
    matter_id: str
    matter_number: str
    created_at: datetime
    reused: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matterId": self.matter_id,
            "matterNumber": self.matter_number,
            "createdAt": isoformat(self.created_at),
        }


@dataclass
class Conversation:
    """Chat thread owned by the conversation collaborator"""

    id: str
    organization_id: str
    matter_id: Optional[str] = None
    user_info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Conversation":
        user_info = row.get("user_info") or {}
        if isinstance(user_info, str):
            user_info = json.loads(user_info)
        matter_id = row.get("matter_id")
        return cls(
            id=str(row["id"]),
            organization_id=row["organization_id"],
            matter_id=str(matter_id) if matter_id else None,
            user_info=dict(user_info) if isinstance(user_info, dict) else {},
        )


@dataclass
class IntakeRecord:
    """Anonymous intake/payment capture that precedes a matter"""

    uuid: str
    organization_id: str
    status: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "IntakeRecord":
        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return cls(
            uuid=str(row["uuid"]),
            organization_id=row["organization_id"],
            status=row.get("status"),
            amount=row.get("amount"),
            currency=row.get("currency"),
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
        )

    @property
    def normalized_status(self) -> Optional[str]:
        if not isinstance(self.status, str):
            return None
        trimmed = self.status.strip()
        return trimmed.lower() if trimmed else None


@dataclass(frozen=True)
class IntakeConfirmation:
    matter_id: str
    reused: bool
    matter_number: Optional[str] = None
    payment_required: bool = False
    payment_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matterId": self.matter_id,
            "reused": self.reused,
            "matterNumber": self.matter_number,
            "paymentRequired": self.payment_required,
            "paymentStatus": self.payment_status,
        }


# Common constants
DEFAULT_PRACTICE_NAME = "the practice"
DEFAULT_CLIENT_NAME = "New Lead"
DEFAULT_LEAD_SOURCE = "contact_form"
INTAKE_LEAD_SOURCE = "intake"
CONTACT_FORM_MATTER_TYPE = "General Consultation"
INTAKE_MATTER_TYPE = "Consultation"
DEFAULT_PRIORITY = "normal"
LEAD_SOURCES = ["contact_form", "contact_form_chat", "intake"]
PAID_INTAKE_STATUSES = frozenset({"succeeded", "paid", "complete", "completed"})
