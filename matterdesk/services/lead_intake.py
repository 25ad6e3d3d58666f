"""
Lead creation from contact-form submissions and confirmed intakes.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from matterdesk.models.entities import (
    CONTACT_FORM_MATTER_TYPE,
    DEFAULT_CLIENT_NAME,
    DEFAULT_LEAD_SOURCE,
    DEFAULT_PRIORITY,
    INTAKE_LEAD_SOURCE,
    INTAKE_MATTER_TYPE,
    ActivityEvent,
    ContactSubmission,
    Conversation,
    IntakeRecord,
    LeadCreationResult,
    Matter,
    MatterStatus,
    TenantScope,
)
from matterdesk.utils.errors import ValidationError
from matterdesk.utils.logging_config import get_logger, log_business_event


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _first_string(*sources: Dict[str, Any], key: str) -> Optional[str]:
    for source in sources:
        value = _clean(source.get(key))
        if value:
            return value
    return None


class LeadIntakeProcessor:
    """Builds lead-status matters and records their creation."""

    def __init__(self, matters, counters, activity, side_effects, clock: Optional[Callable[[], datetime]] = None):
        self.matters = matters
        self.counters = counters
        self.activity = activity
        self.side_effects = side_effects
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger("services.lead_intake")

    def create_lead_from_contact_form(self, submission: ContactSubmission) -> LeadCreationResult:
        """
        Create a lead matter from a contact form or in-chat contact submission.

        Allocates the next matter number for the current year, inserts the matter with
        status lead, then records a matter_created activity event. The event is only
        recorded once the row is persisted.

        Raises:
            ValidationError: Missing organization, email or phone number
            InfrastructureError: Counter or matter store unavailable
        """
        scope = TenantScope.of(submission.organization_id)
        email = _clean(submission.email)
        phone = _clean(submission.phone_number)
        if not email:
            raise ValidationError("email is required", "email", "REQUIRED")
        if not phone:
            raise ValidationError("phoneNumber is required", "phoneNumber", "REQUIRED")

        now = self.clock()
        client_name = _clean(submission.name) or DEFAULT_CLIENT_NAME
        lead_source = _clean(submission.lead_source) or DEFAULT_LEAD_SOURCE
        matter_number = self.counters.next_matter_number(scope, now.year)

        matter = Matter(
            id=str(uuid.uuid4()),
            organization_id=scope.organization_id,
            status=MatterStatus.LEAD,
            matter_number=matter_number,
            title=f"Lead: {client_name}",
            client_name=client_name,
            client_email=email,
            client_phone=phone,
            matter_type=CONTACT_FORM_MATTER_TYPE,
            description=(submission.matter_details or "").strip(),
            priority=DEFAULT_PRIORITY,
            lead_source=lead_source,
            custom_fields={
                "sessionId": submission.session_id,
                "source": lead_source,
                "submittedAt": now.isoformat(),
            },
            created_at=now,
            updated_at=now,
        )
        stored = self.matters.insert_matter(scope, matter)

        self._record_created(
            scope,
            stored,
            description=f"{client_name} submitted a new lead via contact form.",
            metadata={"source": lead_source, "sessionId": submission.session_id},
        )
        log_business_event(
            "lead_created",
            "matter",
            stored.id,
            organization_id=scope.organization_id,
            matter_number=matter_number,
            lead_source=lead_source,
        )

        return LeadCreationResult(matter_id=stored.id, matter_number=matter_number, created_at=now)

    def create_lead_from_intake(
        self,
        scope: TenantScope,
        intake: IntakeRecord,
        conversation: Conversation,
        payment_status: Optional[str] = None,
    ) -> LeadCreationResult:
        """
        Create the lead for a confirmed intake, bound to its conversation.

        Contact details come from the intake metadata, falling back to the conversation's
        user info. If a matter already exists for the conversation it is returned with
        reused=True and no activity event is recorded.
        """
        now = self.clock()
        client_name = _first_string(intake.metadata, conversation.user_info, key="name") or DEFAULT_CLIENT_NAME
        matter_number = self.counters.next_matter_number(scope, now.year)

        matter = Matter(
            id=str(uuid.uuid4()),
            organization_id=scope.organization_id,
            status=MatterStatus.LEAD,
            matter_number=matter_number,
            title=f"Intake from {client_name}",
            client_name=client_name,
            client_email=_first_string(intake.metadata, conversation.user_info, key="email"),
            client_phone=_first_string(intake.metadata, conversation.user_info, key="phone"),
            matter_type=INTAKE_MATTER_TYPE,
            description=_first_string(intake.metadata, key="description"),
            priority=DEFAULT_PRIORITY,
            lead_source=INTAKE_LEAD_SOURCE,
            custom_fields={
                "intakeUuid": intake.uuid,
                "sessionId": conversation.id,
                "source": INTAKE_LEAD_SOURCE,
                "submittedAt": now.isoformat(),
                "payment": {
                    "status": payment_status,
                    "amount": intake.amount,
                    "currency": intake.currency,
                },
            },
            created_at=now,
            updated_at=now,
        )
        stored, created = self.matters.insert_matter_for_conversation(scope, matter, conversation.id)

        if not created:
            self.logger.info(
                "Conversation already has a matter; discarding allocated number",
                extra={
                    "event": "intake_matter_reused",
                    "matter_id": stored.id,
                    "discarded_matter_number": matter_number,
                    "conversation_id": conversation.id,
                },
            )
            return LeadCreationResult(
                matter_id=stored.id,
                matter_number=stored.matter_number or "",
                created_at=stored.created_at or now,
                reused=True,
            )

        self._record_created(
            scope,
            stored,
            description=f"{client_name} submitted an intake.",
            metadata={
                "source": INTAKE_LEAD_SOURCE,
                "sessionId": conversation.id,
                "intakeUuid": intake.uuid,
                "conversationId": conversation.id,
            },
        )
        log_business_event(
            "intake_lead_created",
            "matter",
            stored.id,
            organization_id=scope.organization_id,
            matter_number=matter_number,
            conversation_id=conversation.id,
        )
        return LeadCreationResult(matter_id=stored.id, matter_number=matter_number, created_at=now)

    def _record_created(self, scope: TenantScope, matter: Matter, description: str, metadata: Dict[str, Any]):
        event = ActivityEvent(
            type="matter_event",
            event_type="matter_created",
            title="Lead Created",
            description=description,
            event_date=matter.created_at or self.clock(),
            actor_type="system",
            metadata={"matterId": matter.id, "organizationId": scope.organization_id, **metadata},
        )
        self.side_effects.run("activity.matter_created", self.activity.create_event, event, scope.organization_id)
