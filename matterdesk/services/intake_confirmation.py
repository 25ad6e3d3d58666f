"""
Converts a completed intake into a lead, at most once per conversation.

Confirmation is idempotent: repeating it for the same conversation returns the matter
already linked, whether it was created by an earlier confirmation or by another path
(e.g. a payment webhook) that recorded the intake uuid.
"""

from typing import Optional

from matterdesk.models.entities import (
    DEFAULT_PRACTICE_NAME,
    PAID_INTAKE_STATUSES,
    IntakeConfirmation,
    Matter,
    TenantScope,
)
from matterdesk.utils.errors import NotFoundError, PaymentRequiredError, ValidationError
from matterdesk.utils.logging_config import get_logger, log_business_event


class IntakeConfirmationGate:
    def __init__(self, matters, conversations, payments, lead_processor, side_effects):
        self.matters = matters
        self.conversations = conversations
        self.payments = payments
        self.lead_processor = lead_processor
        self.side_effects = side_effects
        self.logger = get_logger("services.intake_confirmation")

    def confirm_intake_lead(self, organization_id, intake_uuid: str, conversation_id: str) -> IntakeConfirmation:
        """
        Confirm an intake and return the matter bound to its conversation.

        Raises:
            ValidationError: Missing intake uuid or conversation id
            NotFoundError, ForbiddenError: Conversation or intake missing / foreign
            PaymentRequiredError: Practice requires payment and the intake is not paid
        """
        scope = TenantScope.of(organization_id)
        intake_uuid = (intake_uuid or "").strip()
        conversation_id = (conversation_id or "").strip()
        if not intake_uuid:
            raise ValidationError("intakeUuid is required", "intakeUuid", "REQUIRED")
        if not conversation_id:
            raise ValidationError("conversationId is required", "conversationId", "REQUIRED")

        conversation = self.conversations.get_conversation(scope, conversation_id)
        if conversation.matter_id:
            self.logger.info(
                "Conversation already linked to a matter",
                extra={"event": "intake_reused", "conversation_id": conversation_id, "matter_id": conversation.matter_id},
            )
            return IntakeConfirmation(matter_id=conversation.matter_id, reused=True)

        existing = self.matters.find_by_conversation(scope, conversation_id)
        if existing is None:
            existing = self.matters.find_by_intake(scope, intake_uuid)
            if existing is not None and not self._linkable(existing, conversation_id):
                self.logger.info(
                    "Intake already produced a matter for another conversation",
                    extra={
                        "event": "intake_matter_elsewhere",
                        "intake_uuid": intake_uuid,
                        "conversation_id": conversation_id,
                        "matter_id": existing.id,
                    },
                )
                return IntakeConfirmation(matter_id=existing.id, reused=True, matter_number=existing.matter_number)

        if existing is not None:
            linked = self.conversations.attach_matter(scope, conversation_id, existing.id)
            return IntakeConfirmation(
                matter_id=linked,
                reused=True,
                matter_number=existing.matter_number if linked == existing.id else None,
            )

        intake = self.payments.get_intake(scope, intake_uuid)
        if intake is None:
            raise NotFoundError("Intake not found", details={"intakeUuid": intake_uuid})

        payment_required = self.payments.requires_payment(scope)
        payment_status = intake.normalized_status
        if payment_required:
            self._check_paid(intake_uuid, payment_status)

        created = self.lead_processor.create_lead_from_intake(scope, intake, conversation, payment_status)
        linked = self.conversations.attach_matter(scope, conversation_id, created.matter_id)

        if linked != created.matter_id:
            self.logger.warning(
                "Conversation was linked to another matter concurrently",
                extra={
                    "event": "intake_attach_lost",
                    "conversation_id": conversation_id,
                    "created_matter_id": created.matter_id,
                    "linked_matter_id": linked,
                },
            )
            return IntakeConfirmation(
                matter_id=linked,
                reused=True,
                payment_required=payment_required,
                payment_status=payment_status,
            )

        self.side_effects.run(
            "conversation.intake_confirmed_message",
            self._send_confirmation_message,
            scope,
            conversation_id,
            intake_uuid,
            payment_required,
            payment_status,
        )

        log_business_event(
            "intake_confirmed",
            "matter",
            linked,
            organization_id=scope.organization_id,
            intake_uuid=intake_uuid,
            conversation_id=conversation_id,
            reused=created.reused,
        )
        return IntakeConfirmation(
            matter_id=linked,
            reused=created.reused,
            matter_number=created.matter_number,
            payment_required=payment_required,
            payment_status=payment_status,
        )

    @staticmethod
    def _linkable(matter: Matter, conversation_id: str) -> bool:
        """A matter found by intake uuid may only be linked to the conversation it was created for."""
        bound_to = matter.custom_fields.get("conversationId")
        return not bound_to or bound_to == conversation_id

    def _send_confirmation_message(
        self, scope: TenantScope, conversation_id: str, intake_uuid: str, payment_required: bool, payment_status
    ) -> str:
        practice_name = self.payments.practice_name(scope) or DEFAULT_PRACTICE_NAME
        if payment_required:
            content = f"Payment received. {practice_name} will review your intake and follow up here shortly."
        else:
            content = (
                f"Your intake has been received. {practice_name} will review your request and follow up here shortly."
            )
        return self.conversations.send_system_message(
            scope,
            conversation_id,
            content,
            metadata={"intakeUuid": intake_uuid, "paymentStatus": payment_status, "paymentRequired": payment_required},
        )

    def _check_paid(self, intake_uuid: str, payment_status: Optional[str]):
        if payment_status is None:
            raise PaymentRequiredError("Payment status not available", details={"intakeUuid": intake_uuid})
        if payment_status not in PAID_INTAKE_STATUSES:
            raise PaymentRequiredError(
                "Payment not completed", details={"intakeUuid": intake_uuid, "status": payment_status}
            )
