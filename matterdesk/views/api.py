"""
API routes for matterdesk.

This module contains the JSON endpoints for lead intake, intake confirmation and matter
status changes. Domain errors raised by the services are turned into responses by the
handlers in matterdesk.views.errors.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Blueprint, jsonify, request

from matterdesk import get_services
from matterdesk.models.entities import DEFAULT_LEAD_SOURCE, ContactSubmission, MatterStatus, TenantScope
from matterdesk.utils.errors import ValidationError
from matterdesk.utils.logging_config import get_logger, log_performance_metric
from matterdesk.utils.validators import (
    CONTACT_FORM_RULES,
    INTAKE_CONFIRM_RULES,
    REJECT_RULES,
    STATUS_CHANGE_RULES,
    validate_api_request,
    validator,
)

api_bp = Blueprint("api", __name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"
ACTOR_HEADER = "X-User-Id"


def _elapsed_ms(start_time: datetime) -> float:
    return (datetime.now(timezone.utc) - start_time).total_seconds() * 1000


def _request_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def resolve_actor() -> str:
    """Acting user from the X-User-Id header, falling back to actorUserId in the body"""
    actor = request.headers.get(ACTOR_HEADER) or _request_body().get("actorUserId")
    return validator.validate_identifier(actor, "actorUserId", required=True)


def resolve_organization(organization_id: Optional[str], practice_id: Optional[str]) -> TenantScope:
    return TenantScope.of(organization_id or practice_id or "")


def _notify(label: str, scope: TenantScope, **kwargs):
    """Queue a notification without waiting for it"""
    services = get_services()
    services.side_effects.submit(label, services.notifications.notify, scope, **kwargs)


@api_bp.route("/forms", methods=["POST"])
@validate_api_request(CONTACT_FORM_RULES)
def submit_contact_form(**kwargs):
    """Create a lead from a contact form submission"""
    logger = get_logger("api.forms")
    start_time = datetime.now(timezone.utc)
    services = get_services()

    scope = resolve_organization(kwargs.get("organizationId"), kwargs.get("practiceId"))
    idempotency_key = (request.headers.get(IDEMPOTENCY_HEADER) or "").strip() or None
    if idempotency_key and len(idempotency_key) > 255:
        raise ValidationError("Idempotency-Key too long", IDEMPOTENCY_HEADER, "TOO_LONG")

    if idempotency_key and services.idempotency is not None:
        stored = services.idempotency.get(scope, idempotency_key)
        if stored is not None:
            logger.info(
                "Replaying stored contact form response",
                extra={"event": "idempotent_replay", "organization_id": scope.organization_id},
            )
            response = jsonify(stored)
            response.headers["Idempotent-Replayed"] = "true"
            return response, 201

    submission = ContactSubmission(
        organization_id=scope.organization_id,
        email=kwargs["email"],
        phone_number=kwargs["phoneNumber"],
        matter_details=kwargs.get("matterDetails") or "",
        name=kwargs.get("name"),
        session_id=kwargs.get("sessionId"),
        lead_source=kwargs.get("leadSource") or DEFAULT_LEAD_SOURCE,
    )
    result = services.lead_intake.create_lead_from_contact_form(submission)

    body = {"success": True, "data": {**result.to_dict(), "status": MatterStatus.LEAD.value}}

    if idempotency_key and services.idempotency is not None:
        services.side_effects.run("idempotency.store", services.idempotency.put, scope, idempotency_key, body)

    _notify(
        "notification.lead_created",
        scope,
        category="matter",
        entity_type="matter",
        entity_id=result.matter_id,
        title="New lead received",
        body=f"{submission.name or 'A prospective client'} submitted a contact form ({result.matter_number}).",
        dedupe_key=f"lead:{result.matter_id}",
    )

    log_performance_metric("api_contact_form_duration", _elapsed_ms(start_time))
    return jsonify(body), 201


@api_bp.route("/intakes/confirm", methods=["POST"])
@validate_api_request(INTAKE_CONFIRM_RULES)
def confirm_intake(**kwargs):
    """Turn a completed intake into a lead bound to its conversation"""
    start_time = datetime.now(timezone.utc)
    services = get_services()

    scope = resolve_organization(kwargs.get("organizationId"), kwargs.get("practiceId"))
    confirmation = services.intake_gate.confirm_intake_lead(
        scope, kwargs["intakeUuid"], kwargs["conversationId"]
    )

    if not confirmation.reused:
        _notify(
            "notification.intake_confirmed",
            scope,
            category="intake",
            entity_type="matter",
            entity_id=confirmation.matter_id,
            title="New intake lead",
            body=f"An intake was confirmed and lead {confirmation.matter_number} was created.",
            dedupe_key=f"intake:{kwargs['intakeUuid']}",
            conversation_id=kwargs["conversationId"],
        )

    log_performance_metric("api_intake_confirm_duration", _elapsed_ms(start_time), reused=confirmation.reused)
    return jsonify({"success": True, "data": confirmation.to_dict()})


@api_bp.route("/organizations/<organization_id>/matters/<matter_id>", methods=["GET"])
def get_matter(organization_id, matter_id):
    """Fetch a single matter within its organization"""
    services = get_services()
    scope = TenantScope.of(organization_id)
    matter = services.matters.get_matter(scope, validator.validate_identifier(matter_id, "matterId"))
    return jsonify({"success": True, "data": matter.to_dict()})


@api_bp.route("/organizations/<organization_id>/matters/<matter_id>/accept", methods=["POST"])
def accept_lead(organization_id, matter_id):
    """Accept a lead, moving it to open"""
    services = get_services()
    actor = resolve_actor()
    result = services.lifecycle.accept_lead(organization_id, matter_id, actor)

    _notify(
        "notification.lead_accepted",
        TenantScope.of(organization_id),
        category="matter",
        entity_type="matter",
        entity_id=matter_id,
        title="Lead accepted",
        body="A lead was accepted and is now an open matter.",
        dedupe_key=f"accept:{matter_id}",
    )

    return jsonify({"success": True, "data": result.to_dict()})


@api_bp.route("/organizations/<organization_id>/matters/<matter_id>/reject", methods=["POST"])
@validate_api_request(REJECT_RULES)
def reject_lead(organization_id, matter_id, **kwargs):
    """Reject a lead, archiving it"""
    services = get_services()
    actor = resolve_actor()
    result = services.lifecycle.reject_lead(organization_id, matter_id, actor, reason=kwargs.get("reason"))
    return jsonify({"success": True, "data": result.to_dict()})


@api_bp.route("/organizations/<organization_id>/matters/<matter_id>/status", methods=["POST"])
@validate_api_request(STATUS_CHANGE_RULES)
def change_status(organization_id, matter_id, **kwargs):
    """Move a matter to another status"""
    services = get_services()
    actor = resolve_actor()
    result = services.lifecycle.transition_status(
        organization_id, matter_id, kwargs["status"], actor, reason=kwargs.get("reason")
    )
    return jsonify({"success": True, "data": result.to_dict()})
