"""
Matter status state machine: accept, reject and general transitions.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from matterdesk.models.entities import (
    AcceptedBy,
    ActivityEvent,
    Matter,
    MatterStatus,
    StatusTransitionResult,
    TenantScope,
    can_transition,
)
from matterdesk.utils.errors import InvalidPreconditionError, InvalidTransitionError, NotFoundError
from matterdesk.utils.logging_config import get_logger, log_business_event

LEAD_ACTION_VERBS = {"accept": "accepted", "reject": "rejected"}


def _clean_reason(reason: Optional[str]) -> Optional[str]:
    if not isinstance(reason, str):
        return None
    return reason.strip() or None


class MatterLifecycleEngine:
    """Validates status changes against the transition table before persisting them."""

    def __init__(self, matters, activity, side_effects, clock: Optional[Callable[[], datetime]] = None):
        self.matters = matters
        self.activity = activity
        self.side_effects = side_effects
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger("services.lifecycle")

    def accept_lead(self, organization_id, matter_id: str, actor_user_id: str) -> StatusTransitionResult:
        """
        Move a lead to open.

        Raises:
            NotFoundError, ForbiddenError: Matter missing or owned by another organization
            InvalidPreconditionError: Matter is not currently a lead
        """
        scope = TenantScope.of(organization_id)
        matter, previous = self._load_lead(scope, matter_id, "accept")
        now = self._update_status(scope, matter_id, MatterStatus.OPEN)

        self._record(
            scope,
            event_type="accept",
            title="Lead Accepted",
            description=f"{matter.client_name or 'Lead'} accepted and moved to open.",
            event_date=now,
            actor_user_id=actor_user_id,
            metadata={"matterId": matter_id, "fromStatus": previous.value, "toStatus": MatterStatus.OPEN.value},
        )

        return StatusTransitionResult(
            matter_id=matter_id,
            status=MatterStatus.OPEN,
            previous_status=previous,
            updated_at=now,
            accepted_by=AcceptedBy(user_id=actor_user_id, accepted_at=now),
        )

    def reject_lead(
        self, organization_id, matter_id: str, actor_user_id: str, reason: Optional[str] = None
    ) -> StatusTransitionResult:
        """Archive a lead, recording the human-supplied reason when given."""
        scope = TenantScope.of(organization_id)
        matter, previous = self._load_lead(scope, matter_id, "reject")
        now = self._update_status(scope, matter_id, MatterStatus.ARCHIVED)
        cleaned = _clean_reason(reason)

        self._record(
            scope,
            event_type="reject",
            title="Lead Rejected",
            description=cleaned or f"{matter.client_name or 'Lead'} was rejected.",
            event_date=now,
            actor_user_id=actor_user_id,
            metadata={
                "matterId": matter_id,
                "fromStatus": previous.value,
                "toStatus": MatterStatus.ARCHIVED.value,
                "reason": cleaned,
            },
        )

        return StatusTransitionResult(
            matter_id=matter_id, status=MatterStatus.ARCHIVED, previous_status=previous, updated_at=now
        )

    def transition_status(
        self,
        organization_id,
        matter_id: str,
        target_status,
        actor_user_id: str,
        reason: Optional[str] = None,
    ) -> StatusTransitionResult:
        """
        General-purpose transition.

        A transition to the current status is rejected rather than treated as a no-op.

        Raises:
            InvalidStatusValueError: target_status is not a known status
            InvalidTransitionError: Same status, or not allowed from the current status
        """
        scope = TenantScope.of(organization_id)
        target = MatterStatus.parse(target_status)
        matter = self.matters.get_matter(scope, matter_id)
        previous = matter.status

        if previous == target:
            raise InvalidTransitionError(
                "Matter is already in the requested status",
                details={"matterId": matter_id, "status": previous.value},
            )

        if not can_transition(previous, target):
            raise InvalidTransitionError(
                f"Cannot transition matter from {previous.value} to {target.value}",
                details={"matterId": matter_id, "fromStatus": previous.value, "toStatus": target.value},
            )

        now = self._update_status(scope, matter_id, target)
        cleaned = _clean_reason(reason)

        self._record(
            scope,
            event_type="status_change",
            title=f"Status Updated: {target.label}",
            description=cleaned
            or f"{matter.client_name or 'Matter'} moved from {previous.value} to {target.value}.",
            event_date=now,
            actor_user_id=actor_user_id,
            metadata={
                "matterId": matter_id,
                "fromStatus": previous.value,
                "toStatus": target.value,
                "reason": cleaned,
            },
        )

        return StatusTransitionResult(matter_id=matter_id, status=target, previous_status=previous, updated_at=now)

    def _load_lead(self, scope: TenantScope, matter_id: str, action: str) -> Tuple[Matter, MatterStatus]:
        matter = self.matters.get_matter(scope, matter_id)
        if matter.status != MatterStatus.LEAD:
            self.logger.info(
                "Lead action refused for non-lead matter",
                extra={
                    "event": "lead_action_refused",
                    "action": action,
                    "matter_id": matter_id,
                    "status": matter.status.value,
                },
            )
            raise InvalidPreconditionError(
                f"Only leads can be {LEAD_ACTION_VERBS[action]}",
                details={"matterId": matter_id, "status": matter.status.value},
            )
        return matter, matter.status

    def _update_status(self, scope: TenantScope, matter_id: str, next_status: MatterStatus) -> datetime:
        now = self.clock()
        if not self.matters.update_matter_status(scope, matter_id, next_status, now):
            raise NotFoundError("Matter not found", details={"matterId": matter_id})
        return now

    def _record(
        self,
        scope: TenantScope,
        event_type: str,
        title: str,
        description: str,
        event_date: datetime,
        actor_user_id: str,
        metadata: Dict[str, Any],
    ):
        event = ActivityEvent(
            type="matter_event",
            event_type=event_type,
            title=title,
            description=description,
            event_date=event_date,
            actor_type="lawyer",
            actor_id=actor_user_id,
            metadata={**metadata, "organizationId": scope.organization_id},
        )
        self.side_effects.run(f"activity.{event_type}", self.activity.create_event, event, scope.organization_id)
        log_business_event(
            f"matter_{event_type}",
            "matter",
            metadata.get("matterId"),
            organization_id=scope.organization_id,
            from_status=metadata.get("fromStatus"),
            to_status=metadata.get("toStatus"),
            actor_id=actor_user_id,
        )
