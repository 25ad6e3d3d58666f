"""
Wiring of repositories, collaborators and lifecycle services.
"""

from dataclasses import dataclass
from typing import Any, Optional

from matterdesk.services.collaborators import (
    IdempotencyStore,
    OutboxNotificationDispatcher,
    PostgresActivityRecorder,
    PostgresConversationStore,
    PostgresPaymentSettings,
)
from matterdesk.services.counters import CounterAllocator
from matterdesk.services.intake_confirmation import IntakeConfirmationGate
from matterdesk.services.lead_intake import LeadIntakeProcessor
from matterdesk.services.lifecycle import MatterLifecycleEngine
from matterdesk.services.matter_repository import MatterRepository
from matterdesk.services.side_effects import BestEffortRunner


@dataclass
class ServiceContainer:
    """Everything the HTTP layer needs, built once per application"""

    matters: Any
    counters: Any
    activity: Any
    notifications: Any
    conversations: Any
    payments: Any
    side_effects: BestEffortRunner
    lead_intake: LeadIntakeProcessor
    lifecycle: MatterLifecycleEngine
    intake_gate: IntakeConfirmationGate
    idempotency: Optional[Any] = None
    db: Optional[Any] = None

    def close(self):
        self.side_effects.shutdown()
        if self.db is not None:
            self.db.close_all_connections()


def assemble_services(
    matters,
    counters,
    activity,
    notifications,
    conversations,
    payments,
    side_effects: BestEffortRunner,
    idempotency=None,
    db=None,
    clock=None,
) -> ServiceContainer:
    """Build the lifecycle services over any set of storage collaborators."""
    lead_intake = LeadIntakeProcessor(matters, counters, activity, side_effects, clock=clock)
    return ServiceContainer(
        matters=matters,
        counters=counters,
        activity=activity,
        notifications=notifications,
        conversations=conversations,
        payments=payments,
        side_effects=side_effects,
        lead_intake=lead_intake,
        lifecycle=MatterLifecycleEngine(matters, activity, side_effects, clock=clock),
        intake_gate=IntakeConfirmationGate(matters, conversations, payments, lead_intake, side_effects),
        idempotency=idempotency,
        db=db,
    )


def build_services(db, config_class) -> ServiceContainer:
    """Build the PostgreSQL-backed services for an application."""
    return assemble_services(
        matters=MatterRepository(db),
        counters=CounterAllocator(db),
        activity=PostgresActivityRecorder(db),
        notifications=OutboxNotificationDispatcher(db),
        conversations=PostgresConversationStore(db),
        payments=PostgresPaymentSettings(db),
        side_effects=BestEffortRunner(
            timeout_seconds=config_class.SIDE_EFFECT_TIMEOUT_SECONDS,
            max_workers=config_class.SIDE_EFFECT_MAX_WORKERS,
        ),
        idempotency=IdempotencyStore(db, ttl_seconds=config_class.IDEMPOTENCY_TTL_SECONDS),
        db=db,
    )
