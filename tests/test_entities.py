"""
Tests for the matter status machine and entity conversions.
"""

import json
from datetime import datetime, timezone

import pytest

from matterdesk.models.entities import (
    CLOSED_STATUSES,
    STATUS_TRANSITIONS,
    IntakeRecord,
    Matter,
    MatterStatus,
    StatusTransitionResult,
    AcceptedBy,
    TenantScope,
    can_transition,
)
from matterdesk.utils.errors import InvalidStatusValueError, ValidationError


@pytest.mark.parametrize("raw", ["lead", " LEAD ", "Lead"])
def test_parse_normalises_case_and_whitespace(raw):
    assert MatterStatus.parse(raw) is MatterStatus.LEAD


@pytest.mark.parametrize("raw", ["closed", "", None, "in progress"])
def test_parse_rejects_unknown_status(raw):
    with pytest.raises(InvalidStatusValueError):
        MatterStatus.parse(raw)


def test_transition_table_is_closed_over_known_statuses():
    assert set(STATUS_TRANSITIONS) == set(MatterStatus)
    for current, targets in STATUS_TRANSITIONS.items():
        assert current not in targets
        assert targets <= set(MatterStatus)


def test_lead_is_only_reachable_as_initial_state():
    assert not any(MatterStatus.LEAD in targets for targets in STATUS_TRANSITIONS.values())


def test_allowed_transitions():
    assert can_transition(MatterStatus.LEAD, MatterStatus.OPEN)
    assert can_transition(MatterStatus.COMPLETED, MatterStatus.IN_PROGRESS)
    assert can_transition(MatterStatus.ARCHIVED, MatterStatus.OPEN)
    assert not can_transition(MatterStatus.IN_PROGRESS, MatterStatus.LEAD)
    assert not can_transition(MatterStatus.LEAD, MatterStatus.COMPLETED)


def test_closed_statuses():
    assert CLOSED_STATUSES == {MatterStatus.COMPLETED, MatterStatus.ARCHIVED}


def test_status_label():
    assert MatterStatus.IN_PROGRESS.label == "in progress"


def test_tenant_scope_requires_organization():
    with pytest.raises(ValidationError) as exc_info:
        TenantScope.of("   ")
    assert exc_info.value.field == "organizationId"


def test_tenant_scope_strips_and_passes_through():
    scope = TenantScope.of(" org-1 ")
    assert scope.organization_id == "org-1"
    assert TenantScope.of(scope) is scope


def test_matter_from_row_decodes_json_custom_fields():
    row = {
        "id": "m-1",
        "organization_id": "org-1",
        "status": "OPEN",
        "matter_number": "MAT-2025-001",
        "title": "Lead: Jane",
        "custom_fields": json.dumps({"sessionId": "s-1"}),
        "priority": None,
    }
    matter = Matter.from_row(row)
    assert matter.status is MatterStatus.OPEN
    assert matter.custom_fields == {"sessionId": "s-1"}
    assert matter.priority == "normal"
    assert not matter.is_closed


def test_matter_from_row_rejects_unknown_stored_status():
    with pytest.raises(InvalidStatusValueError):
        Matter.from_row({"id": "m-1", "organization_id": "org-1", "status": "pending"})


def test_matter_to_dict_uses_camel_case():
    now = datetime(2025, 1, 2, tzinfo=timezone.utc)
    matter = Matter(id="m-1", organization_id="org-1", status=MatterStatus.ARCHIVED, closed_at=now)
    data = matter.to_dict()
    assert data["organizationId"] == "org-1"
    assert data["status"] == "archived"
    assert data["closedAt"] == now.isoformat()


def test_transition_result_includes_accepted_by_only_when_set():
    now = datetime(2025, 1, 2, tzinfo=timezone.utc)
    plain = StatusTransitionResult("m-1", MatterStatus.ARCHIVED, MatterStatus.LEAD, now).to_dict()
    assert "acceptedBy" not in plain

    accepted = StatusTransitionResult(
        "m-1", MatterStatus.OPEN, MatterStatus.LEAD, now, accepted_by=AcceptedBy("user-9", now)
    ).to_dict()
    assert accepted["acceptedBy"] == {"userId": "user-9", "acceptedAt": now.isoformat()}
    assert accepted["previousStatus"] == "lead"


@pytest.mark.parametrize("raw,expected", [(" PAID ", "paid"), ("", None), (None, None)])
def test_intake_status_normalisation(raw, expected):
    intake = IntakeRecord(uuid="i-1", organization_id="org-1", status=raw)
    assert intake.normalized_status == expected
