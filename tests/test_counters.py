"""
Tests for matter number allocation.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

from matterdesk.services.counters import (
    UPSERT_COUNTER_SQL,
    CounterAllocator,
    counter_name_for_year,
    format_matter_number,
)
from matterdesk.models.entities import TenantScope
from matterdesk.utils.errors import InfrastructureError


@pytest.mark.parametrize(
    "sequence,expected",
    [(1, "MAT-2025-001"), (42, "MAT-2025-042"), (999, "MAT-2025-999"), (1000, "MAT-2025-1000")],
)
def test_format_matter_number(sequence, expected):
    assert format_matter_number(2025, sequence) == expected


def test_allocate_issues_single_upsert():
    db = MagicMock()
    db.execute_query.return_value = {"next_value": 7}
    allocator = CounterAllocator(db)

    assert allocator.allocate(TenantScope.of("org-1"), "matter_number_2025") == 7
    db.execute_query.assert_called_once_with(UPSERT_COUNTER_SQL, ("org-1", "matter_number_2025"), fetch_one=True)


def test_allocate_without_row_is_infrastructure_error():
    db = MagicMock()
    db.execute_query.return_value = None
    with pytest.raises(InfrastructureError):
        CounterAllocator(db).allocate(TenantScope.of("org-1"), "matter_number_2025")


def test_sequential_matter_numbers(counter_db, clock):
    allocator = CounterAllocator(counter_db, clock=clock)
    assert allocator.next_matter_number("org-1") == "MAT-2025-001"
    assert allocator.next_matter_number("org-1") == "MAT-2025-002"


def test_counters_are_scoped_by_organization_and_year(counter_db):
    allocator = CounterAllocator(counter_db)
    assert allocator.next_matter_number("org-1", 2025) == "MAT-2025-001"
    assert allocator.next_matter_number("org-2", 2025) == "MAT-2025-001"
    assert allocator.next_matter_number("org-1", 2026) == "MAT-2026-001"
    assert allocator.next_matter_number("org-1", 2025) == "MAT-2025-002"
    assert ("org-1", counter_name_for_year(2025)) in counter_db.values


def test_concurrent_allocations_are_distinct_and_gap_free(counter_db):
    allocator = CounterAllocator(counter_db)
    scope = TenantScope.of("org-1")

    with ThreadPoolExecutor(max_workers=8) as pool:
        values = list(pool.map(lambda _: allocator.allocate(scope, "matter_number_2025"), range(50)))

    assert sorted(values) == list(range(1, 51))


def test_widening_past_padding_is_logged_once(caplog):
    db = MagicMock()
    allocator = CounterAllocator(db)
    caplog.set_level(logging.WARNING)

    db.execute_query.return_value = {"next_value": 1000}
    assert allocator.next_matter_number("org-1", 2025) == "MAT-2025-1000"
    db.execute_query.return_value = {"next_value": 1001}
    allocator.next_matter_number("org-1", 2025)

    widened = [r for r in caplog.records if getattr(r, "event", None) == "matter_number_widened"]
    assert len(widened) == 1
