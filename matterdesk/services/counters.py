"""
Per-organization, per-year matter number allocation.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from matterdesk.models.entities import TenantScope
from matterdesk.utils.errors import InfrastructureError
from matterdesk.utils.logging_config import get_logger, log_database_operation

MATTER_NUMBER_PREFIX = "MAT"
MATTER_NUMBER_MIN_DIGITS = 3

# One round trip: insert the first value or bump the existing one, under the row lock
UPSERT_COUNTER_SQL = """
INSERT INTO counters (organization_id, name, next_value)
VALUES (%s, %s, 1)
ON CONFLICT (organization_id, name)
DO UPDATE SET next_value = counters.next_value + 1
RETURNING next_value
"""


def counter_name_for_year(year: int) -> str:
    return f"matter_number_{year}"


def format_matter_number(year: int, sequence: int) -> str:
    """Render MAT-<year>-<seq>; the sequence widens past 999 instead of wrapping."""
    return f"{MATTER_NUMBER_PREFIX}-{year}-{sequence:0{MATTER_NUMBER_MIN_DIGITS}d}"


class CounterAllocator:
    """Issues strictly increasing sequence values from the counters table."""

    def __init__(self, db, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger("services.counters")

    def allocate(self, scope: TenantScope, counter_name: str) -> int:
        row = self.db.execute_query(UPSERT_COUNTER_SQL, (scope.organization_id, counter_name), fetch_one=True)
        if not row or row.get("next_value") is None:
            raise InfrastructureError("Counter allocation returned no value", details={"counter": counter_name})

        value = int(row["next_value"])
        log_database_operation("counter_allocate", "counters", counter=counter_name, value=value)
        return value

    def next_matter_number(self, organization_id, year: Optional[int] = None) -> str:
        """
        Allocate the next matter number for (organization, year).

        Args:
            organization_id: Organization id or TenantScope
            year: Calendar year; defaults to the current UTC year

        Returns:
            Matter number such as MAT-2025-001

        Raises:
            InfrastructureError: If the counter store is unavailable
        """
        scope = TenantScope.of(organization_id)
        year = year if year is not None else self.clock().year
        sequence = self.allocate(scope, counter_name_for_year(year))

        if sequence == 10 ** MATTER_NUMBER_MIN_DIGITS:
            self.logger.warning(
                "Matter number sequence widened past padding width",
                extra={"event": "matter_number_widened", "organization_id": scope.organization_id, "year": year},
            )

        return format_matter_number(year, sequence)
