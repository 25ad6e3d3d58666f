#!/usr/bin/env python3
"""
Development data seeder for matterdesk

Creates contact-form leads through the lead intake service (so matter numbers come from the
real counter), plus conversations and intakes ready for confirmation.

Usage:
    python scripts/seed_leads.py [--organization ORG] [--count N] [--intakes N] [--paid-only]
"""

import argparse
import random
import sys
import uuid

from faker import Faker
from psycopg2.extras import Json

from matterdesk.config.settings import config
from matterdesk.models.entities import ContactSubmission, TenantScope
from matterdesk.services.container import build_services
from matterdesk.services.database import create_database_connection
from matterdesk.utils.errors import DomainError
from matterdesk.utils.logging_config import get_logger

logger = get_logger("scripts.seed_leads")

fake = Faker()

INTAKE_STATUSES = ["succeeded", "paid", "pending", "failed", None]


class LeadSeeder:
    def __init__(self, db, services):
        self.db = db
        self.services = services

    def fake_submission(self, scope: TenantScope) -> ContactSubmission:
        return ContactSubmission(
            organization_id=scope.organization_id,
            name=fake.name(),
            email=fake.email(),
            phone_number=fake.numerify("+1 ###-###-####"),
            matter_details=fake.paragraph(nb_sentences=3),
            session_id=str(uuid.uuid4()),
            lead_source=random.choice(["contact_form", "contact_form_chat"]),
        )

    def seed_contact_leads(self, scope: TenantScope, count: int):
        created = []
        for _ in range(count):
            result = self.services.lead_intake.create_lead_from_contact_form(self.fake_submission(scope))
            created.append(result)
            logger.info(
                "Seeded lead",
                extra={"event": "seed_lead", "matter_id": result.matter_id, "matter_number": result.matter_number},
            )
        return created

    def seed_pending_intakes(self, scope: TenantScope, count: int, paid_only: bool = False):
        """Insert conversations with matching intakes; confirmation is left to the API"""
        pairs = []
        for _ in range(count):
            conversation_id = str(uuid.uuid4())
            intake_uuid = str(uuid.uuid4())
            status = "succeeded" if paid_only else random.choice(INTAKE_STATUSES)
            user_info = {"name": fake.name(), "email": fake.email(), "phone": fake.numerify("+1 ###-###-####")}

            self.db.execute_query(
                "INSERT INTO conversations (id, organization_id, user_info) VALUES (%s, %s, %s)",
                (conversation_id, scope.organization_id, Json(user_info)),
                fetch_all=False,
            )
            self.db.execute_query(
                """
                INSERT INTO intakes (uuid, organization_id, status, amount, currency, metadata)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    intake_uuid,
                    scope.organization_id,
                    status,
                    random.choice([5000, 7500, 10000]),
                    "usd",
                    Json({"description": fake.sentence(nb_words=10)}),
                ),
                fetch_all=False,
            )
            pairs.append((intake_uuid, conversation_id, status))
        return pairs

    def enable_payment_requirement(self, scope: TenantScope, enabled: bool):
        self.db.execute_query(
            """
            INSERT INTO practice_intake_settings (organization_id, payment_link_enabled)
            VALUES (%s, %s)
            ON CONFLICT (organization_id) DO UPDATE SET payment_link_enabled = EXCLUDED.payment_link_enabled
            """,
            (scope.organization_id, enabled),
            fetch_all=False,
        )


def main():
    parser = argparse.ArgumentParser(description="Seed development leads and intakes for matterdesk")
    parser.add_argument("--organization", default="org-demo", help="Organization id (default: org-demo)")
    parser.add_argument("--count", type=int, default=20, help="Number of contact-form leads (default: 20)")
    parser.add_argument("--intakes", type=int, default=5, help="Number of pending intakes (default: 5)")
    parser.add_argument("--paid-only", action="store_true", help="Only create paid intakes")
    parser.add_argument("--require-payment", action="store_true", help="Require payment before intake confirmation")
    parser.add_argument("--env", default="development", choices=sorted(config.keys()), help="Configuration name")
    args = parser.parse_args()

    config_class = config[args.env]
    db = create_database_connection(config_class)
    services = build_services(db, config_class)
    seeder = LeadSeeder(db, services)
    scope = TenantScope.of(args.organization)

    try:
        seeder.enable_payment_requirement(scope, args.require_payment)
        leads = seeder.seed_contact_leads(scope, args.count)
        intakes = seeder.seed_pending_intakes(scope, args.intakes, paid_only=args.paid_only)
    except DomainError as e:
        print(f"\n[ERROR] Seeding failed: {e.message}")
        sys.exit(1)
    finally:
        services.close()

    print("\n" + "=" * 60)
    print(f"Seeded {len(leads)} leads for {scope.organization_id}")
    if leads:
        print(f"  Matter numbers: {leads[0].matter_number} .. {leads[-1].matter_number}")
    print(f"Seeded {len(intakes)} pending intakes:")
    for intake_uuid, conversation_id, status in intakes:
        print(f"  - intake {intake_uuid} / conversation {conversation_id} (status: {status})")
    print("=" * 60)


if __name__ == "__main__":
    main()
