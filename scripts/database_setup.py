import sys

import psycopg2

from matterdesk.config.settings import Config

MATTERDESK_TABLES = [
    "idempotency_keys",
    "notification_outbox",
    "matter_events",
    "intakes",
    "practice_intake_settings",
    "conversation_messages",
    "conversations",
    "counters",
    "matters",
]

SCHEMA_SQL = """
-- Matters (leads and active matters)
CREATE TABLE IF NOT EXISTS matters (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    status VARCHAR(20) NOT NULL
        CHECK (status IN ('lead', 'open', 'in_progress', 'completed', 'archived')),
    matter_number VARCHAR(40),
    title TEXT NOT NULL,
    client_name VARCHAR(200),
    client_email VARCHAR(254),
    client_phone VARCHAR(50),
    matter_type VARCHAR(100),
    description TEXT,
    priority VARCHAR(20) DEFAULT 'normal',
    lead_source VARCHAR(50),
    custom_fields JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    closed_at TIMESTAMPTZ NULL,
    CONSTRAINT matters_closed_at_matches_status CHECK (
        (status IN ('completed', 'archived')) = (closed_at IS NOT NULL)
    )
);

-- Per-organization named sequences (matter_number_<year>)
CREATE TABLE IF NOT EXISTS counters (
    organization_id TEXT NOT NULL,
    name VARCHAR(100) NOT NULL,
    next_value BIGINT NOT NULL CHECK (next_value > 0),
    PRIMARY KEY (organization_id, name)
);

CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    matter_id TEXT NULL REFERENCES matters(id) ON DELETE SET NULL,
    user_info JSONB NOT NULL DEFAULT '{}'::jsonb,
    last_message_at TIMESTAMPTZ NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS practice_intake_settings (
    organization_id TEXT PRIMARY KEY,
    payment_link_enabled BOOLEAN NOT NULL DEFAULT FALSE,
    practice_name TEXT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS intakes (
    uuid TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    status VARCHAR(40),
    amount BIGINT,
    currency VARCHAR(10),
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Messages posted into client conversations
CREATE TABLE IF NOT EXISTS conversation_messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    organization_id TEXT NOT NULL,
    sender_user_id TEXT NULL,
    role VARCHAR(20) NOT NULL,
    content TEXT NOT NULL,
    message_type VARCHAR(20) NOT NULL DEFAULT 'text',
    metadata JSONB NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Append-only activity log
CREATE TABLE IF NOT EXISTS matter_events (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    matter_id TEXT,
    type VARCHAR(40) NOT NULL,
    event_type VARCHAR(40) NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    event_date TIMESTAMPTZ NOT NULL,
    actor_type VARCHAR(20),
    actor_id TEXT,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS notification_outbox (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    category VARCHAR(40) NOT NULL,
    entity_type VARCHAR(40) NOT NULL,
    entity_id TEXT NOT NULL,
    conversation_id TEXT,
    title TEXT NOT NULL,
    body TEXT,
    dedupe_key TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    delivered_at TIMESTAMPTZ NULL
);

CREATE TABLE IF NOT EXISTS idempotency_keys (
    organization_id TEXT NOT NULL,
    key VARCHAR(255) NOT NULL,
    response JSONB NOT NULL,
    expires_at TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (organization_id, key)
);

-- One matter per conversation; the intake insert targets this index with ON CONFLICT
CREATE UNIQUE INDEX IF NOT EXISTS idx_matters_org_conversation_unique
    ON matters (organization_id, (custom_fields->>'conversationId'))
    WHERE custom_fields->>'conversationId' IS NOT NULL;

CREATE UNIQUE INDEX IF NOT EXISTS idx_matters_org_number_unique
    ON matters (organization_id, matter_number)
    WHERE matter_number IS NOT NULL;

CREATE UNIQUE INDEX IF NOT EXISTS idx_notification_outbox_dedupe
    ON notification_outbox (organization_id, dedupe_key);

CREATE INDEX IF NOT EXISTS idx_matters_org_status ON matters(organization_id, status);
CREATE INDEX IF NOT EXISTS idx_matters_org_created ON matters(organization_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_matters_intake_uuid ON matters(organization_id, (custom_fields->>'intakeUuid'));
CREATE INDEX IF NOT EXISTS idx_conversations_org ON conversations(organization_id);
CREATE INDEX IF NOT EXISTS idx_matter_events_matter ON matter_events(matter_id, event_date);
CREATE INDEX IF NOT EXISTS idx_conversation_messages_conversation ON conversation_messages(conversation_id, created_at);
CREATE INDEX IF NOT EXISTS idx_notification_outbox_pending ON notification_outbox(created_at) WHERE delivered_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_idempotency_keys_expires ON idempotency_keys(expires_at);
"""


class PostgreSQLSetup:
    def __init__(self, host="localhost", port=5432, database="matterdesk", user="postgres", password="postgres"):
        self.connection_params = {"host": host, "port": port, "database": database, "user": user, "password": password}

    @classmethod
    def from_config(cls, config_class=Config):
        db_config = config_class.get_database_config()
        return cls(
            host=db_config["host"],
            port=db_config["port"],
            database=db_config["database"],
            user=db_config["user"],
            password=db_config["password"],
        )

    def _execute(self, sql: str):
        conn = psycopg2.connect(**self.connection_params)
        try:
            with conn.cursor() as cursor:
                cursor.execute(sql)
            conn.commit()
        finally:
            conn.close()

    def create_database_if_not_exists(self):
        """Create the database if it doesn't exist"""
        # Connect to default postgres database first
        temp_params = self.connection_params.copy()
        temp_params["database"] = "postgres"

        try:
            conn = psycopg2.connect(**temp_params)
            conn.autocommit = True
            cursor = conn.cursor()

            cursor.execute("SELECT 1 FROM pg_database WHERE datname = %s", (self.connection_params["database"],))
            exists = cursor.fetchone()

            if not exists:
                cursor.execute(f"CREATE DATABASE {self.connection_params['database']}")
                print(f"Database '{self.connection_params['database']}' created successfully")
            else:
                print(f"Database '{self.connection_params['database']}' already exists")

            cursor.close()
            conn.close()

        except psycopg2.Error as e:
            print(f"Error creating database: {e}")
            raise

    def drop_existing_tables(self):
        """Drop existing tables to recreate with new schema"""
        try:
            self._execute("".join(f"DROP TABLE IF EXISTS {table} CASCADE;\n" for table in MATTERDESK_TABLES))
            print("Existing tables dropped successfully")
        except psycopg2.Error as e:
            print(f"Error dropping tables: {e}")
            raise

    def create_tables(self):
        """Create all tables and indexes"""
        try:
            self._execute(SCHEMA_SQL)
            print("All tables and indexes created successfully")
        except psycopg2.Error as e:
            print(f"Error creating tables: {e}")
            raise

    def setup_database(self, drop_tables=False):
        """Complete database setup"""
        self.create_database_if_not_exists()

        if drop_tables:
            print("Dropping existing tables...")
            self.drop_existing_tables()

        self.create_tables()
        print("PostgreSQL database setup completed successfully!")

    def clear_all_data(self):
        """Clear all data from tables"""
        try:
            self._execute(f"TRUNCATE TABLE {', '.join(MATTERDESK_TABLES)} CASCADE;")
            print("All data cleared successfully")
        except psycopg2.Error as e:
            print(f"Error clearing data: {e}")
            raise


if __name__ == "__main__":
    db_setup = PostgreSQLSetup.from_config()

    if len(sys.argv) > 1:
        if sys.argv[1] == "--reset":
            print("Resetting database...")
            db_setup.setup_database(drop_tables=True)
        elif sys.argv[1] == "--clear-data":
            print("Clearing all data...")
            db_setup.clear_all_data()
        else:
            print("Usage: python scripts/database_setup.py [--reset|--clear-data]")
    else:
        db_setup.setup_database()
