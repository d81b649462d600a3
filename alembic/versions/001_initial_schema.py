"""001 – Initial schema: leave types, balances, requests, notifications, seed data.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
    ("notification_type", ["info", "action_required", "approval", "alert"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                      UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            code                    VARCHAR(20)  NOT NULL UNIQUE,
            name                    VARCHAR(100) NOT NULL,
            description             TEXT,
            is_active               BOOLEAN DEFAULT TRUE,
            requires_approval       BOOLEAN DEFAULT TRUE,
            max_days_per_request    INTEGER,
            requires_documentation  BOOLEAN DEFAULT FALSE,
            color_code              VARCHAR(7),
            policy_url              VARCHAR(500),
            past_date_exempt        BOOLEAN DEFAULT FALSE,
            allows_partial_day      BOOLEAN DEFAULT TRUE,
            created_at              TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL,
            leave_type_id    UUID NOT NULL REFERENCES leave_types(id),
            total_allowance  NUMERIC(7,4) NOT NULL,
            used_days        NUMERIC(7,4) DEFAULT 0,
            remaining_days   NUMERIC(7,4) DEFAULT 0,
            carry_over_days  NUMERIC(7,4) DEFAULT 0,
            effective_date   DATE NOT NULL,
            expiration_date  DATE NOT NULL,
            version          INTEGER NOT NULL DEFAULT 0,
            updated_at       TIMESTAMPTZ,
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type_id),
            CHECK (remaining_days >= 0),
            CHECK (expiration_date > effective_date)
        )
    """)
    op.execute("CREATE INDEX ix_leave_balances_employee_id ON leave_balances(employee_id)")

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            title               VARCHAR(255),
            requester_id        UUID NOT NULL,
            requester_email     VARCHAR(320),
            manager_id          UUID,
            manager_email       VARCHAR(320),
            leave_type_id       UUID NOT NULL REFERENCES leave_types(id),
            start_date          DATE NOT NULL,
            end_date            DATE NOT NULL,
            total_days          NUMERIC(7,4) NOT NULL,
            is_partial_day      BOOLEAN DEFAULT FALSE,
            partial_day_hours   NUMERIC(4,2),
            comments            TEXT,
            attachment_url      VARCHAR(500),
            status              leave_status DEFAULT 'pending',
            approver_id         UUID,
            approver_comments   TEXT,
            approval_date       TIMESTAMPTZ,
            submission_date     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            last_modified       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            calendar_event_id   VARCHAR(255),
            notifications_sent  BOOLEAN DEFAULT FALSE,
            CHECK (end_date >= start_date)
        )
    """)
    op.execute("CREATE INDEX ix_leave_requests_requester_id ON leave_requests(requester_id)")
    op.execute("CREATE INDEX ix_leave_requests_manager_id ON leave_requests(manager_id)")
    op.execute("CREATE INDEX ix_leave_requests_status ON leave_requests(status)")

    # ── 4. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient   VARCHAR(320) NOT NULL,
            type        notification_type DEFAULT 'info',
            subject     VARCHAR(300) NOT NULL,
            body        TEXT NOT NULL,
            is_read     BOOLEAN DEFAULT FALSE,
            read_at     TIMESTAMPTZ,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_notifications_recipient ON notifications(recipient)")

    # ══════════════════════════════════════════════════════════════════════
    # SEED DATA
    # ══════════════════════════════════════════════════════════════════════

    op.execute("""
        INSERT INTO leave_types
            (code, name, description, requires_approval, max_days_per_request,
             requires_documentation, color_code, past_date_exempt)
        VALUES
            ('AL', 'Annual Leave',              'Standard annual vacation leave', TRUE,  30, FALSE, '#4CAF50', FALSE),
            ('SL', 'Sick Leave',                'Medical leave for illness',      FALSE,  5, TRUE,  '#FF9800', TRUE),
            ('PL', 'Personal Leave',            'Personal time off',              TRUE,  10, FALSE, '#2196F3', FALSE),
            ('FL', 'Maternity/Paternity Leave', 'Family leave for new parents',   TRUE,  90, TRUE,  '#E91E63', FALSE),
            ('EL', 'Emergency Leave',           'Urgent personal matters',        FALSE,  3, FALSE, '#F44336', FALSE)
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "notifications",
        "leave_requests",
        "leave_balances",
        "leave_types",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
