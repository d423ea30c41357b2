"""001 – Leave engine schema: employees, policies, balances, requests, audit.

Revision ID: 001_leave_engine_schema
Revises:
Create Date: 2026-10-17 10:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_leave_engine_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("employment_status", ["active", "notice_period", "relieved", "absconding"]),
    (
        "leave_type",
        [
            "annual",
            "sick",
            "maternity",
            "paternity",
            "emergency",
            "unpaid",
            "sabbatical",
        ],
    ),
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
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
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code        VARCHAR(20) NOT NULL UNIQUE,
            first_name           VARCHAR(100) NOT NULL,
            last_name            VARCHAR(100) NOT NULL,
            email                VARCHAR(255) NOT NULL UNIQUE,
            reporting_manager_id UUID REFERENCES employees(id),
            employment_status    employment_status NOT NULL DEFAULT 'active',
            is_active            BOOLEAN NOT NULL DEFAULT TRUE,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            updated_at           TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX idx_employees_manager ON employees(reporting_manager_id)"
    )

    # ── 2. leave_policies ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_policies (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name              VARCHAR(100) NOT NULL UNIQUE,
            leave_type        leave_type NOT NULL,
            description       TEXT,
            days_allowed      NUMERIC(5,1) NOT NULL CHECK (days_allowed >= 0),
            carry_forward     BOOLEAN NOT NULL DEFAULT FALSE,
            max_carry_forward NUMERIC(5,1) CHECK (max_carry_forward >= 0),
            is_active         BOOLEAN NOT NULL DEFAULT TRUE,
            created_at        TIMESTAMPTZ DEFAULT NOW(),
            updated_at        TIMESTAMPTZ DEFAULT NOW(),
            CHECK (NOT carry_forward OR max_carry_forward IS NOT NULL)
        )
    """)
    op.execute(
        "CREATE UNIQUE INDEX uq_leave_policies_name_ci ON leave_policies(LOWER(name))"
    )

    # ── 3. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id                 UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id        UUID NOT NULL REFERENCES employees(id),
            policy_id          UUID NOT NULL REFERENCES leave_policies(id),
            year               INTEGER NOT NULL,
            allocated_days     NUMERIC(5,1) NOT NULL DEFAULT 0,
            carry_forward_days NUMERIC(5,1) NOT NULL DEFAULT 0,
            adjustment_days    NUMERIC(5,1) NOT NULL DEFAULT 0,
            adjustment_reason  TEXT,
            used_days          NUMERIC(5,1) NOT NULL DEFAULT 0,
            remaining_days     NUMERIC(5,1) NOT NULL DEFAULT 0,
            version            INTEGER NOT NULL DEFAULT 1,
            created_at         TIMESTAMPTZ DEFAULT NOW(),
            updated_at         TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, policy_id, year),
            CONSTRAINT ck_leave_balance_used CHECK (used_days >= 0),
            CONSTRAINT ck_leave_balance_remaining CHECK (remaining_days >= 0),
            CONSTRAINT ck_leave_balance_arithmetic CHECK (
                remaining_days = allocated_days + carry_forward_days
                                 + adjustment_days - used_days
            )
        )
    """)

    # ── 4. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id         UUID NOT NULL REFERENCES employees(id),
            policy_id           UUID NOT NULL REFERENCES leave_policies(id),
            start_date          DATE NOT NULL,
            end_date            DATE NOT NULL,
            days                NUMERIC(5,1) NOT NULL,
            reason              TEXT,
            status              leave_status NOT NULL DEFAULT 'pending',
            rejection_reason    TEXT,
            cancellation_reason TEXT,
            applied_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            approved_at         TIMESTAMPTZ,
            approved_by         UUID REFERENCES employees(id),
            rejected_at         TIMESTAMPTZ,
            rejected_by         UUID REFERENCES employees(id),
            cancelled_at        TIMESTAMPTZ,
            version             INTEGER NOT NULL DEFAULT 1,
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_dates CHECK (start_date <= end_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_dates
            ON leave_requests(employee_id, start_date, end_date)
    """)
    op.execute("CREATE INDEX ix_leave_requests_status ON leave_requests(status)")

    # ── 5. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID,
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute(
        "CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)"
    )
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    tables = [
        "audit_trail",
        "leave_requests",
        "leave_balances",
        "leave_policies",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
