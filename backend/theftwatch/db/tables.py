"""
Single source of truth for database tables that exist after migrations (001–002).

Use these names when writing raw SQL (e.g. TRUNCATE) and in alembic/env.py's model check.
"""
# All tables that exist in the DB. Must match models and migrations.
ALL_TABLE_NAMES = (
    "user_locations",
    "reports",
    "confirmations",
    "notification_alerts",
)

# Tables cleared when resetting demo data (TRUNCATE). Children first for FKs.
RESETTABLE_TABLE_NAMES = (
    "notification_alerts",
    "confirmations",
    "reports",
    "user_locations",
)
