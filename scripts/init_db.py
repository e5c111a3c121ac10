#!/usr/bin/env python3
"""Initialize the beatkeeper database.

Usage:
    python scripts/init_db.py              # Create tables (dev only)
    python scripts/init_db.py --migrate     # Run Alembic migrations (production)
    python scripts/init_db.py --reset       # Drop and recreate (DANGER)
    python scripts/init_db.py --check       # Verify tables and unique keys
"""

import argparse
import asyncio
import sys

from sqlalchemy import inspect, text

from beatkeeper.config import settings
from beatkeeper.db.models import Base
from beatkeeper.db.session import async_engine, close_db, init_db


async def drop_tables() -> None:
    """Drop all tables (DANGER)."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.execute(text("DROP TABLE IF EXISTS alembic_version"))
    print("✓ All tables dropped")


async def create_tables() -> None:
    """Create all tables from models (dev only)."""
    await init_db()
    print("✓ Tables created from models")


def run_migrations() -> None:
    """Run Alembic migrations (production).

    Alembic's env.py drives its own event loop, so this runs outside ours.
    """
    import alembic.command
    import alembic.config

    alembic_cfg = alembic.config.Config("alembic.ini")
    alembic.command.upgrade(alembic_cfg, "head")
    print("✓ Alembic migrations applied")


async def verify_connection() -> None:
    """Test database connection."""
    async with async_engine.connect() as conn:
        result = await conn.execute(text("SELECT 1"))
        result.scalar()
    print(f"✓ Connected ({async_engine.dialect.name})")


async def verify_schema() -> bool:
    """Check both tables exist with their idempotency keys."""
    expected = {
        "user_auth": "uq_user_auth_identity",
        "save_action_log": "uq_save_action_log_key",
    }

    def _inspect(sync_conn) -> dict[str, set[str]]:
        inspector = inspect(sync_conn)
        tables = set(inspector.get_table_names())
        return {
            name: {uc["name"] for uc in inspector.get_unique_constraints(name)}
            for name in expected
            if name in tables
        }

    async with async_engine.connect() as conn:
        found = await conn.run_sync(_inspect)

    ok = True
    for table, constraint in expected.items():
        if table not in found:
            print(f"✗ {table} missing")
            ok = False
        elif constraint not in found[table]:
            print(f"✗ {table} lacks unique constraint {constraint}")
            ok = False
        else:
            print(f"✓ {table} ({constraint})")
    return ok


async def prepare(reset: bool, migrate: bool, check_only: bool) -> bool:
    try:
        await verify_connection()
        if check_only:
            return await verify_schema()
        if reset:
            print("⚠️  DANGER: Dropping all tables...")
            await drop_tables()
        if not migrate:
            await create_tables()
        return True
    finally:
        await close_db()


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize beatkeeper database")
    parser.add_argument("--migrate", action="store_true", help="Run Alembic migrations")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate tables (DANGER)")
    parser.add_argument("--check", action="store_true", help="Only verify tables and unique keys")
    args = parser.parse_args()

    print(f"Database URL: {async_engine.url.render_as_string(hide_password=True)}")
    print(f"Environment: {settings.env}")
    print()

    try:
        ok = asyncio.run(prepare(args.reset, args.migrate, args.check))
        if args.migrate and not args.check:
            run_migrations()
    except Exception as e:
        print(f"❌ Error: {e}")
        return 1

    if not ok:
        print("❌ Schema check failed")
        return 1

    print()
    print("✅ Database initialization complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
