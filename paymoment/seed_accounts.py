"""
Database seeding script for initial accounts.

Creates an admin account and a funded demo account for development.
Run this script after the database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from paymoment.app.db.session import AsyncSessionLocal, engine, Base
from paymoment.app.domain.wallet.ledger_store import LedgerStore
from paymoment.app.models.account import Account
from paymoment.app.core.money import to_minor_units
from paymoment.app.core.security import get_password_hash


async def seed_accounts():
    """
    Seed initial accounts.

    Creates:
    - 1 admin (superuser) account with an empty wallet
    - 1 demo account holding 5000.00
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting account seeding...")

        result = await db.execute(select(Account).where(Account.username == "admin"))
        if result.scalar_one_or_none():
            print("ℹ️  Admin account already exists, skipping seeding")
            return

    ledger = LedgerStore(AsyncSessionLocal)

    await ledger.create_account(
        email="admin@paymoment.dev",
        username="admin",
        hashed_password=get_password_hash("admin123"),
        is_superuser=True,
    )
    print("✅ Created admin account (username: admin, password: admin123)")

    await ledger.create_account(
        email="demo@paymoment.dev",
        username="demo",
        hashed_password=get_password_hash("demo123"),
        initial_balance_minor=to_minor_units("5000"),
    )
    print("✅ Created demo account (username: demo, password: demo123, balance: 5000.00)")

    print("\n🎉 Account seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_accounts())
