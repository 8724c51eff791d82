"""
Create the tables (if missing) and the first admin account.

Run once with env set:
  ADMIN_USERNAME=admin
  ADMIN_PASSWORD=YourSecurePassword

Usage: python -m app.db.seed_admin
"""
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

# Ensure all models are loaded so create_all and relationships see every table
from app.auth.models import StudentProfile, User  # noqa: F401
from app.auth.security import hash_password
from app.core.config import settings
from app.core.enums import PersonRole
from app.core.models import Department, SchoolClass  # noqa: F401
from app.db.session import AsyncSessionLocal, Base, engine

ADMIN_FIRST_NAME = "System"
ADMIN_LAST_NAME = "Admin"


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_admin(db: AsyncSession) -> None:
    username = (settings.admin_username or "").strip().lower()
    password = settings.admin_password
    if not username or not password:
        print("ADMIN_USERNAME / ADMIN_PASSWORD not set; skipping admin user.")
        return

    result = await db.execute(select(User).where(User.username == username))
    admin = result.scalar_one_or_none()
    if not admin:
        admin = User(
            first_name=ADMIN_FIRST_NAME,
            last_name=ADMIN_LAST_NAME,
            full_name=f"{ADMIN_FIRST_NAME} {ADMIN_LAST_NAME}",
            username=username,
            password_hash=hash_password(password),
            role=PersonRole.ADMIN.value,
            must_change_password=False,
            is_active=True,
        )
        db.add(admin)
        print("Created admin user:", username)
    else:
        admin.role = PersonRole.ADMIN.value
        admin.password_hash = hash_password(password)
        admin.is_active = True
        print("Updated existing user to admin:", username)

    await db.commit()


async def main() -> None:
    await create_tables()
    async with AsyncSessionLocal() as db:
        try:
            await seed_admin(db)
        except Exception:
            await db.rollback()
            raise
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
