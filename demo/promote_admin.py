#!/usr/bin/env python3
"""
Promote a registered user to ADMIN. Run on the server.

Admins cannot self-register (unless ALLOW_ADMIN_REGISTRATION is set), so an
operator registers a normal user through the API and then runs:

    DATABASE_URL=sqlite+aiosqlite:///./data/ghostcard.db \
        python demo/promote_admin.py admin@example.com
"""
import asyncio
import os
import sys

from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from ghostcard.models.user import User, UserRole


async def promote(email: str) -> int:
    engine = create_async_engine(os.environ["DATABASE_URL"])
    sf = async_sessionmaker(engine, class_=AsyncSession)
    async with sf() as s:
        r = await s.execute(
            update(User)
            .where(User.email == email)
            .values(role=UserRole.ADMIN)
        )
        await s.commit()
    await engine.dispose()
    return r.rowcount


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: promote_admin.py <email>")
    print(f"Rows updated: {asyncio.run(promote(sys.argv[1]))}")
