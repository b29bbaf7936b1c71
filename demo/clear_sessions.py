#!/usr/bin/env python3
"""
Purge expired login sessions from the database. Run on the server.

Usage:
    python demo/clear_sessions.py          # expired sessions only
    python demo/clear_sessions.py --all    # every session (logs everyone out)
"""

import argparse
import asyncio

from sqlalchemy import delete

from app.database import AsyncSessionLocal, engine
from app.models.session import Session
from app.services.auth_service import purge_expired_sessions


async def clear(everything: bool) -> None:
    async with AsyncSessionLocal() as db:
        if everything:
            result = await db.execute(delete(Session))
            removed = result.rowcount
        else:
            removed = await purge_expired_sessions(db)
        await db.commit()
        print(f"Sessions removed: {removed}")
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Remove login sessions")
    parser.add_argument("--all", action="store_true", help="Remove every session, not just expired ones")
    args = parser.parse_args()
    asyncio.run(clear(args.all))
