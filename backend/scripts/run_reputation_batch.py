"""Run the nightly reputation sweep once, for cron or a one-off backfill.

Usage: python backend/scripts/run_reputation_batch.py
"""

import asyncio
import os
import sys

# Ensure backend path is in sys.path
if os.path.exists("backend"):
    sys.path.append(os.path.join(os.getcwd(), "backend"))
else:
    sys.path.append(os.getcwd())

from rapport.infra import postgres
from rapport.infra.redis import redis_client
from rapport.obs.logging import configure_logging
from rapport.reputation.domain import container
from rapport.reputation.infra.postgres_repo import ensure_schema


async def main() -> int:
    configure_logging()
    pool = await postgres.init_pool()
    try:
        await ensure_schema(pool)
        container.configure_postgres(pool, redis_client)
        result = await container.run_daily_batch()
    finally:
        await postgres.close_pool()
    print(
        f"total={result.total} processed={result.processed} errors={result.errors} "
        f"skipped={result.skipped} timed_out={result.timed_out} duration={result.duration_seconds:.1f}s"
    )
    return 1 if result.errors or result.timed_out else 0


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    sys.exit(asyncio.run(main()))
