#!/usr/bin/env python3
"""
Script to purge expired sessions from the configured session store.

Backends without native expiry (the SQLAlchemy backend) keep expired rows
until something removes them. Nothing does that automatically; run this
from cron or a scheduler at whatever interval suits your storage growth.

Exit codes: 0 on success, 2 on error.
"""

import sys
import asyncio
import logging
from pathlib import Path

# Add src to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from async_session.backends.redis_client import close_redis_clients
from async_session.config import SessionConfig
from async_session.exceptions import BackendError
from async_session.factory import create_session_store
from async_session.logging_config import configure_logging

logger = logging.getLogger("async_session.scripts.cleanup")


async def run_cleanup(backend: str | None = None) -> int:
    config = SessionConfig.from_env()
    if backend:
        config = config.model_copy(update={"backend": backend})
    store = create_session_store(config)
    try:
        return await store.cleanup()
    finally:
        await store.close()
        await close_redis_clients()


def main(argv: list[str] | None = None) -> int:
    """Run one cleanup pass."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Remove expired sessions from the configured session store"
    )
    parser.add_argument(
        "--backend",
        choices=["memory", "redis", "sqlalchemy"],
        default=None,
        help="Override SESSION_BACKEND for this run"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this run"
    )
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    try:
        removed = asyncio.run(run_cleanup(args.backend))
    except (ValueError, BackendError) as e:
        logger.error(f"Session cleanup failed: {e}")
        return 2

    logger.info(f"Session cleanup finished, {removed} expired session(s) removed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
