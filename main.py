"""
Gallery API client entry point.
Performs one GET against the configured service and reports the outcome.

    python main.py <endpoint> [cache_ttl_seconds]
"""

import asyncio
import sys

from loguru import logger

from gallery_api.datastore import SqlStore, close_db, init_db
from gallery_api.services import GalleryApiClient


async def main(endpoint: str, cache_ttl: int) -> int:
    """Run a single request and log result, metrics and errors."""
    logger.info("Initializing persistent store...")
    session_factory = await init_db()

    try:
        async with GalleryApiClient(store=SqlStore(session_factory)) as client:
            result = await client.get(endpoint, cache_ttl=cache_ttl)

            if result.ok:
                source = "cache" if result.from_cache else "network"
                logger.info(f"{endpoint}: HTTP {result.status_code} from {source}")
                logger.info(f"Payload: {result.payload}")
            else:
                logger.error(f"{endpoint}: {result.kind.value} - {result.message}")

            logger.info(f"Metrics: {client.get_metrics()}")
            for entry in client.get_error_log():
                logger.warning(f"[{entry.timestamp}] {entry.endpoint}: {entry.message}")

            return 0 if result.ok else 1
    finally:
        await close_db()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)

    ttl = int(sys.argv[2]) if len(sys.argv) > 2 else 0
    sys.exit(asyncio.run(main(sys.argv[1], ttl)))
